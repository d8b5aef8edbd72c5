from __future__ import annotations

import os
from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from pymongo.errors import ConfigurationError as MongoConfigurationError
from pymongo.uri_parser import parse_uri

from .exceptions import ConfigurationError


class StoreSettings(BaseSettings):
    """
    Document store connection settings.

    Env support:
      - Prefer DOCSTORE_* variables:
          DOCSTORE_URL, DOCSTORE_DATABASE, DOCSTORE_AUTH_MECHANISM, DOCSTORE_TIMEOUT_MS
      - Also accepts MONGO_URL / MONGO_DB_NAME as fallbacks.
    """

    url: Optional[str] = Field(default=None)
    database: Optional[str] = Field(default=None)
    auth_mechanism: Optional[str] = Field(default=None)  # e.g. SCRAM-SHA-256, MONGODB-X509
    timeout_ms: Optional[int] = Field(default=None)  # driver-level request timeout
    app_name: str = Field(default="doclayer")

    model_config = SettingsConfigDict(
        env_prefix="DOCSTORE_",
        env_file=".env",
        extra="ignore",
    )

    @property
    def resolved_url(self) -> str:
        url = self.url or os.getenv("MONGO_URL")
        if not url:
            raise ConfigurationError("DOCSTORE_URL or MONGO_URL must be set to connect to the document store")
        return url

    @property
    def resolved_database(self) -> str:
        if self.database:
            return self.database
        from_url = _database_from_url(self.resolved_url)
        name = from_url or os.getenv("MONGO_DB_NAME")
        if not name:
            raise ConfigurationError(
                "No database name: set DOCSTORE_DATABASE, MONGO_DB_NAME or put it in the URL path"
            )
        return name

    def client_options(self) -> dict[str, object]:
        opts: dict[str, object] = {"appname": self.app_name}
        if self.auth_mechanism:
            opts["authMechanism"] = self.auth_mechanism
        if self.timeout_ms:
            opts["timeoutMS"] = self.timeout_ms
            opts["serverSelectionTimeoutMS"] = self.timeout_ms
        return opts


@lru_cache
def get_store_settings(**kwargs) -> StoreSettings:
    # Only include kwargs that are not None, so defaults in StoreSettings are used
    filtered = {k: v for k, v in kwargs.items() if v is not None}
    return StoreSettings(**filtered)


def _database_from_url(url: str) -> Optional[str]:
    # SRV URIs are parsed as plain ones so no DNS lookup happens here; only the path matters.
    if url.startswith("mongodb+srv://"):
        url = "mongodb://" + url[len("mongodb+srv://"):]
    try:
        return parse_uri(url, validate=False)["database"]
    except (MongoConfigurationError, ValueError) as exc:
        raise ConfigurationError(f"Invalid document store URL: {exc}") from exc
