from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from ..connection import connect, dispose
from ..settings import StoreSettings
from ..store.base import DocumentStore


def add_docstore(
    app: FastAPI,
    *,
    url: Optional[str] = None,
    store: Optional[DocumentStore] = None,
    settings: Optional[StoreSettings] = None,
    dsn_env: str = "MONGO_URL",
) -> None:
    """Connect the document store for the lifetime of ``app``."""

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        if store is not None:
            _app.state.docstore = connect(store=store)
        else:
            _app.state.docstore = connect(settings, url=url or os.getenv(dsn_env))
        try:
            yield
        finally:
            await dispose()

    app.router.lifespan_context = lifespan
