"""Process-scoped store handle.

``connect()`` must run before any repository is built; there is no implicit
connection.
"""

from __future__ import annotations

import logging
from typing import Optional

from .exceptions import ConfigurationError
from .settings import StoreSettings
from .store.base import DocumentStore

logger = logging.getLogger(__name__)

_store: Optional[DocumentStore] = None


def connect(
    settings: Optional[StoreSettings] = None,
    *,
    url: Optional[str] = None,
    store: Optional[DocumentStore] = None,
) -> DocumentStore:
    """Bind the process-wide store handle and return it.

    Pass ``store`` to bind an existing store (e.g. ``InMemoryStore``); otherwise
    a ``MotorStore`` is built from ``settings`` (or ``url``).
    """
    global _store
    if store is None:
        from .store.motor import MotorStore

        if url:
            settings = (settings or StoreSettings()).model_copy(update={"url": url})
        store = MotorStore(settings)
    if _store is not None and _store is not store:
        logger.info("Replacing the connected document store")
    _store = store
    return store


def get_store() -> DocumentStore:
    if _store is None:
        raise ConfigurationError("Not connected to the document store, call connect() first")
    return _store


def is_connected() -> bool:
    return _store is not None


async def dispose() -> None:
    global _store
    store, _store = _store, None
    if store is not None:
        await store.close()
