from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional

from .connection import get_store
from .exceptions import ConfigurationError
from .hooks import Action, Handler, HookPayload, HookRegistry, Phase
from .ids import IdGenerator, generate_id
from .store.base import DocumentStore, StoreCollection

logger = logging.getLogger(__name__)

ID_FIELD = "id"

# Called once, right after the unique index exists, to install default hooks.
HookSetup = Callable[["CollectionHandle"], None]


def assign_ids(generator: IdGenerator, field_name: str = ID_FIELD) -> Handler:
    """Before-insert handler giving every document without an id a fresh one."""

    def assign_id(payload: HookPayload) -> None:
        for doc in payload.docs:
            if not doc.get(field_name):
                doc[field_name] = generator()

    return assign_id


def default_hook_setup(handle: "CollectionHandle") -> None:
    # Upserts never get an id assigned; only the insert path does.
    handle.hooks.register(
        Phase.BEFORE, Action.INSERT, assign_ids(handle.id_generator, handle.id_field), prepend=True
    )


class CollectionHandle:
    """Owns the store collection for one logical collection binding.

    Initialization (index + default hooks) happens on first ``get()`` and is
    memoized; a failed initialization is not memoized.
    """

    def __init__(
        self,
        name: str,
        *,
        store: Optional[DocumentStore] = None,
        id_generator: IdGenerator = generate_id,
        hook_setup: Optional[HookSetup] = default_hook_setup,
        id_field: str = ID_FIELD,
    ):
        if not name:
            raise ConfigurationError("No collection name provided")
        self.name = name
        self.id_generator = id_generator
        self.id_field = id_field
        self.hooks = HookRegistry()
        self._store = store if store is not None else get_store()
        self._hook_setup = hook_setup
        self._collection: Optional[StoreCollection] = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._collection is not None

    async def get(self) -> StoreCollection:
        if self._collection is not None:
            return self._collection
        async with self._lock:
            if self._collection is None:
                collection = self._store.collection(self.name)
                await collection.ensure_unique_index(self.id_field)
                if self._hook_setup is not None:
                    self._hook_setup(self)
                self._collection = collection
                logger.debug("Initialized collection %s", self.name, extra={"collection": self.name})
        return self._collection
