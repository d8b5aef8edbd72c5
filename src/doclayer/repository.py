from __future__ import annotations

import logging
from typing import Any, Mapping, Optional, Union

from .collection import CollectionHandle, HookSetup, default_hook_setup
from .cursor import CursorSpec
from .exceptions import NotFoundError, UpsertFailedError
from .hooks import Action, Handler, HookRegistry, Phase
from .ids import IdGenerator, generate_id
from .params import FindParams, InsertParams, RemoveParams, UpdateAllParams, UpdateOneParams
from .query import QueryNormalizer, Transformer
from .store.base import Document, DocumentStore, StoreCollection, StoreCursor

logger = logging.getLogger(__name__)

KEY = "_id"


def _keep_key(fields: Optional[Document]) -> Optional[Document]:
    """Projection for a remove snapshot; the store key must survive it."""
    if not fields or fields.get(KEY, True):
        return fields
    trimmed = {k: v for k, v in fields.items() if k != KEY}
    return trimmed or None


class DocumentRepository:
    """Hooked CRUD over one collection.

    - Queries may use ``"$$"`` shorthand directives (see ``doclayer.query``).
    - insert runs before/after-insert hooks, remove before/after-remove hooks,
      update_one/update_all after-update or after-upsert hooks. Reads fire none.
    - Application types customize behaviour through ``transformers`` and
      ``hook_setup`` rather than by overriding methods.
    """

    def __init__(
        self,
        collection: str,
        *,
        store: Optional[DocumentStore] = None,
        id_generator: Optional[IdGenerator] = None,
        transformers: Optional[Mapping[str, Transformer]] = None,
        hook_setup: Optional[HookSetup] = default_hook_setup,
    ):
        self.handle = CollectionHandle(
            collection,
            store=store,
            id_generator=id_generator or generate_id,
            hook_setup=hook_setup,
        )
        self.queries = QueryNormalizer(transformers)

    @property
    def name(self) -> str:
        return self.handle.name

    @property
    def hooks(self) -> HookRegistry:
        return self.handle.hooks

    def before(self, action: Union[Action, str], handler: Optional[Handler] = None):
        return self.hooks.before(action, handler)

    def after(self, action: Union[Action, str], handler: Optional[Handler] = None):
        return self.hooks.after(action, handler)

    async def collection(self) -> StoreCollection:
        return await self.handle.get()

    def _log(self, operation: str, msg: str, *args: Any) -> None:
        logger.debug(msg, *args, extra={"collection": self.name, "operation": operation})

    # ------------------------------------------------------------------ insert

    async def insert(
        self,
        doc: Optional[Document] = None,
        docs: Optional[list[Document]] = None,
    ) -> list[Document]:
        """Insert ``doc`` and/or ``docs``.

        The passed dicts are modified in place: they gain ``id`` (from the
        before-insert hook) and ``_id`` (from the store).
        """
        params = InsertParams(doc=doc, docs=docs)
        items = params.documents()
        collection = await self.collection()

        items = await self.hooks.run(Phase.BEFORE, Action.INSERT, items)
        if not items:
            return []
        self._log("insert", "Inserting %d documents", len(items))
        await collection.insert(items)
        return await self.hooks.run(Phase.AFTER, Action.INSERT, items)

    # -------------------------------------------------------------------- read

    def _spec(self, params: FindParams) -> CursorSpec:
        params.query = self.queries.normalize(params.query)
        return CursorSpec.build(
            params.query, fields=params.fields, sort=params.sort, skip=params.skip, limit=params.limit
        )

    async def cursor(
        self,
        query: Optional[Document] = None,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> StoreCursor:
        """The store cursor for the read, not yet materialized."""
        spec = self._spec(FindParams(query=query or {}, fields=fields, sort=sort, skip=skip, limit=limit))
        return spec.open(await self.collection())

    async def find(
        self,
        query: Optional[Document] = None,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> list[Document]:
        spec = self._spec(FindParams(query=query or {}, fields=fields, sort=sort, skip=skip, limit=limit))
        return await spec.to_list(await self.collection())

    async def find_one(
        self,
        query: Optional[Document] = None,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        skip: Optional[int] = None,
    ) -> Optional[Document]:
        docs = await self.find(query, fields=fields, sort=sort, skip=skip, limit=1)
        return docs[0] if docs else None

    async def count(
        self,
        query: Optional[Document] = None,
        *,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> int:
        """Total number of matching documents; ``skip``/``limit`` are ignored."""
        spec = self._spec(FindParams(query=query or {}, skip=skip, limit=limit))
        return await spec.count(await self.collection())

    async def size(
        self,
        query: Optional[Document] = None,
        *,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> int:
        """Number of matching documents after ``skip`` and ``limit``."""
        spec = self._spec(FindParams(query=query or {}, skip=skip, limit=limit))
        return await spec.size(await self.collection())

    # ------------------------------------------------------------------ remove

    async def remove(
        self,
        query: Optional[Document] = None,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        limit: Optional[int] = None,
        skip: Optional[int] = None,
    ) -> list[Document]:
        """Remove matching documents and return them.

        Before-remove hooks get the snapshot and decide what is deleted: a
        document they drop is kept in the store.
        """
        params = RemoveParams(query=query or {}, fields=_keep_key(fields), sort=sort, skip=skip, limit=limit)
        spec = self._spec(params)
        collection = await self.collection()

        snapshot = await spec.to_list(collection)
        docs = await self.hooks.run(Phase.BEFORE, Action.REMOVE, snapshot)

        keys = [d[KEY] for d in docs if KEY in d]
        if keys:
            report = await collection.remove({KEY: {"$in": keys}})
            self._log("remove", "Removed %d of %d snapshot documents", report.matched_count, len(keys))
            if report.matched_count != len(keys):
                # Concurrent writers touched the snapshot; reported, not corrected.
                logger.warning(
                    "Remove on %s deleted %d documents, expected %d",
                    self.name,
                    report.matched_count,
                    len(keys),
                    extra={"collection": self.name, "operation": "remove", "count": report.matched_count},
                )
        return await self.hooks.run(Phase.AFTER, Action.REMOVE, docs)

    # ------------------------------------------------------------------ update

    async def update_one(
        self,
        query: Optional[Document],
        update: Document,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        upsert: bool = False,
    ) -> Optional[Document]:
        """Atomically update one document and return it post-update.

        Raises NotFoundError when nothing matched and ``upsert`` is off;
        use ``update_all`` when no match is acceptable.
        """
        params = UpdateOneParams(query=query or {}, update=update, fields=fields, sort=sort, upsert=upsert)
        spec = self._spec(FindParams(query=params.query, fields=params.fields, sort=params.sort))
        params.query = spec.filter
        collection = await self.collection()

        doc, report = await collection.find_and_modify(
            spec.filter,
            params.update,
            upsert=params.upsert,
            return_new=True,
            sort=spec.sort or None,
            projection=spec.projection,
        )
        if doc is None:
            if params.upsert:
                raise UpsertFailedError("Upsert failed")
            raise NotFoundError("Document does not exist")

        action = Action.UPSERT if report.was_upserted else Action.UPDATE
        self._log("update_one", "update_one finished as %s", action.value)
        docs = await self.hooks.run(Phase.AFTER, action, doc)
        return docs[0] if docs else None

    async def update_all(
        self,
        query: Optional[Document],
        update: Document,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        upsert: bool = False,
    ) -> list[Document]:
        """Update every matching document and return the updated documents.

        The multi-update primitive does not return documents, so this reads the
        matching keys, updates by exactly those keys, then re-reads them. A
        document changed by another writer between the read and the update is
        not re-matched against ``query``.
        """
        params = UpdateAllParams(
            query=query or {}, update=update, fields=fields, sort=sort or [(KEY, 1)], upsert=upsert
        )
        spec = self._spec(FindParams(query=params.query, fields=params.fields, sort=params.sort))
        params.query = spec.filter
        collection = await self.collection()

        snapshot = await CursorSpec(filter=spec.filter, projection={KEY: True}, sort=spec.sort).to_list(collection)
        keys = [d[KEY] for d in snapshot]

        upserted = False
        if not keys and params.upsert:
            report = await collection.update(params.query, params.update, multi=True, upsert=True)
            keys = list(report.upserted_keys)
            upserted = bool(keys)
        elif keys:
            await collection.update({KEY: {"$in": keys}}, params.update, multi=True)

        if not keys:
            return []

        self._log("update_all", "update_all touched %d documents (upserted=%s)", len(keys), upserted)
        refetch = CursorSpec(filter={KEY: {"$in": keys}}, projection=spec.projection, sort=spec.sort)
        docs = await refetch.to_list(collection)
        return await self.hooks.run(Phase.AFTER, Action.UPSERT if upserted else Action.UPDATE, docs)
