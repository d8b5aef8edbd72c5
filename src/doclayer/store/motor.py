from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional, Sequence

from bson.son import SON
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo import ASCENDING
from pymongo import errors as mongo_errors

from ..exceptions import DuplicateKeyError, StoreError
from ..settings import StoreSettings
from .base import Document, ModifyReport, RemoveReport, SortSpec, UpdateReport

logger = logging.getLogger(__name__)


@contextmanager
def translate_errors(op: str) -> Iterator[None]:
    """Re-raise driver exceptions as StoreError, keeping the driver error chained."""
    try:
        yield
    except mongo_errors.DuplicateKeyError as exc:
        raise DuplicateKeyError(str(exc), original=exc) from exc
    except mongo_errors.BulkWriteError as exc:
        write_errors = (exc.details or {}).get("writeErrors") or []
        if any(err.get("code") == 11000 for err in write_errors):
            raise DuplicateKeyError(str(exc), original=exc) from exc
        raise StoreError(f"{op} failed: {exc}", original=exc) from exc
    except mongo_errors.PyMongoError as exc:
        raise StoreError(f"{op} failed: {exc}", original=exc) from exc


class MotorCursor:
    """Chainable cursor on top of a motor cursor.

    ``count``/``size`` go through ``count_documents`` because cursor counting
    was removed from the driver.
    """

    def __init__(self, collection: AsyncIOMotorCollection, filter: Document, projection: Optional[Document]):
        self._collection = collection
        self._filter = filter or {}
        self._cursor = collection.find(self._filter, projection or None)
        self._skip = 0
        self._limit = 0

    def sort(self, spec: SortSpec) -> "MotorCursor":
        if spec:
            self._cursor = self._cursor.sort(list(spec))
        return self

    def skip(self, n: int) -> "MotorCursor":
        self._skip = max(0, int(n or 0))
        self._cursor = self._cursor.skip(self._skip)
        return self

    def limit(self, n: int) -> "MotorCursor":
        self._limit = abs(int(n or 0))
        self._cursor = self._cursor.limit(self._limit)
        return self

    async def to_list(self) -> list[Document]:
        with translate_errors("find"):
            return await self._cursor.to_list(length=None)

    async def count(self) -> int:
        with translate_errors("count"):
            return await self._collection.count_documents(self._filter)

    async def size(self) -> int:
        kwargs: dict[str, int] = {}
        if self._skip:
            kwargs["skip"] = self._skip
        if self._limit:
            kwargs["limit"] = self._limit
        with translate_errors("size"):
            return await self._collection.count_documents(self._filter, **kwargs)


class MotorCollection:
    def __init__(self, collection: AsyncIOMotorCollection):
        self._collection = collection
        self.name = collection.name

    async def insert(self, docs: Sequence[Document]) -> list[Document]:
        # insert_many assigns _id on the passed dicts in place
        with translate_errors("insert"):
            await self._collection.insert_many(list(docs), ordered=True)
        return list(docs)

    def find(self, filter: Document, projection: Optional[Document] = None) -> MotorCursor:
        return MotorCursor(self._collection, filter, projection)

    async def remove(self, filter: Document) -> RemoveReport:
        with translate_errors("remove"):
            res = await self._collection.delete_many(filter)
        return RemoveReport(matched_count=int(res.deleted_count or 0))

    async def update(
        self,
        filter: Document,
        update: Document,
        *,
        multi: bool = False,
        upsert: bool = False,
    ) -> UpdateReport:
        method = self._collection.update_many if multi else self._collection.update_one
        with translate_errors("update"):
            res = await method(filter, update, upsert=upsert)
        upserted = [res.upserted_id] if res.upserted_id is not None else []
        return UpdateReport(matched_count=int(res.matched_count or 0), upserted_keys=upserted)

    async def find_and_modify(
        self,
        filter: Document,
        update: Document,
        *,
        upsert: bool = False,
        return_new: bool = True,
        sort: Optional[SortSpec] = None,
        projection: Optional[Document] = None,
    ) -> tuple[Optional[Document], ModifyReport]:
        # find_one_and_update hides lastErrorObject, which is the only place
        # the server says whether the document was upserted.
        cmd: SON[str, Any] = SON([("findAndModify", self.name), ("query", filter), ("update", update)])
        cmd["new"] = return_new
        cmd["upsert"] = upsert
        if sort:
            cmd["sort"] = SON(list(sort))
        if projection:
            cmd["fields"] = projection
        with translate_errors("findAndModify"):
            res = await self._collection.database.command(cmd)
        last = res.get("lastErrorObject") or {}
        return res.get("value"), ModifyReport(was_upserted="upserted" in last)

    async def ensure_unique_index(self, field_name: str) -> None:
        with translate_errors("ensure_unique_index"):
            await self._collection.create_index([(field_name, ASCENDING)], unique=True)


class MotorStore:
    """Holds the motor client and the configured database."""

    def __init__(
        self,
        settings: Optional[StoreSettings] = None,
        *,
        client: Optional[AsyncIOMotorClient] = None,
        database: Optional[str] = None,
    ):
        settings = settings or StoreSettings()
        if client is None:
            client = AsyncIOMotorClient(settings.resolved_url, **settings.client_options())
        self._client = client
        self._db: AsyncIOMotorDatabase = client[database or settings.resolved_database]
        logger.info("Document store bound to database %s", self._db.name)

    @property
    def database(self) -> AsyncIOMotorDatabase:
        return self._db

    def collection(self, name: str) -> MotorCollection:
        return MotorCollection(self._db[name])

    async def close(self) -> None:
        self._client.close()
