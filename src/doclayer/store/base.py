from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Protocol, Sequence

Document = dict[str, Any]
SortSpec = list[tuple[str, int]]


@dataclass
class UpdateReport:
    matched_count: int
    upserted_keys: list[Any] = field(default_factory=list)


@dataclass
class RemoveReport:
    matched_count: int


@dataclass
class ModifyReport:
    was_upserted: bool = False


class StoreCursor(Protocol):
    """Lazy, chainable read. ``sort``/``skip``/``limit`` return the cursor itself."""

    def sort(self, spec: SortSpec) -> "StoreCursor":
        ...

    def skip(self, n: int) -> "StoreCursor":
        ...

    def limit(self, n: int) -> "StoreCursor":
        ...

    async def to_list(self) -> list[Document]:
        ...

    async def count(self) -> int:
        """Number of documents matching the filter, ignoring skip/limit."""
        ...

    async def size(self) -> int:
        """Number of documents the cursor yields once skip/limit are applied."""
        ...


class StoreCollection(Protocol):
    name: str

    async def insert(self, docs: Sequence[Document]) -> list[Document]:
        ...

    def find(self, filter: Document, projection: Optional[Document] = None) -> StoreCursor:
        ...

    async def remove(self, filter: Document) -> RemoveReport:
        ...

    async def update(
        self,
        filter: Document,
        update: Document,
        *,
        multi: bool = False,
        upsert: bool = False,
    ) -> UpdateReport:
        ...

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
        ...

    async def ensure_unique_index(self, field_name: str) -> None:
        ...


class DocumentStore(Protocol):
    def collection(self, name: str) -> StoreCollection:
        ...

    async def close(self) -> None:
        ...
