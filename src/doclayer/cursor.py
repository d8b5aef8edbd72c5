from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .exceptions import ValidationError
from .store.base import Document, SortSpec, StoreCollection, StoreCursor


def normalize_sort(sort: Any) -> SortSpec:
    """Accept ``{"name": 1}``, ``[("name", 1)]``, ``"name"`` or ``"-name"``."""
    if not sort:
        return []
    if isinstance(sort, str):
        return [(sort[1:], -1)] if sort.startswith("-") else [(sort, 1)]
    items = sort.items() if isinstance(sort, Mapping) else sort
    spec: SortSpec = []
    for item in items:
        try:
            key, direction = item
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid sort entry: {item!r}") from None
        if direction not in (1, -1):
            raise ValidationError(f"Sort direction for {key!r} must be 1 or -1, got {direction!r}")
        spec.append((str(key), int(direction)))
    return spec


def _non_negative(name: str, value: Any) -> int:
    if value is None or value is False:
        return 0
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError(f"{name} must be a non-negative integer, got {value!r}")
    return value


@dataclass
class CursorSpec:
    """A filtered/sorted/paginated read, ready to be opened on a collection.

    ``limit == 0`` means unbounded.
    """

    filter: Document = field(default_factory=dict)
    projection: Optional[Document] = None
    sort: SortSpec = field(default_factory=list)
    skip: int = 0
    limit: int = 0

    @classmethod
    def build(
        cls,
        filter: Optional[Document] = None,
        *,
        fields: Optional[Document] = None,
        sort: Any = None,
        skip: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> "CursorSpec":
        return cls(
            filter=filter or {},
            projection=dict(fields) if fields else None,
            sort=normalize_sort(sort),
            skip=_non_negative("skip", skip),
            limit=_non_negative("limit", limit),
        )

    def open(self, collection: StoreCollection) -> StoreCursor:
        cursor = collection.find(self.filter, self.projection)
        if self.sort:
            cursor = cursor.sort(self.sort)
        if self.skip:
            cursor = cursor.skip(self.skip)
        return cursor.limit(self.limit)

    async def to_list(self, collection: StoreCollection) -> list[Document]:
        return await self.open(collection).to_list()

    async def count(self, collection: StoreCollection) -> int:
        """Raw match cardinality; skip/limit do not apply."""
        return await self.open(collection).count()

    async def size(self, collection: StoreCollection) -> int:
        """What the cursor would yield with skip/limit applied."""
        return await self.open(collection).size()
