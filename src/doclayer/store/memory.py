"""In-process document store for tests and local development.

Implements the same contract as :class:`doclayer.store.motor.MotorStore` over
plain dicts. Every primitive runs to completion without awaiting, so each call
is atomic with respect to other tasks on the loop; nothing spans two calls.
"""

from __future__ import annotations

import copy
import re
from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from bson import ObjectId

from ..exceptions import DuplicateKeyError, StoreError
from .base import Document, ModifyReport, RemoveReport, SortSpec, UpdateReport

_MISSING = object()


# =========================
# Paths
# =========================
def get_path(doc: Any, dotted: str, default: Any = _MISSING) -> Any:
    cur = doc
    for part in dotted.split("."):
        if isinstance(cur, dict) and part in cur:
            cur = cur[part]
        elif isinstance(cur, list) and part.isdigit() and int(part) < len(cur):
            cur = cur[int(part)]
        else:
            return default
    return cur


def set_path(doc: Document, dotted: str, value: Any) -> None:
    parts = dotted.split(".")
    cur = doc
    for part in parts[:-1]:
        if not isinstance(cur.get(part), dict):
            cur[part] = {}
        cur = cur[part]
    cur[parts[-1]] = value


def unset_path(doc: Document, dotted: str) -> None:
    parts = dotted.split(".")
    cur = doc
    for part in parts[:-1]:
        cur = cur.get(part)
        if not isinstance(cur, dict):
            return
    cur.pop(parts[-1], None)


# =========================
# Matching
# =========================
def _eq(value: Any, arg: Any) -> bool:
    if value is _MISSING:
        return arg is None
    if isinstance(value, list) and not isinstance(arg, list):
        return arg in value
    return value == arg


def _cmp(value: Any, arg: Any, op: str) -> bool:
    if value is _MISSING or value is None:
        return False
    candidates = value if isinstance(value, list) else [value]
    for v in candidates:
        try:
            if op == "$gt" and v > arg:
                return True
            if op == "$gte" and v >= arg:
                return True
            if op == "$lt" and v < arg:
                return True
            if op == "$lte" and v <= arg:
                return True
        except TypeError:
            continue
    return False


def _regex(value: Any, pattern: Any, options: str = "") -> bool:
    if isinstance(pattern, re.Pattern):
        rx = pattern
    else:
        flags = 0
        if "i" in options:
            flags |= re.IGNORECASE
        if "m" in options:
            flags |= re.MULTILINE
        if "s" in options:
            flags |= re.DOTALL
        rx = re.compile(pattern, flags)
    candidates = value if isinstance(value, list) else [value]
    return any(isinstance(v, str) and rx.search(v) for v in candidates)


def _is_operator_doc(cond: Any) -> bool:
    return isinstance(cond, dict) and bool(cond) and all(k.startswith("$") for k in cond)


def _match_ops(value: Any, ops: dict[str, Any]) -> bool:
    for op, arg in ops.items():
        if op == "$eq":
            ok = _eq(value, arg)
        elif op == "$ne":
            ok = not _eq(value, arg)
        elif op in ("$gt", "$gte", "$lt", "$lte"):
            ok = _cmp(value, arg, op)
        elif op == "$in":
            ok = any(_eq(value, a) for a in arg)
        elif op == "$nin":
            ok = not any(_eq(value, a) for a in arg)
        elif op == "$exists":
            ok = (value is not _MISSING) == bool(arg)
        elif op == "$regex":
            ok = _regex(value, arg, ops.get("$options", ""))
        elif op == "$options":
            ok = True
        elif op == "$not":
            ok = not (_match_ops(value, arg) if _is_operator_doc(arg) else _regex(value, arg))
        elif op == "$size":
            ok = isinstance(value, list) and len(value) == arg
        elif op == "$all":
            ok = isinstance(value, list) and all(a in value for a in arg)
        else:
            raise StoreError(f"unknown operator: {op}")
        if not ok:
            return False
    return True


def match(doc: Document, query: Optional[Document]) -> bool:
    for key, cond in (query or {}).items():
        if key == "$and":
            ok = all(match(doc, q) for q in cond)
        elif key == "$or":
            ok = any(match(doc, q) for q in cond)
        elif key == "$nor":
            ok = not any(match(doc, q) for q in cond)
        elif key.startswith("$"):
            raise StoreError(f"unknown top level operator: {key}")
        else:
            value = get_path(doc, key)
            if _is_operator_doc(cond):
                ok = _match_ops(value, cond)
            elif isinstance(cond, re.Pattern):
                ok = _regex(value, cond)
            else:
                ok = _eq(value, cond)
        if not ok:
            return False
    return True


# =========================
# Sorting / projection
# =========================
def _type_rank(value: Any) -> int:
    if value is _MISSING or value is None:
        return 0
    if isinstance(value, bool):
        return 7
    if isinstance(value, (int, float)):
        return 1
    if isinstance(value, str):
        return 2
    if isinstance(value, dict):
        return 3
    if isinstance(value, list):
        return 4
    if isinstance(value, ObjectId):
        return 6
    if isinstance(value, datetime):
        return 8
    return 9


def _sort_key(value: Any) -> tuple[int, Any]:
    rank = _type_rank(value)
    if rank == 0:
        return (0, 0)
    if rank in (3, 4, 9):
        return (rank, repr(value))
    return (rank, value)


def sort_docs(docs: list[Document], spec: Optional[SortSpec]) -> list[Document]:
    for key, direction in reversed(spec or []):
        docs.sort(key=lambda d: _sort_key(get_path(d, key)), reverse=direction < 0)
    return docs


def project(doc: Document, projection: Optional[Document]) -> Document:
    if not projection:
        return copy.deepcopy(doc)
    included = [k for k, v in projection.items() if v]
    if included:
        out: Document = {}
        for key in included:
            value = get_path(doc, key)
            if value is not _MISSING:
                set_path(out, key, copy.deepcopy(value))
        if "_id" in doc and projection.get("_id", True):
            out["_id"] = doc["_id"]
        return out
    out = copy.deepcopy(doc)
    for key, v in projection.items():
        if not v:
            unset_path(out, key)
    return out


# =========================
# Updates
# =========================
def _is_update_doc(update: Document) -> bool:
    return any(k.startswith("$") for k in update)


def apply_update(doc: Document, update: Document, *, inserting: bool = False) -> Document:
    """Return a new document with ``update`` applied; ``doc`` is not touched."""
    if not _is_update_doc(update):
        # replacement document
        new_doc = copy.deepcopy(update)
        if "_id" in doc:
            new_doc["_id"] = doc["_id"]
        return new_doc

    new_doc = copy.deepcopy(doc)
    for op, changes in update.items():
        if op == "$set":
            for k, v in changes.items():
                set_path(new_doc, k, copy.deepcopy(v))
        elif op == "$setOnInsert":
            if inserting:
                for k, v in changes.items():
                    set_path(new_doc, k, copy.deepcopy(v))
        elif op == "$unset":
            for k in changes:
                unset_path(new_doc, k)
        elif op == "$inc":
            for k, v in changes.items():
                cur = get_path(new_doc, k, 0)
                if not isinstance(cur, (int, float)) or isinstance(cur, bool):
                    raise StoreError(f"Cannot apply $inc to a value of non-numeric type: {k}")
                set_path(new_doc, k, cur + v)
        elif op in ("$push", "$addToSet"):
            for k, v in changes.items():
                arr = get_path(new_doc, k, None)
                if arr is None or arr is _MISSING:
                    arr = []
                if not isinstance(arr, list):
                    raise StoreError(f"The field '{k}' must be an array for {op}")
                items = v["$each"] if isinstance(v, dict) and "$each" in v else [v]
                for item in items:
                    if op == "$push" or item not in arr:
                        arr.append(copy.deepcopy(item))
                set_path(new_doc, k, arr)
        else:
            raise StoreError(f"Unknown modifier: {op}")

    if "_id" in doc and new_doc.get("_id") != doc["_id"]:
        raise StoreError("Performing an update on the path '_id' would modify the immutable field '_id'")
    return new_doc


def _equality_fields(query: Optional[Document]) -> Document:
    seed: Document = {}
    for key, cond in (query or {}).items():
        if key == "$and":
            for sub in cond:
                for k, v in _equality_fields(sub).items():
                    set_path(seed, k, v)
        elif key.startswith("$"):
            continue
        elif _is_operator_doc(cond):
            if "$eq" in cond:
                set_path(seed, key, copy.deepcopy(cond["$eq"]))
        else:
            set_path(seed, key, copy.deepcopy(cond))
    return seed


# =========================
# Cursor / collection
# =========================
class InMemoryCursor:
    def __init__(self, collection: "InMemoryCollection", filter: Document, projection: Optional[Document]):
        self._collection = collection
        self._filter = filter or {}
        self._projection = projection
        self._sort: SortSpec = []
        self._skip = 0
        self._limit = 0

    def sort(self, spec: SortSpec) -> "InMemoryCursor":
        self._sort = list(spec)
        return self

    def skip(self, n: int) -> "InMemoryCursor":
        self._skip = max(0, int(n or 0))
        return self

    def limit(self, n: int) -> "InMemoryCursor":
        self._limit = abs(int(n or 0))
        return self

    def _window(self) -> list[Document]:
        docs = sort_docs(self._collection._matching(self._filter), self._sort)
        docs = docs[self._skip:]
        if self._limit:
            docs = docs[: self._limit]
        return docs

    async def to_list(self) -> list[Document]:
        return [project(d, self._projection) for d in self._window()]

    async def count(self) -> int:
        return len(self._collection._matching(self._filter))

    async def size(self) -> int:
        return len(self._window())


class InMemoryCollection:
    def __init__(self, name: str):
        self.name = name
        self._docs: dict[Any, Document] = {}
        self._unique: list[str] = []

    def _matching(self, filter: Optional[Document]) -> list[Document]:
        return [d for d in self._docs.values() if match(d, filter)]

    def _check_unique(self, candidate: Document, *, exclude: Any = _MISSING) -> None:
        key = candidate.get("_id")
        if exclude is _MISSING and key in self._docs:
            raise DuplicateKeyError(
                f"E11000 duplicate key error collection: {self.name} index: _id_ dup key: {{ _id: {key!r} }}"
            )
        for field_name in self._unique:
            value = get_path(candidate, field_name, None)
            for other_key, other in self._docs.items():
                if other_key == exclude:
                    continue
                if get_path(other, field_name, None) == value:
                    raise DuplicateKeyError(
                        f"E11000 duplicate key error collection: {self.name} index: {field_name}_1 "
                        f"dup key: {{ {field_name}: {value!r} }}"
                    )

    def _store(self, doc: Document) -> None:
        self._check_unique(doc)
        self._docs[doc["_id"]] = copy.deepcopy(doc)

    async def insert(self, docs: Sequence[Document]) -> list[Document]:
        # Keys are assigned to every document up front, then inserted in order;
        # the first violation stops the batch and earlier documents stay.
        for doc in docs:
            if "_id" not in doc:
                doc["_id"] = ObjectId()
        for doc in docs:
            self._store(doc)
        return list(docs)

    def find(self, filter: Document, projection: Optional[Document] = None) -> InMemoryCursor:
        return InMemoryCursor(self, filter, projection)

    async def remove(self, filter: Document) -> RemoveReport:
        keys = [d["_id"] for d in self._matching(filter)]
        for key in keys:
            del self._docs[key]
        return RemoveReport(matched_count=len(keys))

    def _replace(self, old: Document, new: Document) -> None:
        self._check_unique(new, exclude=old["_id"])
        self._docs[old["_id"]] = new

    def _upsert(self, filter: Document, update: Document) -> Document:
        seed = _equality_fields(filter)
        if _is_update_doc(update):
            new_doc = apply_update(seed, update, inserting=True)
        else:
            new_doc = apply_update({}, update, inserting=True)
            if "_id" in seed:
                new_doc.setdefault("_id", seed["_id"])
        new_doc.setdefault("_id", ObjectId())
        self._store(new_doc)
        return new_doc

    async def update(
        self,
        filter: Document,
        update: Document,
        *,
        multi: bool = False,
        upsert: bool = False,
    ) -> UpdateReport:
        matched = self._matching(filter)
        if not multi:
            matched = matched[:1]
        for doc in matched:
            self._replace(doc, apply_update(doc, update))
        if not matched and upsert:
            new_doc = self._upsert(filter, update)
            return UpdateReport(matched_count=0, upserted_keys=[new_doc["_id"]])
        return UpdateReport(matched_count=len(matched))

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
        matched = sort_docs(self._matching(filter), sort)
        if matched:
            old = matched[0]
            new = apply_update(old, update)
            self._replace(old, new)
            return project(new if return_new else old, projection), ModifyReport(was_upserted=False)
        if upsert:
            new = self._upsert(filter, update)
            return (project(new, projection) if return_new else None), ModifyReport(was_upserted=True)
        return None, ModifyReport(was_upserted=False)

    async def ensure_unique_index(self, field_name: str) -> None:
        if field_name in self._unique:
            return
        seen: list[Any] = []
        for doc in self._docs.values():
            value = get_path(doc, field_name, None)
            if value in seen:
                raise DuplicateKeyError(
                    f"E11000 duplicate key error collection: {self.name} index: {field_name}_1 "
                    f"dup key: {{ {field_name}: {value!r} }}"
                )
            seen.append(value)
        self._unique.append(field_name)

    def index_fields(self) -> list[str]:
        return list(self._unique)


class InMemoryStore:
    """Simple in-memory document store for tests/dev only."""

    def __init__(self, collections: Iterable[str] = ()):
        self._collections: dict[str, InMemoryCollection] = {}
        self.closed = False
        for name in collections:
            self.collection(name)

    def collection(self, name: str) -> InMemoryCollection:
        if name not in self._collections:
            self._collections[name] = InMemoryCollection(name)
        return self._collections[name]

    def collection_names(self) -> list[str]:
        return list(self._collections)

    async def close(self) -> None:
        self.closed = True
