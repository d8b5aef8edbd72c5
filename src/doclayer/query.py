"""Expansion of shorthand query directives.

A query may carry a ``"$$"`` sub-document of shorthand directives::

    {"name": "Alice", "$$": {"ids": ["NkXtJhvB", "V1GQFknvH"]}}

Each directive is resolved by the transformer registered under its key, and the
fragment it returns is merged into the query (later keys win on overlap). The
``"$$"`` key never reaches the store.
"""

from __future__ import annotations

import copy
from typing import Any, Callable, Mapping, Optional

from .exceptions import ConfigurationError, ValidationError
from .ids import make_oid
from .store.base import Document

MARKER = "$$"

# (value, accumulated query, whole "$$" document) -> fragment to merge
Transformer = Callable[[Any, Document, Document], Document]


def compact(values: Any) -> list[Any]:
    return [v for v in (values or []) if v]


def by_id(value: Any, query: Document, marker: Document) -> Document:
    return {"id": value}


def by_ids(value: Any, query: Document, marker: Document) -> Document:
    return {"id": {"$in": compact(value)}}


def by_store_id(value: Any, query: Document, marker: Document) -> Document:
    return {"_id": make_oid(value)}


def by_store_ids(value: Any, query: Document, marker: Document) -> Document:
    return {"_id": {"$in": [make_oid(v) for v in compact(value)]}}


DEFAULT_TRANSFORMERS: dict[str, Transformer] = {
    "id": by_id,
    "ids": by_ids,
    "storeId": by_store_id,
    "storeIds": by_store_ids,
}


def merge(target: Document, fragment: Mapping[str, Any]) -> Document:
    """Merge ``fragment`` into ``target`` in place; dicts merge, anything else is overwritten."""
    for key, value in fragment.items():
        if isinstance(value, Mapping) and isinstance(target.get(key), dict):
            merge(target[key], value)
        else:
            target[key] = copy.deepcopy(value)
    return target


class QueryNormalizer:
    def __init__(self, transformers: Optional[Mapping[str, Transformer]] = None):
        self._transformers: dict[str, Transformer] = dict(DEFAULT_TRANSFORMERS)
        for key, fn in (transformers or {}).items():
            self.register(key, fn)

    @property
    def transformers(self) -> Mapping[str, Transformer]:
        return dict(self._transformers)

    def register(self, key: str, fn: Transformer) -> None:
        if not isinstance(key, str) or not key:
            raise ConfigurationError(f"Query transformer key must be a non-empty string, got {key!r}")
        if not callable(fn):
            raise ConfigurationError(f'Query transformer for "{MARKER}.{key}" is not callable')
        self._transformers[key] = fn

    def normalize(self, query: Optional[Document]) -> Document:
        """Return a new query with the ``"$$"`` directives expanded. The input is not modified."""
        query = query or {}
        marker = query.get(MARKER) or {}
        if not isinstance(marker, Mapping):
            raise ValidationError(f'"{MARKER}" must be a mapping of directives, got {type(marker).__name__}')

        out = copy.deepcopy({k: v for k, v in query.items() if k != MARKER})
        for key, value in marker.items():
            fn = self._transformers.get(key)
            if fn is None:
                raise ConfigurationError(f'No query transformer registered for "{MARKER}.{key}"')
            merge(out, fn(value, out, dict(marker)))
        return out
