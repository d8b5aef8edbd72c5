"""Per-call request parameters.

Built once per operation and mutated as they move through the pipeline: the
query is replaced by its normalized form, inserted documents gain identifiers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .exceptions import ValidationError
from .store.base import Document


@dataclass
class InsertParams:
    doc: Optional[Document] = None
    docs: Optional[list[Document]] = None

    def documents(self) -> list[Document]:
        """``doc`` and ``docs`` combined, ``None`` entries dropped. ``{}`` is a document."""
        combined = [self.doc, *(self.docs or [])]
        out = [d for d in combined if d is not None]
        if not out:
            raise ValidationError("No doc or docs specified for insert operation")
        for d in out:
            if not isinstance(d, dict):
                raise ValidationError(f"Documents must be dicts, got {type(d).__name__}")
        return out


@dataclass
class FindParams:
    query: Document = field(default_factory=dict)
    fields: Optional[Document] = None
    sort: Any = None
    skip: Optional[int] = None
    limit: Optional[int] = None


@dataclass
class RemoveParams(FindParams):
    pass


@dataclass
class UpdateParams:
    query: Document = field(default_factory=dict)
    update: Document = field(default_factory=dict)
    fields: Optional[Document] = None
    sort: Any = None
    upsert: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.update, Mapping) or not self.update:
            raise ValidationError("An update document is required")


@dataclass
class UpdateOneParams(UpdateParams):
    pass


@dataclass
class UpdateAllParams(UpdateParams):
    pass
