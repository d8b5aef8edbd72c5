from .base import (
    Document,
    DocumentStore,
    ModifyReport,
    RemoveReport,
    SortSpec,
    StoreCollection,
    StoreCursor,
    UpdateReport,
)
from .memory import InMemoryCollection, InMemoryStore
from .motor import MotorCollection, MotorStore

__all__ = [
    "Document",
    "DocumentStore",
    "ModifyReport",
    "RemoveReport",
    "SortSpec",
    "StoreCollection",
    "StoreCursor",
    "UpdateReport",
    "InMemoryCollection",
    "InMemoryStore",
    "MotorCollection",
    "MotorStore",
]
