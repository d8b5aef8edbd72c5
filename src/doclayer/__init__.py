"""Hooked CRUD orchestration over a document store."""

from .collection import CollectionHandle, assign_ids, default_hook_setup
from .connection import connect, dispose, get_store, is_connected
from .cursor import CursorSpec
from .exceptions import (
    ConfigurationError,
    DocLayerError,
    DuplicateKeyError,
    HookError,
    NotFoundError,
    StoreError,
    UpsertFailedError,
    ValidationError,
)
from .hooks import Action, HookPayload, HookRegistry, Phase, run_fan_out, run_hooks
from .ids import generate_id, is_valid_id, make_oid
from .query import QueryNormalizer
from .repository import DocumentRepository
from .settings import StoreSettings, get_store_settings
from .store import InMemoryStore, MotorStore

__all__ = [
    # Orchestration
    "DocumentRepository",
    "CollectionHandle",
    "assign_ids",
    "default_hook_setup",
    "CursorSpec",
    "QueryNormalizer",
    # Hooks
    "Action",
    "Phase",
    "HookPayload",
    "HookRegistry",
    "run_hooks",
    "run_fan_out",
    # Connection / config
    "connect",
    "dispose",
    "get_store",
    "is_connected",
    "StoreSettings",
    "get_store_settings",
    "InMemoryStore",
    "MotorStore",
    # Identifiers
    "generate_id",
    "is_valid_id",
    "make_oid",
    # Errors
    "DocLayerError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "UpsertFailedError",
    "HookError",
    "StoreError",
    "DuplicateKeyError",
]
