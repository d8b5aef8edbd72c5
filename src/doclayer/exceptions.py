"""Exceptions raised by the data-access layer."""

from __future__ import annotations

from typing import Any, Optional


class DocLayerError(RuntimeError):
    """Base exception for every error raised by doclayer."""


class ConfigurationError(DocLayerError):
    """Raised when the layer is wired incorrectly (no store, no collection name, unknown keys)."""


class ValidationError(DocLayerError):
    """Raised when an operation receives arguments it cannot work with."""


class NotFoundError(DocLayerError):
    """Raised when ``update_one`` matched nothing and upsert was not requested."""


class UpsertFailedError(DocLayerError):
    """Raised when an upsert was requested but the store returned no document."""


class HookError(DocLayerError):
    """Raised when a handler in a before/after chain fails.

    ``payload`` is the payload as mutated up to (and including) the failing
    handler; for a fan-out it is the flattened batch. The handler's own
    exception is chained as ``__cause__``.
    """

    def __init__(self, message: str, *, payload: Any = None, handler: Any = None):
        super().__init__(message)
        self.payload = payload
        self.handler = handler


class StoreError(DocLayerError):
    """A failure reported by the underlying document store."""

    def __init__(self, message: str, *, original: Optional[BaseException] = None):
        super().__init__(message)
        self.original = original


class DuplicateKeyError(StoreError):
    """A uniqueness constraint was violated by a write."""


__all__ = [
    "DocLayerError",
    "ConfigurationError",
    "ValidationError",
    "NotFoundError",
    "UpsertFailedError",
    "HookError",
    "StoreError",
    "DuplicateKeyError",
]
