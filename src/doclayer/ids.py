"""Identifier helpers.

Two identifiers live on every document: the store primary key (``_id``,
a BSON ObjectId assigned by the store) and the application id (``id``, a short
URL-friendly string generated here).
"""

from __future__ import annotations

import string
import uuid
from typing import Any, Protocol

from bson import ObjectId
from bson.errors import InvalidId

from .exceptions import ValidationError

ALPHABET = string.digits + string.ascii_letters + "-_"
ID_LENGTH = 12


class IdGenerator(Protocol):
    def __call__(self) -> str:
        ...


def generate_id() -> str:
    """Return a random, URL-friendly application identifier."""
    n = uuid.uuid4().int
    out = []
    for _ in range(ID_LENGTH):
        n, rem = divmod(n, len(ALPHABET))
        out.append(ALPHABET[rem])
    return "".join(out)


def is_valid_id(value: Any) -> bool:
    return (
        isinstance(value, str)
        and len(value) == ID_LENGTH
        and all(ch in ALPHABET for ch in value)
    )


def make_oid(value: Any = None) -> ObjectId:
    """Create a new ObjectId, or convert a textual id into one."""
    if value is None:
        return ObjectId()
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(value)
    except (InvalidId, TypeError) as exc:
        raise ValidationError(f"Not a valid store id: {value!r}") from exc
