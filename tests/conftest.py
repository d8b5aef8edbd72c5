"""
Root conftest.py for doclayer tests.

Provides:
1. Marker registration
2. A fresh in-memory store bound through ``connect()`` per test
3. A repository pre-filled with the ``bob_and_friends`` documents
"""

from __future__ import annotations

import copy
from typing import Any, Dict, List

import pytest
import pytest_asyncio

import doclayer.connection as connection
from doclayer import DocumentRepository, InMemoryStore, connect, dispose


BOB_AND_FRIENDS: List[Dict[str, Any]] = [
    {"name": "Bob", "age": 17},
    {"name": "Alice", "age": 17},
    {"name": "Chris", "age": 17},
    {"name": "Paul", "age": 16},
    {"name": "Waldo", "age": 20},
]


def pytest_configure(config):
    for name, desc in [
        ("hooks", "Hook registry and pipeline tests"),
        ("store", "Document store adapter tests"),
        ("concurrency", "Concurrent operation tests"),
    ]:
        config.addinivalue_line("markers", f"{name}: {desc}")


@pytest.fixture(autouse=True)
def _no_global_store(monkeypatch):
    """Every test starts disconnected."""
    monkeypatch.setattr(connection, "_store", None)


@pytest.fixture
def bob_and_friends() -> List[Dict[str, Any]]:
    return copy.deepcopy(BOB_AND_FRIENDS)


@pytest_asyncio.fixture
async def store():
    s = InMemoryStore()
    connect(store=s)
    yield s
    await dispose()


@pytest_asyncio.fixture
async def repo(store, bob_and_friends):
    r = DocumentRepository("unittests")
    await r.insert(docs=bob_and_friends)
    return r


class HookRecorder:
    """Handler that records every document it sees and marks it."""

    def __init__(self, mark: str = "modifiedAfter"):
        self.mark = mark
        self.calls: List[Dict[str, Any]] = []

    def __call__(self, payload) -> None:
        for doc in payload.docs:
            doc[self.mark] = True
            self.calls.append(doc)


@pytest.fixture
def recorder_factory():
    return HookRecorder
