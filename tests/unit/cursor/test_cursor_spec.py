from __future__ import annotations

import pytest

from doclayer.cursor import CursorSpec, normalize_sort
from doclayer.exceptions import ValidationError
from doclayer.store.memory import InMemoryCollection


@pytest.mark.parametrize(
    "raw,expected",
    [
        (None, []),
        ({}, []),
        ({"name": 1}, [("name", 1)]),
        ({"age": -1, "name": 1}, [("age", -1), ("name", 1)]),
        ([("name", -1)], [("name", -1)]),
        ("name", [("name", 1)]),
        ("-name", [("name", -1)]),
    ],
)
def test_normalize_sort(raw, expected):
    assert normalize_sort(raw) == expected


def test_normalize_sort_rejects_bad_direction():
    with pytest.raises(ValidationError):
        normalize_sort({"name": 2})
    with pytest.raises(ValidationError):
        normalize_sort(["name"])


@pytest.mark.parametrize("field_name", ["skip", "limit"])
def test_build_rejects_negative_paging(field_name):
    with pytest.raises(ValidationError):
        CursorSpec.build({}, **{field_name: -1})


def test_build_treats_falsy_limit_as_unbounded():
    spec = CursorSpec.build({"a": 1}, fields={}, limit=None, skip=None)
    assert spec.limit == 0
    assert spec.skip == 0
    assert spec.projection is None


@pytest.mark.asyncio
async def test_count_ignores_skip_and_limit_but_size_does_not():
    coll = InMemoryCollection("numbers")
    await coll.insert([{"n": i, "even": i % 2 == 0} for i in range(10)])

    spec = CursorSpec.build({"even": True}, sort={"n": 1}, skip=2, limit=2)
    assert await spec.count(coll) == 5
    assert await spec.size(coll) == 2
    assert [d["n"] for d in await spec.to_list(coll)] == [4, 6]

    tail = CursorSpec.build({"even": True}, skip=4, limit=10)
    assert await tail.size(coll) == 1
    beyond = CursorSpec.build({"even": True}, skip=7)
    assert await beyond.size(coll) == 0


@pytest.mark.asyncio
async def test_open_applies_projection_and_sort():
    coll = InMemoryCollection("numbers")
    await coll.insert([{"n": i, "tag": "x"} for i in (3, 1, 2)])

    docs = await CursorSpec.build({}, fields={"n": 1, "_id": 0}, sort={"n": -1}).open(coll).to_list()
    assert docs == [{"n": 3}, {"n": 2}, {"n": 1}]
