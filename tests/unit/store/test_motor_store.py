"""
Tests for the motor adapter, driven through mocked motor objects.
"""

from __future__ import annotations

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from bson import ObjectId
from pymongo import errors as mongo_errors

from doclayer.exceptions import DuplicateKeyError, StoreError
from doclayer.settings import StoreSettings
from doclayer.store.motor import MotorCollection, MotorCursor, MotorStore

pytestmark = pytest.mark.store


@pytest.fixture
def motor_cursor():
    cursor = Mock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[{"_id": 1}])
    return cursor


@pytest.fixture
def mock_motor_collection(motor_cursor):
    collection = Mock()
    collection.name = "things"
    collection.find.return_value = motor_cursor
    collection.insert_many = AsyncMock()
    collection.update_one = AsyncMock()
    collection.update_many = AsyncMock()
    collection.delete_many = AsyncMock()
    collection.count_documents = AsyncMock(return_value=7)
    collection.create_index = AsyncMock()
    collection.database.command = AsyncMock()
    return collection


class TestMotorCursor:
    @pytest.mark.asyncio
    async def test_chains_onto_motor_cursor(self, mock_motor_collection, motor_cursor):
        cursor = MotorCursor(mock_motor_collection, {"a": 1}, {})
        cursor.sort([("a", 1)]).skip(2).limit(3)

        assert await cursor.to_list() == [{"_id": 1}]
        mock_motor_collection.find.assert_called_once_with({"a": 1}, None)
        motor_cursor.sort.assert_called_once_with([("a", 1)])
        motor_cursor.skip.assert_called_once_with(2)
        motor_cursor.limit.assert_called_once_with(3)
        motor_cursor.to_list.assert_awaited_once_with(length=None)

    @pytest.mark.asyncio
    async def test_count_ignores_paging_size_applies_it(self, mock_motor_collection):
        cursor = MotorCursor(mock_motor_collection, {"a": 1}, None).skip(2).limit(3)

        await cursor.count()
        mock_motor_collection.count_documents.assert_awaited_with({"a": 1})
        await cursor.size()
        mock_motor_collection.count_documents.assert_awaited_with({"a": 1}, skip=2, limit=3)

    @pytest.mark.asyncio
    async def test_size_without_paging(self, mock_motor_collection):
        await MotorCursor(mock_motor_collection, {}, None).limit(0).size()
        mock_motor_collection.count_documents.assert_awaited_with({})


class TestMotorCollection:
    @pytest.mark.asyncio
    async def test_insert_is_ordered(self, mock_motor_collection):
        docs = [{"a": 1}]
        assert await MotorCollection(mock_motor_collection).insert(docs) == docs
        mock_motor_collection.insert_many.assert_awaited_once_with(docs, ordered=True)

    @pytest.mark.asyncio
    async def test_duplicate_key_is_translated(self, mock_motor_collection):
        driver_error = mongo_errors.DuplicateKeyError("E11000 duplicate key error")
        mock_motor_collection.insert_many.side_effect = driver_error

        with pytest.raises(DuplicateKeyError) as exc_info:
            await MotorCollection(mock_motor_collection).insert([{"id": "x"}])
        assert exc_info.value.original is driver_error
        assert exc_info.value.__cause__ is driver_error

    @pytest.mark.asyncio
    async def test_bulk_write_duplicate_is_translated(self, mock_motor_collection):
        mock_motor_collection.insert_many.side_effect = mongo_errors.BulkWriteError(
            {"writeErrors": [{"code": 11000, "errmsg": "dup"}]}
        )
        with pytest.raises(DuplicateKeyError):
            await MotorCollection(mock_motor_collection).insert([{"id": "x"}, {"id": "x"}])

    @pytest.mark.asyncio
    async def test_other_driver_errors_become_store_errors(self, mock_motor_collection):
        mock_motor_collection.delete_many.side_effect = mongo_errors.NetworkTimeout("timed out")
        with pytest.raises(StoreError) as exc_info:
            await MotorCollection(mock_motor_collection).remove({})
        assert not isinstance(exc_info.value, DuplicateKeyError)
        assert isinstance(exc_info.value.original, mongo_errors.NetworkTimeout)

    @pytest.mark.asyncio
    async def test_update_reports_upserted_key(self, mock_motor_collection):
        key = ObjectId()
        mock_motor_collection.update_many.return_value = SimpleNamespace(matched_count=0, upserted_id=key)
        mock_motor_collection.update_one.return_value = SimpleNamespace(matched_count=1, upserted_id=None)
        coll = MotorCollection(mock_motor_collection)

        report = await coll.update({"a": 1}, {"$set": {"b": 1}}, multi=True, upsert=True)
        assert report.matched_count == 0 and report.upserted_keys == [key]
        mock_motor_collection.update_many.assert_awaited_once_with({"a": 1}, {"$set": {"b": 1}}, upsert=True)

        report = await coll.update({"a": 1}, {"$set": {"b": 1}})
        assert report.matched_count == 1 and report.upserted_keys == []

    @pytest.mark.asyncio
    async def test_remove_reports_deleted_count(self, mock_motor_collection):
        mock_motor_collection.delete_many.return_value = SimpleNamespace(deleted_count=3)
        report = await MotorCollection(mock_motor_collection).remove({"a": 1})
        assert report.matched_count == 3

    @pytest.mark.asyncio
    async def test_find_and_modify_uses_raw_command(self, mock_motor_collection):
        key = ObjectId()
        mock_motor_collection.database.command.return_value = {
            "value": {"_id": key, "x": 1},
            "lastErrorObject": {"n": 1, "updatedExisting": False, "upserted": key},
            "ok": 1,
        }
        doc, report = await MotorCollection(mock_motor_collection).find_and_modify(
            {"a": 1}, {"$set": {"x": 1}}, upsert=True, sort=[("name", -1)], projection={"x": 1}
        )

        assert doc == {"_id": key, "x": 1}
        assert report.was_upserted is True
        (cmd,), _ = mock_motor_collection.database.command.await_args
        assert list(cmd.keys())[0] == "findAndModify"
        assert cmd["findAndModify"] == "things"
        assert cmd["new"] is True and cmd["upsert"] is True
        assert list(cmd["sort"].items()) == [("name", -1)]
        assert cmd["fields"] == {"x": 1}

    @pytest.mark.asyncio
    async def test_find_and_modify_existing_document(self, mock_motor_collection):
        mock_motor_collection.database.command.return_value = {
            "value": {"_id": 1},
            "lastErrorObject": {"n": 1, "updatedExisting": True},
        }
        _, report = await MotorCollection(mock_motor_collection).find_and_modify({}, {"$set": {"x": 1}})
        assert report.was_upserted is False

    @pytest.mark.asyncio
    async def test_ensure_unique_index(self, mock_motor_collection):
        await MotorCollection(mock_motor_collection).ensure_unique_index("id")
        mock_motor_collection.create_index.assert_awaited_once_with([("id", 1)], unique=True)


class TestMotorStore:
    def test_builds_client_from_settings(self, monkeypatch):
        client = MagicMock()
        factory = Mock(return_value=client)
        monkeypatch.setattr("doclayer.store.motor.AsyncIOMotorClient", factory)

        settings = StoreSettings(url="mongodb://db:27017/app", auth_mechanism="SCRAM-SHA-256", timeout_ms=500)
        store = MotorStore(settings)

        args, kwargs = factory.call_args
        assert args == ("mongodb://db:27017/app",)
        assert kwargs["authMechanism"] == "SCRAM-SHA-256"
        assert kwargs["timeoutMS"] == 500
        client.__getitem__.assert_called_once_with("app")
        assert isinstance(store.collection("things"), MotorCollection)

    @pytest.mark.asyncio
    async def test_close_closes_client(self):
        client = MagicMock()
        store = MotorStore(StoreSettings(url="mongodb://db/app"), client=client, database="other")
        client.__getitem__.assert_called_once_with("other")
        await store.close()
        client.close.assert_called_once_with()
