from __future__ import annotations

from unittest.mock import MagicMock, Mock

from fastapi import FastAPI, Request
from fastapi.testclient import TestClient

from doclayer import DocumentRepository, InMemoryStore, MotorStore, get_store, is_connected
from doclayer.integration.fastapi import add_docstore


def _app(**kwargs) -> FastAPI:
    app = FastAPI()
    add_docstore(app, **kwargs)

    @app.post("/people")
    async def create(request: Request):
        repo = DocumentRepository("people")
        (doc,) = await repo.insert(doc=await request.json())
        return {"id": doc["id"]}

    @app.get("/people/count")
    async def count():
        return {"count": await DocumentRepository("people").count()}

    return app


def test_lifespan_connects_and_disposes():
    store = InMemoryStore()
    app = _app(store=store)

    with TestClient(app) as client:
        assert app.state.docstore is store
        assert get_store() is store

        created = client.post("/people", json={"name": "Bob"})
        assert created.status_code == 200
        assert created.json()["id"]
        assert client.get("/people/count").json() == {"count": 1}

    assert is_connected() is False
    assert store.closed


def test_lifespan_builds_motor_store_from_dsn_env(monkeypatch):
    factory = Mock(return_value=MagicMock())
    monkeypatch.setattr("doclayer.store.motor.AsyncIOMotorClient", factory)
    monkeypatch.setenv("APP_MONGO", "mongodb://db:27017/shop")

    app = FastAPI()
    add_docstore(app, dsn_env="APP_MONGO")

    with TestClient(app):
        assert isinstance(app.state.docstore, MotorStore)
        args, _ = factory.call_args
        assert args == ("mongodb://db:27017/shop",)

    factory.return_value.close.assert_called_once_with()
    assert is_connected() is False
