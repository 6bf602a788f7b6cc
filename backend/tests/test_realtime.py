import asyncio

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from starlette.testclient import TestClient

from rollflow.api.deps import get_db
from rollflow.core.config import settings
from rollflow.db.base import Base
from rollflow.main import app


@pytest.fixture
def client(tmp_path, monkeypatch):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'realtime.db'}", poolclass=NullPool)

    async def create_schema():
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    asyncio.run(create_schema())
    factory = async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)

    async def override_get_db():
        async with factory() as s:
            yield s

    monkeypatch.setattr(settings, "snapshot_refresh_interval_sec", 0)
    app.dependency_overrides[get_db] = override_get_db
    app.state.session_factory = factory
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
    del app.state.session_factory
    asyncio.run(engine.dispose())


def test_initial_snapshot_on_connect(client):
    with client.websocket_connect("/realtime/ws") as ws:
        msg = ws.receive_json()
    assert msg["type"] == "snapshot"
    assert msg["data"]["job_orders"] == []


def test_mutation_is_pushed(client):
    with client.websocket_connect("/realtime/ws") as ws:
        ws.receive_json()
        resp = client.post("/job-orders", json={"order_ref": "SO-4004", "target_quantity": 250})
        assert resp.status_code == 201

        msg = ws.receive_json()
        assert msg["type"] == "snapshot"
        assert [j["order_ref"] for j in msg["data"]["job_orders"]] == ["SO-4004"]

        # the push carries the same derived content the pull endpoint returns
        pulled = client.get("/realtime/snapshot").json()
        assert pulled["job_orders"] == msg["data"]["job_orders"]


def test_request_update(client):
    with client.websocket_connect("/realtime/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "request-update"})
        assert ws.receive_json()["type"] == "snapshot"


def test_unsupported_message(client):
    with client.websocket_connect("/realtime/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "subscribe-all"})
        msg = ws.receive_json()
        assert msg["type"] == "error"

        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "invalid json"}


def test_disconnect_unsubscribes(client):
    with client.websocket_connect("/realtime/ws") as ws:
        ws.receive_json()
        assert app.state.broadcaster.subscriber_count == 1
    client.get("/health")
    assert app.state.broadcaster.subscriber_count == 0


def test_request_update_after_missed_push(client):
    with client.websocket_connect("/realtime/ws") as ws:
        ws.receive_json()
        # the server lost track of this socket (e.g. after a failed push)
        for sub in list(app.state.broadcaster._subscribers.values()):
            app.state.broadcaster.unsubscribe(sub)

        ws.send_json({"type": "request-update"})
        assert ws.receive_json()["type"] == "snapshot"
        assert app.state.broadcaster.subscriber_count == 1
