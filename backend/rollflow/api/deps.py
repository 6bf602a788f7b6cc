from __future__ import annotations

from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession
from starlette.requests import HTTPConnection

from rollflow.db.session import get_session as _get_session
from rollflow.services.broadcaster import SnapshotBroadcaster


async def get_db() -> AsyncIterator[AsyncSession]:
    async for s in _get_session():
        yield s


def get_broadcaster(conn: HTTPConnection) -> SnapshotBroadcaster:
    # Works for both HTTP requests and websockets.
    return conn.app.state.broadcaster
