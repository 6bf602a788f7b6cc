from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncIterator

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.api.deps import get_broadcaster, get_db
from rollflow.core.config import settings
from rollflow.services.broadcaster import SnapshotBroadcaster
from rollflow.services.snapshot_service import load_snapshot


router = APIRouter(prefix="/realtime", tags=["realtime"])

logger = logging.getLogger("broadcast")


def _sse(data: dict, event: str | None = None) -> str:
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.append(f"data: {json.dumps(data, ensure_ascii=False)}")
    return "\n".join(lines) + "\n\n"


@router.get("/snapshot")
async def pull_snapshot(db: AsyncSession = Depends(get_db)) -> dict:
    """Synchronous pull of the same snapshot the push channels deliver."""
    return await load_snapshot(db)


@router.get("/stream")
async def sse_snapshots(broadcaster: SnapshotBroadcaster = Depends(get_broadcaster)) -> StreamingResponse:
    async def gen() -> AsyncIterator[str]:
        last: str | None = None
        while True:
            snapshot = await broadcaster.current_snapshot()
            # last_updated changes every tick; compare the content only
            s = json.dumps({k: v for k, v in snapshot.items() if k != "last_updated"}, sort_keys=True)
            if s != last:
                last = s
                yield _sse({"type": "snapshot", "data": snapshot}, event="snapshot")
            await asyncio.sleep(settings.sse_poll_interval_sec)

    return StreamingResponse(gen(), media_type="text/event-stream")


@router.websocket("/ws")
async def ws_snapshots(websocket: WebSocket, broadcaster: SnapshotBroadcaster = Depends(get_broadcaster)) -> None:
    """
    Push channel.

    Sends a snapshot on connect and on every relevant mutation. A client message
    {"type": "request-update"} forces a recompute pushed to all subscribers.
    """
    await websocket.accept()
    broadcaster.subscribe(websocket)
    try:
        await websocket.send_json({"type": "snapshot", "data": await broadcaster.current_snapshot()})
        while True:
            raw = await websocket.receive_text()
            try:
                msg = json.loads(raw)
            except ValueError:
                await websocket.send_json({"type": "error", "message": "invalid json"})
                continue
            kind = msg.get("type") if isinstance(msg, dict) else None
            if kind == "request-update":
                await broadcaster.request_update(websocket)
            else:
                logger.info("unsupported realtime message: type=%s", kind)
                await websocket.send_json({"type": "error", "message": f"unsupported message type: {kind}"})
    except WebSocketDisconnect:
        pass
    finally:
        broadcaster.unsubscribe(websocket)
