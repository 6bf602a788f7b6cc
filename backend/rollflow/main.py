from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rollflow.api.routers import data_quality, job_orders, machines, realtime, receiving, rolls
from rollflow.core.config import settings
from rollflow.db.session import async_session_factory
from rollflow.schemas.common import Health
from rollflow.services.broadcaster import SnapshotBroadcaster


logging.basicConfig(level=settings.log_level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Tests (or an embedding process) may pre-set a session factory.
    session_factory = getattr(app.state, "session_factory", None) or async_session_factory
    broadcaster = SnapshotBroadcaster(session_factory, send_timeout_sec=settings.broadcast_send_timeout_sec)
    app.state.broadcaster = broadcaster
    task = None
    try:
        if settings.snapshot_refresh_interval_sec > 0:
            task = asyncio.create_task(broadcaster.run(settings.snapshot_refresh_interval_sec))
        yield
    finally:
        broadcaster.stop()
        if task:
            task.cancel()


app = FastAPI(title="Roll Production Flow API", version="0.1.0", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(machines.router)
app.include_router(job_orders.router)
app.include_router(rolls.router)
app.include_router(receiving.router)
app.include_router(data_quality.router)
app.include_router(realtime.router)


@app.get("/health", response_model=Health)
async def health() -> Health:
    return Health(status="ok", time=datetime.now(timezone.utc))
