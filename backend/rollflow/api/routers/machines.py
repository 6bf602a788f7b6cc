from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.api.deps import get_broadcaster, get_db
from rollflow.db.models.machine import Machine
from rollflow.schemas.machine import MachineCreate, MachineOut
from rollflow.services.broadcaster import SnapshotBroadcaster


router = APIRouter(prefix="/machines", tags=["machines"])


@router.get("", response_model=list[MachineOut])
async def list_machines(
    section: str | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[Machine]:
    stmt = select(Machine)
    if section:
        stmt = stmt.where(Machine.section == section)
    return (await db.execute(stmt.order_by(Machine.code.asc()))).scalars().all()


@router.post("", response_model=MachineOut, status_code=201)
async def create_machine(
    body: MachineCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> Machine:
    m = Machine(
        code=body.code.strip(),
        name=body.name,
        section=body.section,
        is_active=body.is_active,
        created_at=datetime.now(timezone.utc),
    )
    db.add(m)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise HTTPException(status_code=409, detail="machine code already exists")
    background_tasks.add_task(broadcaster.publish_latest)
    return m
