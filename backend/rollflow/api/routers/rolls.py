from __future__ import annotations

from dataclasses import asdict
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.api.deps import get_broadcaster, get_db
from rollflow.api.errors import DOMAIN_ERRORS, to_http
from rollflow.db.models.roll import Roll
from rollflow.schemas.roll import DamageRequest, RollDetailOut, RollOut, StageQuantityCreate
from rollflow.services import roll_service
from rollflow.services.broadcaster import SnapshotBroadcaster
from rollflow.services.stage_machine import Stage
from rollflow.services.waste_calculator import roll_waste


router = APIRouter(prefix="/rolls", tags=["rolls"])


def roll_payload(r: Roll, stage: Stage) -> dict:
    data = {c.key: getattr(r, c.key) for c in Roll.__table__.columns}
    data["stage"] = stage.value
    return data


async def roll_out(db: AsyncSession, r: Roll) -> RollOut:
    [(_r, stage, _received)] = await roll_service.describe_rolls(db, [r])
    return RollOut(**roll_payload(r, stage))


@router.get("", response_model=list[RollOut])
async def list_rolls(
    job_order_id: UUID | None = Query(default=None),
    stage: Stage | None = Query(default=None, description="Filter by derived stage"),
    include_archived: bool = Query(default=False),
    db: AsyncSession = Depends(get_db),
) -> list[RollOut]:
    rolls = await roll_service.list_rolls(db, job_order_id=job_order_id, include_archived=include_archived)
    out: list[RollOut] = []
    for r, st, _received in await roll_service.describe_rolls(db, rolls):
        if stage is not None and st != stage:
            continue
        out.append(RollOut(**roll_payload(r, st)))
    return out


@router.get("/{roll_id}", response_model=RollDetailOut)
async def get_roll(roll_id: UUID, db: AsyncSession = Depends(get_db)) -> RollDetailOut:
    try:
        r = await roll_service.get_roll(db, roll_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e)
    [(_r, stage, received)] = await roll_service.describe_rolls(db, [r])
    return RollDetailOut(**roll_payload(r, stage), received_quantity=received, waste=asdict(roll_waste(r)))


async def _record(
    db: AsyncSession,
    broadcaster: SnapshotBroadcaster,
    background_tasks: BackgroundTasks,
    roll_id: UUID,
    stage: Stage,
    body: StageQuantityCreate,
) -> RollOut:
    try:
        r = await roll_service.record_stage_quantity(
            db,
            roll_id,
            stage,
            body.quantity,
            recorded_by=body.recorded_by,
            machine_id=body.machine_id,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e)
    background_tasks.add_task(broadcaster.publish_latest)
    return await roll_out(db, r)


@router.post("/{roll_id}/printing", response_model=RollOut)
async def record_printing(
    roll_id: UUID,
    body: StageQuantityCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> RollOut:
    return await _record(db, broadcaster, background_tasks, roll_id, Stage.PRINTING, body)


@router.post("/{roll_id}/cutting", response_model=RollOut)
async def record_cutting(
    roll_id: UUID,
    body: StageQuantityCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> RollOut:
    return await _record(db, broadcaster, background_tasks, roll_id, Stage.CUTTING, body)


@router.post("/{roll_id}/damage", response_model=RollOut)
async def mark_damaged(
    roll_id: UUID,
    body: DamageRequest,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> RollOut:
    try:
        r = await roll_service.mark_damaged(db, roll_id, note=body.note)
    except DOMAIN_ERRORS as e:
        raise to_http(e)
    background_tasks.add_task(broadcaster.publish_latest)
    return await roll_out(db, r)
