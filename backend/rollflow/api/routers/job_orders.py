from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.api.deps import get_broadcaster, get_db
from rollflow.api.errors import DOMAIN_ERRORS, to_http
from rollflow.api.routers.rolls import roll_out
from rollflow.db.models.job_order import JobOrder
from rollflow.schemas.job_order import (
    AvailabilityOut,
    JobOrderCreate,
    JobOrderDetailOut,
    JobOrderOut,
)
from rollflow.schemas.roll import ExtrusionCreate, RollOut
from rollflow.schemas.waste import JobOrderWasteOut
from rollflow.services import receiving_service, roll_service
from rollflow.services.broadcaster import SnapshotBroadcaster
from rollflow.services.job_order_aggregator import aggregate_job_order
from rollflow.services.waste_calculator import rolls_waste


router = APIRouter(prefix="/job-orders", tags=["job-orders"])


async def _detail(db: AsyncSession, job: JobOrder) -> JobOrderDetailOut:
    rolls = await receiving_service.load_job_order_rolls(db, job.id)
    receipts = await receiving_service.list_receipts(db, job.id)
    summary = aggregate_job_order(job, rolls, receipts)
    return JobOrderDetailOut(**JobOrderOut.model_validate(job).model_dump(), summary=asdict(summary))


async def _get(db: AsyncSession, job_order_id: UUID) -> JobOrder:
    try:
        return await roll_service.get_job_order(db, job_order_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e)


@router.get("", response_model=list[JobOrderOut])
async def list_job_orders(
    order_ref: str | None = Query(default=None),
    include_closed: bool = Query(default=True),
    db: AsyncSession = Depends(get_db),
) -> list[JobOrder]:
    stmt = select(JobOrder)
    if order_ref:
        stmt = stmt.where(JobOrder.order_ref == order_ref)
    if not include_closed:
        stmt = stmt.where(JobOrder.closed_at.is_(None))
    stmt = stmt.order_by(JobOrder.created_at.desc())
    return (await db.execute(stmt)).scalars().all()


@router.post("", response_model=JobOrderOut, status_code=201)
async def create_job_order(
    body: JobOrderCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> JobOrder:
    now = datetime.now(timezone.utc)
    j = JobOrder(
        order_ref=body.order_ref,
        item_name=body.item_name,
        target_quantity=float(body.target_quantity),
        requires_printing=bool(body.requires_printing),
        created_at=now,
        updated_at=now,
    )
    db.add(j)
    await db.commit()
    background_tasks.add_task(broadcaster.publish_latest)
    return j


@router.get("/{job_order_id}", response_model=JobOrderDetailOut)
async def get_job_order(job_order_id: UUID, db: AsyncSession = Depends(get_db)) -> JobOrderDetailOut:
    return await _detail(db, await _get(db, job_order_id))


@router.get("/{job_order_id}/waste", response_model=JobOrderWasteOut)
async def job_order_waste(job_order_id: UUID, db: AsyncSession = Depends(get_db)) -> JobOrderWasteOut:
    await _get(db, job_order_id)
    rolls = await receiving_service.load_job_order_rolls(db, job_order_id)
    return JobOrderWasteOut(job_order_id=job_order_id, **asdict(rolls_waste(rolls)))


@router.get("/{job_order_id}/availability", response_model=AvailabilityOut)
async def job_order_availability(job_order_id: UUID, db: AsyncSession = Depends(get_db)) -> AvailabilityOut:
    try:
        available = await receiving_service.available_for_receiving(db, job_order_id)
    except DOMAIN_ERRORS as e:
        raise to_http(e)
    return AvailabilityOut(job_order_id=job_order_id, available_for_receiving=available)


@router.post("/{job_order_id}/close", response_model=JobOrderDetailOut)
async def close_job_order(
    job_order_id: UUID,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> JobOrderDetailOut:
    j = await _get(db, job_order_id)
    if j.closed_at is None:
        now = datetime.now(timezone.utc)
        j.closed_at = now
        j.updated_at = now
        await db.commit()
        background_tasks.add_task(broadcaster.publish_latest)
    return await _detail(db, j)


@router.post("/{job_order_id}/rolls", response_model=RollOut, status_code=201)
async def record_extrusion(
    job_order_id: UUID,
    body: ExtrusionCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> RollOut:
    """Extrusion output creates the roll; printing and cutting are recorded under /rolls."""
    try:
        r = await roll_service.create_roll(
            db,
            job_order_id,
            body.extrude_qty,
            extruded_by=body.extruded_by,
            machine_id=body.machine_id,
            note=body.note,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e)
    background_tasks.add_task(broadcaster.publish_latest)
    return await roll_out(db, r)
