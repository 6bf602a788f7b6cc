from __future__ import annotations

import logging
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.db.models.data_quality_warning import DataQualityWarning
from rollflow.db.models.job_order import JobOrder
from rollflow.db.models.roll import Roll
from rollflow.services.errors import JobOrderClosed, NotFound, RollAlreadyReceived
from rollflow.services.job_order_aggregator import roll_stages
from rollflow.services.locks import KeyedLocks
from rollflow.services.receiving_service import (
    JOB_ORDER_LOCKS,
    allocate_receipts_to_rolls,
    list_receipts,
    load_job_order_rolls,
)
from rollflow.services.stage_machine import QTY_EPSILON, QTY_FIELDS, TERMINAL_DAMAGED, Stage, check_stage_entry
from rollflow.services.waste_calculator import WasteAnomaly, find_waste_anomalies


logger = logging.getLogger("rolls")
dq_logger = logging.getLogger("data_quality")

KIND_NEGATIVE_DERIVED_WASTE = "negative_derived_waste"

# Stage writes are serialized per roll; roll numbering is serialized per job order.
_ROLL_LOCKS = KeyedLocks()
_NUMBERING_LOCKS = KeyedLocks()

_STAGE_AUDIT: dict[Stage, tuple[str, str, str]] = {
    Stage.EXTRUDING: ("extruded_at", "extruded_by", "extrusion_machine_id"),
    Stage.PRINTING: ("printed_at", "printed_by", "printing_machine_id"),
    Stage.CUTTING: ("cut_at", "cut_by", "cutting_machine_id"),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


async def get_roll(session: AsyncSession, roll_id: UUID, *, for_update: bool = False) -> Roll:
    stmt = select(Roll).where(Roll.id == roll_id)
    if for_update:
        stmt = stmt.with_for_update()
    r = (await session.execute(stmt.execution_options(populate_existing=True))).scalars().first()
    if r is None:
        raise NotFound("roll", roll_id)
    return r


async def get_job_order(session: AsyncSession, job_order_id: UUID, *, for_update: bool = False) -> JobOrder:
    stmt = select(JobOrder).where(JobOrder.id == job_order_id)
    if for_update:
        stmt = stmt.with_for_update()
    j = (await session.execute(stmt.execution_options(populate_existing=True))).scalars().first()
    if j is None:
        raise NotFound("job order", job_order_id)
    return j


async def list_rolls(
    session: AsyncSession,
    *,
    job_order_id: UUID | None = None,
    include_archived: bool = False,
) -> list[Roll]:
    stmt = select(Roll)
    if job_order_id is not None:
        stmt = stmt.where(Roll.job_order_id == job_order_id)
    if not include_archived:
        stmt = stmt.where(Roll.archived_at.is_(None))
    stmt = stmt.order_by(Roll.job_order_id.asc(), Roll.roll_number.asc())
    return list((await session.execute(stmt)).scalars().all())


def _record_anomalies(session: AsyncSession, roll: Roll, anomalies: list[WasteAnomaly]) -> None:
    for a in anomalies:
        session.add(
            DataQualityWarning(
                roll_id=roll.id,
                job_order_id=roll.job_order_id,
                kind=KIND_NEGATIVE_DERIVED_WASTE,
                from_stage=a.from_stage,
                to_stage=a.to_stage,
                from_qty=float(a.from_qty),
                to_qty=float(a.to_qty),
                created_at=_utcnow(),
            )
        )
        dq_logger.warning(
            "negative derived waste clamped to 0: roll_id=%s job_order_id=%s from_stage=%s from_qty=%s to_stage=%s to_qty=%s",
            roll.id,
            roll.job_order_id,
            a.from_stage,
            a.from_qty,
            a.to_stage,
            a.to_qty,
        )


async def create_roll(
    session: AsyncSession,
    job_order_id: UUID,
    extrude_qty: float,
    *,
    extruded_by: str | None = None,
    machine_id: UUID | None = None,
    note: str | None = None,
) -> Roll:
    """
    Record extrusion output: this is when a roll comes into existence.

    roll_number is the next sequence number within the job order.
    """
    async with _NUMBERING_LOCKS.hold(job_order_id):
        try:
            job = await get_job_order(session, job_order_id, for_update=True)
            if job.closed_at is not None:
                raise JobOrderClosed(job_order_id=job_order_id)
            last_no = await session.scalar(
                select(func.max(Roll.roll_number)).where(Roll.job_order_id == job_order_id)
            )
            now = _utcnow()
            r = Roll(
                job_order_id=job_order_id,
                roll_number=int(last_no or 0) + 1,
                extrude_qty=float(extrude_qty),
                extruded_at=now,
                extruded_by=extruded_by,
                extrusion_machine_id=machine_id,
                note=note,
                created_at=now,
                updated_at=now,
            )
            session.add(r)
            await session.commit()
        except Exception:
            await session.rollback()
            raise

    logger.info(
        "roll created: id=%s job_order_id=%s roll_number=%s extrude_qty=%s by=%s",
        r.id,
        job_order_id,
        r.roll_number,
        r.extrude_qty,
        extruded_by,
    )
    return r


async def record_stage_quantity(
    session: AsyncSession,
    roll_id: UUID,
    stage: Stage,
    quantity: float,
    *,
    recorded_by: str | None = None,
    machine_id: UUID | None = None,
) -> Roll:
    """
    Set the printing or cutting quantity of an existing roll.

    Raises StageOrderViolation / StageAlreadyRecorded / RollClosed before any write;
    the roll is left unchanged on rejection. A measurement larger than its
    predecessor is accepted but written to data_quality_warnings.
    """
    if stage not in (Stage.PRINTING, Stage.CUTTING):
        raise ValueError(f"stage {stage.value} cannot be recorded on an existing roll")

    async with _ROLL_LOCKS.hold(roll_id):
        try:
            r = await get_roll(session, roll_id, for_update=True)
            job = await get_job_order(session, r.job_order_id)
            if job.closed_at is not None:
                raise JobOrderClosed(job_order_id=job.id)
            check_stage_entry(r, bool(job.requires_printing), stage)

            before = {a.to_stage for a in find_waste_anomalies(r)}
            now = _utcnow()
            at_attr, by_attr, machine_attr = _STAGE_AUDIT[stage]
            setattr(r, QTY_FIELDS[stage], float(quantity))
            setattr(r, at_attr, now)
            setattr(r, by_attr, recorded_by)
            if machine_id is not None:
                setattr(r, machine_attr, machine_id)
            r.updated_at = now

            _record_anomalies(session, r, [a for a in find_waste_anomalies(r) if a.to_stage not in before])
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.info("stage entry rejected: roll_id=%s stage=%s quantity=%s error=%s", roll_id, stage.value, quantity, e)
            raise

    logger.info(
        "stage recorded: roll_id=%s job_order_id=%s stage=%s quantity=%s by=%s",
        r.id,
        r.job_order_id,
        stage.value,
        quantity,
        recorded_by,
    )
    return r


async def mark_damaged(session: AsyncSession, roll_id: UUID, *, note: str | None = None) -> Roll:
    """
    Explicit terminal status: the roll stops flowing and is excluded from receiving.

    Damage drops the roll's cut quantity from the job order's receivable total, so it
    runs under the job order's receiving lock and is rejected (RollAlreadyReceived)
    once receipts are allocated to the roll.
    """
    job_order_id = (await get_roll(session, roll_id)).job_order_id
    async with JOB_ORDER_LOCKS.hold(job_order_id), _ROLL_LOCKS.hold(roll_id):
        try:
            await get_job_order(session, job_order_id, for_update=True)
            r = await get_roll(session, roll_id, for_update=True)
            if r.terminal_status != TERMINAL_DAMAGED:
                rolls = await load_job_order_rolls(session, job_order_id)
                receipts = await list_receipts(session, job_order_id)
                received = allocate_receipts_to_rolls(rolls, receipts).get(str(r.id), 0.0)
                if received > QTY_EPSILON:
                    raise RollAlreadyReceived(roll_id=roll_id, received=received)
                r.terminal_status = TERMINAL_DAMAGED
                if note:
                    r.note = f"{r.note}\n{note}" if r.note else note
                r.updated_at = _utcnow()
            await session.commit()
        except Exception as e:
            await session.rollback()
            logger.info("damage rejected: roll_id=%s job_order_id=%s error=%s", roll_id, job_order_id, e)
            raise

    logger.info("roll marked damaged: roll_id=%s job_order_id=%s", r.id, r.job_order_id)
    return r


async def describe_rolls(session: AsyncSession, rolls: list[Roll]) -> list[tuple[Roll, Stage, float]]:
    """
    Attach the derived stage and allocated receiving quantity to each roll.

    Loads each involved job order with all of its rolls and receipts, since a roll's
    completion depends on how the job order's receipts are spread.
    """
    out: dict[str, tuple[Stage, float]] = {}
    for job_order_id in {r.job_order_id for r in rolls}:
        job = await get_job_order(session, job_order_id)
        j_rolls = await load_job_order_rolls(session, job_order_id)
        receipts = await list_receipts(session, job_order_id)
        stages = roll_stages(job, j_rolls, receipts)
        allocated = allocate_receipts_to_rolls(j_rolls, receipts)
        for rid, st in stages.items():
            out[rid] = (st, float(allocated.get(rid, 0.0)))
    return [(r, *out[str(r.id)]) for r in rolls]
