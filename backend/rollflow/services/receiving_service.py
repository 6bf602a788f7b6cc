from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.db.models.job_order import JobOrder
from rollflow.db.models.receiving_transaction import ReceivingTransaction
from rollflow.db.models.roll import Roll
from rollflow.services.errors import JobOrderClosed, NotFound, QuantityExceedsAvailable, StageOrderViolation
from rollflow.services.locks import KeyedLocks
from rollflow.services.stage_machine import QTY_EPSILON, Stage, is_damaged


logger = logging.getLogger("receiving")

# Receiving, and anything that changes a job order's receivable total, is serialized
# per job order; different job orders proceed in parallel.
JOB_ORDER_LOCKS = KeyedLocks()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def is_receivable(roll: object) -> bool:
    """A roll qualifies once it has been cut, unless it was marked damaged."""
    if getattr(roll, "extrude_qty", None) is None or getattr(roll, "cut_qty", None) is None:
        return False
    return not is_damaged(roll)


def receivable_total(rolls: Iterable[object]) -> float:
    return float(sum(float(r.cut_qty) for r in rolls if is_receivable(r)))


def received_total(receipts: Iterable[object]) -> float:
    return float(sum(float(getattr(t, "quantity") or 0) for t in receipts))


def compute_availability(rolls: Iterable[object], receipts: Iterable[object]) -> float:
    """Unreceived cut material: Σ cut over qualifying rolls − Σ receipts, never below 0."""
    return max(0.0, receivable_total(rolls) - received_total(receipts))


def allocate_receipts_to_rolls(rolls: Iterable[object], receipts: Iterable[object]) -> dict[str, float]:
    """
    Spread a job order's receipts over its receivable rolls.

    Rules:
    - A receipt linked to a receivable roll fills that roll first; overflow joins the pool.
    - Unlinked receipts (and overflow) fill remaining capacity in roll_number order.
    Returns {roll_id: allocated quantity} for every receivable roll.
    """
    receivable = sorted(
        (r for r in rolls if is_receivable(r)),
        key=lambda r: (int(getattr(r, "roll_number", 0) or 0), str(getattr(r, "id", ""))),
    )
    capacity: dict[str, float] = {str(r.id): float(r.cut_qty) for r in receivable}
    allocated: dict[str, float] = {rid: 0.0 for rid in capacity}

    pool = 0.0
    for t in receipts:
        q = float(getattr(t, "quantity") or 0)
        rid = getattr(t, "roll_id", None)
        key = str(rid) if rid is not None else None
        if key is not None and key in capacity:
            take = min(q, capacity[key] - allocated[key])
            allocated[key] += take
            pool += q - take
        else:
            pool += q

    for r in receivable:
        if pool <= 0:
            break
        key = str(r.id)
        take = min(pool, capacity[key] - allocated[key])
        if take > 0:
            allocated[key] += take
            pool -= take
    return allocated


async def _get_job_order(session: AsyncSession, job_order_id: UUID, *, for_update: bool = False) -> JobOrder:
    stmt = select(JobOrder).where(JobOrder.id == job_order_id)
    if for_update:
        stmt = stmt.with_for_update()
    job = (await session.execute(stmt.execution_options(populate_existing=True))).scalars().first()
    if job is None:
        raise NotFound("job order", job_order_id)
    return job


async def load_job_order_rolls(session: AsyncSession, job_order_id: UUID) -> list[Roll]:
    return list(
        (
            await session.execute(
                select(Roll)
                .where(Roll.job_order_id == job_order_id)
                .order_by(Roll.roll_number.asc())
                .execution_options(populate_existing=True)
            )
        ).scalars().all()
    )


async def list_receipts(session: AsyncSession, job_order_id: UUID | None = None) -> list[ReceivingTransaction]:
    stmt = select(ReceivingTransaction)
    if job_order_id is not None:
        stmt = stmt.where(ReceivingTransaction.job_order_id == job_order_id)
    stmt = stmt.order_by(ReceivingTransaction.received_at.asc(), ReceivingTransaction.id.asc())
    return list((await session.execute(stmt.execution_options(populate_existing=True))).scalars().all())


async def available_for_receiving(session: AsyncSession, job_order_id: UUID) -> float:
    await _get_job_order(session, job_order_id)
    rolls = await load_job_order_rolls(session, job_order_id)
    receipts = await list_receipts(session, job_order_id)
    return compute_availability(rolls, receipts)


async def submit_receiving(
    session: AsyncSession,
    job_order_id: UUID,
    quantity: float,
    *,
    received_by: str,
    roll_id: UUID | None = None,
    note: str | None = None,
) -> ReceivingTransaction:
    """
    Accept `quantity` of finished material for a job order.

    The availability check, the insert and the commit run under the job order's
    lock (in-process lock + row lock), so two concurrent submissions can never both
    pass against the same remaining figure. On rejection nothing is written.
    A closed job order accepts no receipts.
    """
    qty = float(quantity)
    if qty <= 0:
        raise ValueError("quantity must be > 0")

    async with JOB_ORDER_LOCKS.hold(job_order_id):
        try:
            job = await _get_job_order(session, job_order_id, for_update=True)
            if job.closed_at is not None:
                raise JobOrderClosed(job_order_id=job_order_id)
            rolls = await load_job_order_rolls(session, job_order_id)
            receipts = await list_receipts(session, job_order_id)
            available = compute_availability(rolls, receipts)

            if roll_id is not None:
                roll = next((r for r in rolls if r.id == roll_id), None)
                if roll is None:
                    raise NotFound("roll", roll_id)
                if not is_receivable(roll):
                    raise StageOrderViolation(roll_id=roll_id, stage="receiving", missing_stage=Stage.CUTTING.value)

            if qty > available + QTY_EPSILON:
                raise QuantityExceedsAvailable(job_order_id=job_order_id, requested=qty, available=available)

            tx = ReceivingTransaction(
                job_order_id=job_order_id,
                roll_id=roll_id,
                quantity=qty,
                received_by=received_by,
                note=note,
                received_at=_utcnow(),
            )
            session.add(tx)
            await session.commit()
        except QuantityExceedsAvailable as e:
            await session.rollback()
            logger.info(
                "receiving rejected: job_order_id=%s requested=%s available=%s",
                job_order_id,
                e.requested,
                e.available,
            )
            raise
        except Exception:
            await session.rollback()
            raise

    logger.info(
        "receiving accepted: id=%s job_order_id=%s roll_id=%s quantity=%s available_before=%s received_by=%s",
        tx.id,
        job_order_id,
        roll_id,
        qty,
        available,
        received_by,
    )
    return tx
