from __future__ import annotations

from collections import defaultdict
from collections.abc import Iterable
from dataclasses import asdict
from datetime import datetime, timezone

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.db.models.job_order import JobOrder
from rollflow.db.models.machine import Machine
from rollflow.db.models.receiving_transaction import ReceivingTransaction
from rollflow.db.models.roll import Roll
from rollflow.services.job_order_aggregator import aggregate_job_order, roll_stages
from rollflow.services.receiving_service import allocate_receipts_to_rolls
from rollflow.services.stage_machine import Stage
from rollflow.services.waste_calculator import roll_waste


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt else None


def _id(v: object) -> str | None:
    return str(v) if v is not None else None


def _current_machine_id(r: Roll) -> object:
    # The machine of the latest recorded stage.
    if r.cut_qty is not None:
        return r.cutting_machine_id
    if r.print_qty is not None:
        return r.printing_machine_id
    return r.extrusion_machine_id


def build_snapshot(
    machines: Iterable[Machine],
    job_orders: Iterable[JobOrder],
    rolls: Iterable[Roll],
    receipts: Iterable[ReceivingTransaction],
    *,
    now: datetime | None = None,
) -> dict:
    """
    Full derived production picture over already-fetched records.

    Pure: no I/O and no stored state. Every push and every pull goes through here.
    """
    machines = list(machines)
    job_orders = list(job_orders)

    rolls_by_job: dict[str, list[Roll]] = defaultdict(list)
    for r in rolls:
        rolls_by_job[str(r.job_order_id)].append(r)
    receipts_by_job: dict[str, list[ReceivingTransaction]] = defaultdict(list)
    for t in receipts:
        receipts_by_job[str(t.job_order_id)].append(t)

    roll_rows: list[dict] = []
    job_rows: list[dict] = []
    active_by_machine: dict[str, int] = defaultdict(int)

    for j in sorted(job_orders, key=lambda x: (_iso(x.created_at) or "", str(x.id))):
        jid = str(j.id)
        j_rolls = sorted(rolls_by_job.get(jid, []), key=lambda r: r.roll_number)
        j_receipts = receipts_by_job.get(jid, [])
        stages = roll_stages(j, j_rolls, j_receipts)
        allocated = allocate_receipts_to_rolls(j_rolls, j_receipts)
        summary = aggregate_job_order(j, j_rolls, j_receipts)

        job_rows.append(
            {
                "id": jid,
                "order_ref": j.order_ref,
                "item_name": j.item_name,
                "closed_at": _iso(j.closed_at),
                "created_at": _iso(j.created_at),
                **asdict(summary),
            }
        )

        for r in j_rolls:
            stage = stages[str(r.id)]
            w = roll_waste(r)
            if stage not in (Stage.COMPLETED, Stage.NONE):
                mid = _current_machine_id(r)
                if mid is not None:
                    active_by_machine[str(mid)] += 1
            roll_rows.append(
                {
                    "id": str(r.id),
                    "job_order_id": jid,
                    "roll_number": r.roll_number,
                    "extrude_qty": r.extrude_qty,
                    "print_qty": r.print_qty,
                    "cut_qty": r.cut_qty,
                    "stage": stage.value,
                    "received_quantity": float(round(allocated.get(str(r.id), 0.0), 3)),
                    "printing_waste": w.printing_waste,
                    "cutting_waste": w.cutting_waste,
                    "total_waste": w.total_waste,
                    "total_waste_percent": w.total_waste_percent,
                    "terminal_status": r.terminal_status,
                    "extrusion_machine_id": _id(r.extrusion_machine_id),
                    "printing_machine_id": _id(r.printing_machine_id),
                    "cutting_machine_id": _id(r.cutting_machine_id),
                    "created_at": _iso(r.created_at),
                }
            )

    machine_rows = [
        {
            "id": str(m.id),
            "code": m.code,
            "name": m.name,
            "section": m.section,
            "is_active": bool(m.is_active),
            "active_roll_count": int(active_by_machine.get(str(m.id), 0)),
        }
        for m in sorted(machines, key=lambda m: m.code)
    ]

    return {
        "machines": machine_rows,
        "rolls": roll_rows,
        "job_orders": job_rows,
        "last_updated": (now or datetime.now(timezone.utc)).isoformat(),
    }


async def load_snapshot(session: AsyncSession) -> dict:
    # All reads complete before aggregation starts.
    machines = (await session.execute(select(Machine))).scalars().all()
    job_orders = (await session.execute(select(JobOrder))).scalars().all()
    rolls = (await session.execute(select(Roll))).scalars().all()
    receipts = (await session.execute(select(ReceivingTransaction))).scalars().all()
    return build_snapshot(machines, job_orders, rolls, receipts)
