from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from rollflow.services.receiving_service import (
    allocate_receipts_to_rolls,
    compute_availability,
    receivable_total,
    received_total,
)
from rollflow.services.stage_machine import QTY_EPSILON, Stage, derive_roll_stage, last_populated_quantity
from rollflow.services.waste_calculator import job_order_waste, job_order_waste_percent


STATUS_NOT_STARTED = "not_started"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"


@dataclass
class JobOrderSummary:
    job_order_id: str
    target_quantity: float
    requires_printing: bool
    roll_count: int
    extruded_quantity: float
    # Σ last-populated quantity, as measured; waste_quantity = extruded - final (clamped).
    final_quantity: float
    # Like final_quantity, but each roll capped at its own extrude_qty, so an oversized
    # later measurement never counts as production; produced + waste <= extruded.
    produced_quantity: float
    waste_quantity: float
    waste_percentage: float | None
    cut_quantity: float
    received_quantity: float
    available_for_receiving: float
    progress_percent: float | None
    is_overproduced: bool
    status: str
    stage_breakdown: dict[str, int] = field(default_factory=dict)


def _round3(v: float) -> float:
    return float(round(float(v), 3))


def roll_stages(job_order: object, rolls: Iterable[object], receipts: Iterable[object]) -> dict[str, Stage]:
    """Current stage per roll id, with receipts allocated to decide which cut rolls are completed."""
    rolls = list(rolls)
    requires_printing = bool(getattr(job_order, "requires_printing", False))
    allocated = allocate_receipts_to_rolls(rolls, receipts)
    return {
        str(r.id): derive_roll_stage(r, requires_printing, received=allocated.get(str(r.id), 0.0))
        for r in rolls
    }


def produced_quantity(rolls: Iterable[object]) -> float:
    """
    Σ of each roll's last-populated quantity.

    A roll never contributes more than it was extruded with, so produced + waste
    stays within the extruded total even when a later measurement is too large.
    """
    total = 0.0
    for r in rolls:
        extrude = getattr(r, "extrude_qty", None)
        if extrude is None:
            continue
        total += min(float(last_populated_quantity(r)), float(extrude))
    return total


def derive_job_order_status(job_order: object, rolls: list[object], stages: dict[str, Stage], produced: float) -> str:
    if getattr(job_order, "closed_at", None) is not None:
        return STATUS_COMPLETED
    started = [r for r in rolls if getattr(r, "extrude_qty", None) is not None]
    if not started:
        return STATUS_NOT_STARTED
    target = float(getattr(job_order, "target_quantity", 0) or 0)
    all_done = all(stages.get(str(r.id)) == Stage.COMPLETED for r in started)
    if all_done and produced + QTY_EPSILON >= target:
        return STATUS_COMPLETED
    return STATUS_IN_PROGRESS


def aggregate_job_order(job_order: object, rolls: Iterable[object], receipts: Iterable[object]) -> JobOrderSummary:
    rolls = list(rolls)
    receipts = list(receipts)
    stages = roll_stages(job_order, rolls, receipts)

    breakdown = {s.value: 0 for s in Stage}
    for st in stages.values():
        breakdown[st.value] += 1

    extruded = sum(float(r.extrude_qty) for r in rolls if getattr(r, "extrude_qty", None) is not None)
    produced = produced_quantity(rolls)
    final = sum(
        float(last_populated_quantity(r)) for r in rolls if getattr(r, "extrude_qty", None) is not None
    )
    waste = job_order_waste(rolls)
    waste_pct = job_order_waste_percent(rolls)
    target = float(getattr(job_order, "target_quantity", 0) or 0)

    return JobOrderSummary(
        job_order_id=str(getattr(job_order, "id", "")),
        target_quantity=target,
        requires_printing=bool(getattr(job_order, "requires_printing", False)),
        roll_count=len(rolls),
        extruded_quantity=_round3(extruded),
        final_quantity=_round3(final),
        produced_quantity=_round3(produced),
        waste_quantity=_round3(waste or 0.0),
        waste_percentage=_round3(waste_pct) if waste_pct is not None else None,
        cut_quantity=_round3(receivable_total(rolls)),
        received_quantity=_round3(received_total(receipts)),
        available_for_receiving=_round3(compute_availability(rolls, receipts)),
        progress_percent=_round3(produced / target * 100.0) if target > 0 else None,
        is_overproduced=bool(target > 0 and produced > target + QTY_EPSILON),
        status=derive_job_order_status(job_order, rolls, stages, produced),
        stage_breakdown=breakdown,
    )
