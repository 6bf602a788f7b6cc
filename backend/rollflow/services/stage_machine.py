from __future__ import annotations

from enum import Enum

from rollflow.services.errors import RollClosed, StageAlreadyRecorded, StageOrderViolation


class Stage(str, Enum):
    NONE = "none"
    EXTRUDING = "extruding"
    PRINTING = "printing"
    CUTTING = "cutting"
    COMPLETED = "completed"


TERMINAL_DAMAGED = "damaged"

# Stages that record a quantity on the roll, in physical order.
QTY_FIELDS: dict[Stage, str] = {
    Stage.EXTRUDING: "extrude_qty",
    Stage.PRINTING: "print_qty",
    Stage.CUTTING: "cut_qty",
}

# Float noise tolerance for quantity comparisons (kg).
QTY_EPSILON = 1e-9


def _qty(roll: object, stage: Stage) -> float | None:
    v = getattr(roll, QTY_FIELDS[stage], None)
    return float(v) if v is not None else None


def last_populated_quantity(roll: object) -> float | None:
    """
    Latest measured quantity in stage order: cut, else print, else extrude.
    """
    for stage in (Stage.CUTTING, Stage.PRINTING, Stage.EXTRUDING):
        q = _qty(roll, stage)
        if q is not None:
            return q
    return None


def is_damaged(roll: object) -> bool:
    return getattr(roll, "terminal_status", None) == TERMINAL_DAMAGED


def derive_roll_stage(roll: object, requires_printing: bool, *, received: float = 0.0) -> Stage:
    """
    Derive a roll's stage from which quantities are populated.

    `received` is the receiving quantity allocated to this roll (see
    receiving_service.allocate_receipts_to_rolls); once it covers cut_qty the roll
    is completed. A stored status string is never consulted, only the explicit
    terminal marker.
    """
    extrude = _qty(roll, Stage.EXTRUDING)
    if extrude is None:
        return Stage.NONE
    if getattr(roll, "terminal_status", None):
        return Stage.COMPLETED

    printed = _qty(roll, Stage.PRINTING)
    cut = _qty(roll, Stage.CUTTING)

    if cut is not None:
        if float(received) + QTY_EPSILON >= cut:
            return Stage.COMPLETED
        return Stage.CUTTING
    # Without required printing, an optional print measurement does not advance the stage.
    if requires_printing and printed is not None:
        return Stage.PRINTING
    return Stage.EXTRUDING


def missing_prerequisite(roll: object, requires_printing: bool, stage: Stage) -> Stage | None:
    """Return the earliest required stage whose quantity is absent before `stage`, if any."""
    if stage == Stage.EXTRUDING:
        return None
    if _qty(roll, Stage.EXTRUDING) is None:
        return Stage.EXTRUDING
    if stage == Stage.CUTTING and requires_printing and _qty(roll, Stage.PRINTING) is None:
        return Stage.PRINTING
    return None


def check_stage_entry(roll: object, requires_printing: bool, stage: Stage) -> None:
    """
    Validate recording `stage`'s quantity on `roll` without touching it.

    Raises:
    - RollClosed: the roll carries a terminal marker
    - StageAlreadyRecorded: the quantity (or a later one) is already set
    - StageOrderViolation: an earlier required quantity is missing
    """
    if stage not in QTY_FIELDS:
        raise ValueError(f"stage {stage.value} does not record a quantity")

    roll_id = getattr(roll, "id", None)
    terminal = getattr(roll, "terminal_status", None)
    if terminal:
        raise RollClosed(roll_id=roll_id, terminal_status=str(terminal))

    if _qty(roll, stage) is not None:
        raise StageAlreadyRecorded(roll_id=roll_id, stage=stage.value)
    # Printing cannot be added once the roll went straight to cutting.
    if stage == Stage.PRINTING and _qty(roll, Stage.CUTTING) is not None:
        raise StageAlreadyRecorded(roll_id=roll_id, stage=Stage.CUTTING.value)

    missing = missing_prerequisite(roll, requires_printing, stage)
    if missing is not None:
        raise StageOrderViolation(roll_id=roll_id, stage=stage.value, missing_stage=missing.value)
