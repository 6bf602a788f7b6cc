from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field

from rollflow.services.stage_machine import Stage, last_populated_quantity


@dataclass
class WasteAnomaly:
    """A later stage measured more material than the stage before it."""

    from_stage: str
    to_stage: str
    from_qty: float
    to_qty: float

    @property
    def excess(self) -> float:
        return float(self.to_qty - self.from_qty)


@dataclass
class RollWaste:
    roll_id: str | None
    printing_waste: float | None
    cutting_waste: float | None
    total_waste: float | None
    total_waste_percent: float | None
    anomalies: list[WasteAnomaly] = field(default_factory=list)


@dataclass
class JobOrderWaste:
    roll_count: int
    extruded_quantity: float
    final_quantity: float
    total_waste: float | None
    total_waste_percent: float | None
    cut_roll_count: int
    cutting_waste: float | None
    cutting_waste_percent: float | None
    anomalies: list[WasteAnomaly] = field(default_factory=list)


def _f(v: object) -> float | None:
    return float(v) if v is not None else None


def stage_waste(from_qty: float | None, to_qty: float | None) -> float | None:
    """
    Material lost between two measurements.

    None means "not yet measurable", which is different from zero waste.
    A negative raw difference is a measurement error and clamps to 0; callers
    use find_waste_anomalies to report it.
    """
    if from_qty is None or to_qty is None:
        return None
    return max(0.0, float(from_qty) - float(to_qty))


def stage_waste_percent(from_qty: float | None, to_qty: float | None) -> float | None:
    if from_qty is None or to_qty is None or float(from_qty) == 0:
        return None
    w = stage_waste(from_qty, to_qty)
    return float(w) / float(from_qty) * 100.0


def _cutting_from_qty(roll: object) -> float | None:
    p = _f(getattr(roll, "print_qty", None))
    return p if p is not None else _f(getattr(roll, "extrude_qty", None))


def printing_waste(roll: object) -> float | None:
    return stage_waste(_f(getattr(roll, "extrude_qty", None)), _f(getattr(roll, "print_qty", None)))


def cutting_waste(roll: object) -> float | None:
    # Unprinted rolls go straight from extrusion to cutting.
    return stage_waste(_cutting_from_qty(roll), _f(getattr(roll, "cut_qty", None)))


def total_roll_waste(roll: object) -> float | None:
    extrude = _f(getattr(roll, "extrude_qty", None))
    if extrude is None:
        return None
    last = last_populated_quantity(roll)
    return max(0.0, extrude - float(last))


def total_roll_waste_percent(roll: object) -> float | None:
    extrude = _f(getattr(roll, "extrude_qty", None))
    if extrude is None or extrude == 0:
        return None
    return float(total_roll_waste(roll)) / extrude * 100.0


def find_waste_anomalies(roll: object) -> list[WasteAnomaly]:
    """Consecutive populated measurements where the later one is larger."""
    chain: list[tuple[Stage, float]] = []
    for stage, attr in ((Stage.EXTRUDING, "extrude_qty"), (Stage.PRINTING, "print_qty"), (Stage.CUTTING, "cut_qty")):
        q = _f(getattr(roll, attr, None))
        if q is not None:
            chain.append((stage, q))

    out: list[WasteAnomaly] = []
    for (s_from, q_from), (s_to, q_to) in zip(chain, chain[1:]):
        if q_to > q_from:
            out.append(WasteAnomaly(from_stage=s_from.value, to_stage=s_to.value, from_qty=q_from, to_qty=q_to))
    return out


def _extruded_totals(rolls: Iterable[object]) -> tuple[float, float, bool]:
    total_extruded = 0.0
    total_final = 0.0
    has_data = False
    for r in rolls:
        extrude = _f(getattr(r, "extrude_qty", None))
        if extrude is None:
            continue
        has_data = True
        total_extruded += extrude
        total_final += float(last_populated_quantity(r))
    return total_extruded, total_final, has_data


def job_order_waste(rolls: Iterable[object]) -> float | None:
    total_extruded, total_final, has_data = _extruded_totals(rolls)
    if not has_data:
        return None
    return max(0.0, total_extruded - total_final)


def job_order_waste_percent(rolls: Iterable[object]) -> float | None:
    rolls = list(rolls)
    total_extruded, _total_final, has_data = _extruded_totals(rolls)
    if not has_data or total_extruded == 0:
        return None
    return float(job_order_waste(rolls)) / total_extruded * 100.0


def _cut_rolls(rolls: Iterable[object]) -> list[tuple[float, float]]:
    """(from_qty, cut_qty) for rolls that reached cutting; others are excluded entirely."""
    out: list[tuple[float, float]] = []
    for r in rolls:
        cut = _f(getattr(r, "cut_qty", None))
        if cut is None:
            continue
        from_qty = _cutting_from_qty(r)
        if from_qty is None:
            continue
        out.append((from_qty, cut))
    return out


def cumulative_cutting_waste(rolls: Iterable[object]) -> float | None:
    pairs = _cut_rolls(rolls)
    if not pairs:
        return None
    return sum(max(0.0, f - c) for f, c in pairs)


def cumulative_cutting_waste_percent(rolls: Iterable[object]) -> float | None:
    pairs = _cut_rolls(rolls)
    total_from = sum(f for f, _c in pairs)
    if not pairs or total_from == 0:
        return None
    waste = sum(max(0.0, f - c) for f, c in pairs)
    return waste / total_from * 100.0


def roll_waste(roll: object) -> RollWaste:
    rid = getattr(roll, "id", None)
    return RollWaste(
        roll_id=str(rid) if rid is not None else None,
        printing_waste=printing_waste(roll),
        cutting_waste=cutting_waste(roll),
        total_waste=total_roll_waste(roll),
        total_waste_percent=total_roll_waste_percent(roll),
        anomalies=find_waste_anomalies(roll),
    )


def rolls_waste(rolls: Iterable[object]) -> JobOrderWaste:
    rolls = list(rolls)
    total_extruded, total_final, _has_data = _extruded_totals(rolls)
    anomalies: list[WasteAnomaly] = []
    for r in rolls:
        anomalies.extend(find_waste_anomalies(r))
    return JobOrderWaste(
        roll_count=len(rolls),
        extruded_quantity=total_extruded,
        final_quantity=total_final,
        total_waste=job_order_waste(rolls),
        total_waste_percent=job_order_waste_percent(rolls),
        cut_roll_count=len(_cut_rolls(rolls)),
        cutting_waste=cumulative_cutting_waste(rolls),
        cutting_waste_percent=cumulative_cutting_waste_percent(rolls),
        anomalies=anomalies,
    )


def compute_waste(roll_or_rolls: object) -> RollWaste | JobOrderWaste:
    """Waste figures for a single roll, or for a collection of one job order's rolls."""
    if isinstance(roll_or_rolls, (list, tuple, set, frozenset)):
        return rolls_waste(roll_or_rolls)
    return roll_waste(roll_or_rolls)
