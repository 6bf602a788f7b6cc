from __future__ import annotations

from uuid import UUID

from rollflow.schemas.common import APIModel


class WasteAnomalyOut(APIModel):
    from_stage: str
    to_stage: str
    from_qty: float
    to_qty: float


class RollWasteOut(APIModel):
    roll_id: UUID | None = None
    printing_waste: float | None = None
    cutting_waste: float | None = None
    total_waste: float | None = None
    total_waste_percent: float | None = None
    anomalies: list[WasteAnomalyOut] = []


class JobOrderWasteOut(APIModel):
    job_order_id: UUID | None = None
    roll_count: int
    extruded_quantity: float
    final_quantity: float
    total_waste: float | None = None
    total_waste_percent: float | None = None
    cut_roll_count: int
    cutting_waste: float | None = None
    cutting_waste_percent: float | None = None
    anomalies: list[WasteAnomalyOut] = []
