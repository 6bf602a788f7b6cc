from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from rollflow.schemas.common import APIModel


class JobOrderCreate(BaseModel):
    order_ref: str
    item_name: str | None = None
    target_quantity: float = Field(gt=0)
    requires_printing: bool = False


class JobOrderOut(APIModel):
    id: UUID
    order_ref: str
    item_name: str | None
    target_quantity: float
    requires_printing: bool
    closed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime


class JobOrderSummaryOut(APIModel):
    job_order_id: UUID
    target_quantity: float
    requires_printing: bool
    roll_count: int
    extruded_quantity: float
    final_quantity: float
    produced_quantity: float
    waste_quantity: float
    waste_percentage: float | None = None
    cut_quantity: float
    received_quantity: float
    available_for_receiving: float
    progress_percent: float | None = None
    is_overproduced: bool
    status: str
    stage_breakdown: dict[str, int]


class JobOrderDetailOut(JobOrderOut):
    summary: JobOrderSummaryOut


class AvailabilityOut(BaseModel):
    job_order_id: UUID
    available_for_receiving: float
