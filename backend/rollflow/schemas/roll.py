from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from rollflow.schemas.common import APIModel
from rollflow.schemas.waste import RollWasteOut


class ExtrusionCreate(BaseModel):
    extrude_qty: float = Field(ge=0)
    extruded_by: str | None = None
    machine_id: UUID | None = None
    note: str | None = None


class StageQuantityCreate(BaseModel):
    quantity: float = Field(ge=0)
    recorded_by: str | None = None
    machine_id: UUID | None = None


class DamageRequest(BaseModel):
    note: str | None = None


class RollOut(APIModel):
    id: UUID
    job_order_id: UUID
    roll_number: int
    extrude_qty: float | None = None
    print_qty: float | None = None
    cut_qty: float | None = None

    extruded_at: datetime | None = None
    extruded_by: str | None = None
    printed_at: datetime | None = None
    printed_by: str | None = None
    cut_at: datetime | None = None
    cut_by: str | None = None

    extrusion_machine_id: UUID | None = None
    printing_machine_id: UUID | None = None
    cutting_machine_id: UUID | None = None

    terminal_status: str | None = None
    note: str | None = None
    created_at: datetime
    updated_at: datetime

    # derived
    stage: str


class RollDetailOut(RollOut):
    received_quantity: float
    waste: RollWasteOut
