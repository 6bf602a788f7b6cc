from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from rollflow.schemas.common import APIModel


class ReceivingCreate(BaseModel):
    job_order_id: UUID
    quantity: float = Field(gt=0)
    received_by: str = Field(min_length=1)
    roll_id: UUID | None = None
    note: str | None = None


class ReceivingOut(APIModel):
    id: UUID
    job_order_id: UUID
    roll_id: UUID | None = None
    quantity: float
    received_by: str
    note: str | None = None
    received_at: datetime
