from __future__ import annotations

from datetime import datetime
from uuid import UUID

from rollflow.schemas.common import APIModel


class DataQualityWarningOut(APIModel):
    id: UUID
    roll_id: UUID
    job_order_id: UUID
    kind: str
    from_stage: str
    to_stage: str
    from_qty: float
    to_qty: float
    created_at: datetime
