from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.api.deps import get_db
from rollflow.db.models.data_quality_warning import DataQualityWarning
from rollflow.schemas.data_quality import DataQualityWarningOut


router = APIRouter(prefix="/data-quality", tags=["data-quality"])


@router.get("/warnings", response_model=list[DataQualityWarningOut])
async def list_warnings(
    job_order_id: UUID | None = Query(default=None),
    roll_id: UUID | None = Query(default=None),
    limit: int = Query(default=200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
) -> list[DataQualityWarning]:
    stmt = select(DataQualityWarning)
    if job_order_id is not None:
        stmt = stmt.where(DataQualityWarning.job_order_id == job_order_id)
    if roll_id is not None:
        stmt = stmt.where(DataQualityWarning.roll_id == roll_id)
    stmt = stmt.order_by(DataQualityWarning.created_at.desc()).limit(limit)
    return (await db.execute(stmt)).scalars().all()
