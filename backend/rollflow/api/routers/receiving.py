from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from rollflow.api.deps import get_broadcaster, get_db
from rollflow.api.errors import DOMAIN_ERRORS, to_http
from rollflow.db.models.receiving_transaction import ReceivingTransaction
from rollflow.schemas.receiving import ReceivingCreate, ReceivingOut
from rollflow.services import receiving_service
from rollflow.services.broadcaster import SnapshotBroadcaster


router = APIRouter(prefix="/receiving", tags=["receiving"])


@router.get("", response_model=list[ReceivingOut])
async def list_receiving(
    job_order_id: UUID | None = Query(default=None),
    db: AsyncSession = Depends(get_db),
) -> list[ReceivingTransaction]:
    return await receiving_service.list_receipts(db, job_order_id)


@router.post("", response_model=ReceivingOut, status_code=201)
async def submit_receiving(
    body: ReceivingCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db),
    broadcaster: SnapshotBroadcaster = Depends(get_broadcaster),
) -> ReceivingTransaction:
    """
    Accept finished material into the warehouse.

    409 with {"available": ...} when the quantity exceeds the job order's
    unreceived cut material.
    """
    try:
        tx = await receiving_service.submit_receiving(
            db,
            body.job_order_id,
            body.quantity,
            received_by=body.received_by,
            roll_id=body.roll_id,
            note=body.note,
        )
    except DOMAIN_ERRORS as e:
        raise to_http(e)
    background_tasks.add_task(broadcaster.publish_latest)
    return tx
