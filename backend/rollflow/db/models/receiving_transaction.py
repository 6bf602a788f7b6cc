from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rollflow.db.base import Base


class ReceivingTransaction(Base):
    __tablename__ = "receiving_transactions"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("job_orders.id", ondelete="RESTRICT"), nullable=False
    )
    # roll_id is nullable: one receipt may consolidate several rolls
    roll_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rolls.id", ondelete="RESTRICT"), nullable=True
    )

    quantity: Mapped[float] = mapped_column(Float, nullable=False)
    received_by: Mapped[str] = mapped_column(Text, nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


Index("ix_receiving_transactions_job_order_id", ReceivingTransaction.job_order_id)
Index("ix_receiving_transactions_roll_id", ReceivingTransaction.roll_id)
