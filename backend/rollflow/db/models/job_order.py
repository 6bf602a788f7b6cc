from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rollflow.db.base import Base


class JobOrder(Base):
    __tablename__ = "job_orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    order_ref: Mapped[str] = mapped_column(Text, nullable=False)
    item_name: Mapped[str | None] = mapped_column(Text, nullable=True)

    target_quantity: Mapped[float] = mapped_column(Float, nullable=False)
    requires_printing: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # produced/waste quantities and status are derived from rolls; only an explicit close is stored.
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


Index("ix_job_orders_order_ref", JobOrder.order_ref)
