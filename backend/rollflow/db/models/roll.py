from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rollflow.db.base import Base


class Roll(Base):
    __tablename__ = "rolls"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    job_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("job_orders.id", ondelete="RESTRICT"), nullable=False
    )
    # Sequence number scoped to the job order (1, 2, 3, ...)
    roll_number: Mapped[int] = mapped_column(Integer, nullable=False)

    # Stage quantities, populated left to right. There is no stored stage column.
    extrude_qty: Mapped[float | None] = mapped_column(Float, nullable=True)
    print_qty: Mapped[float | None] = mapped_column(Float, nullable=True)
    cut_qty: Mapped[float | None] = mapped_column(Float, nullable=True)

    extruded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    extruded_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    printed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    printed_by: Mapped[str | None] = mapped_column(Text, nullable=True)
    cut_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cut_by: Mapped[str | None] = mapped_column(Text, nullable=True)

    extrusion_machine_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True
    )
    printing_machine_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True
    )
    cutting_machine_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("machines.id", ondelete="SET NULL"), nullable=True
    )

    # Explicit terminal marker ("damaged"); null for rolls still flowing.
    terminal_status: Mapped[str | None] = mapped_column(Text, nullable=True, default=None)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)
    archived_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, default=None)


Index("ux_rolls_job_order_roll_number", Roll.job_order_id, Roll.roll_number, unique=True)
Index("ix_rolls_job_order_id", Roll.job_order_id)
