from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import DateTime, Float, ForeignKey, Index, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from rollflow.db.base import Base


class DataQualityWarning(Base):
    __tablename__ = "data_quality_warnings"

    id: Mapped[uuid.UUID] = mapped_column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    roll_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("rolls.id", ondelete="CASCADE"), nullable=False
    )
    job_order_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("job_orders.id", ondelete="CASCADE"), nullable=False
    )

    kind: Mapped[str] = mapped_column(Text, nullable=False)
    from_stage: Mapped[str] = mapped_column(Text, nullable=False)
    to_stage: Mapped[str] = mapped_column(Text, nullable=False)
    from_qty: Mapped[float] = mapped_column(Float, nullable=False)
    to_qty: Mapped[float] = mapped_column(Float, nullable=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)


Index("ix_data_quality_warnings_roll_id", DataQualityWarning.roll_id)
Index("ix_data_quality_warnings_created_at", DataQualityWarning.created_at)
