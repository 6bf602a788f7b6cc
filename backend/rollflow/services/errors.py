from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(eq=False)
class StageOrderViolation(ValueError):
    """A stage quantity was offered before the stage it depends on was recorded."""

    roll_id: UUID | None
    stage: str
    missing_stage: str

    def __str__(self) -> str:
        return f"cannot record {self.stage}: {self.missing_stage} quantity is missing"

    @property
    def detail(self) -> dict:
        return {
            "message": str(self),
            "roll_id": str(self.roll_id) if self.roll_id else None,
            "stage": self.stage,
            "missing_stage": self.missing_stage,
        }


@dataclass(eq=False)
class StageAlreadyRecorded(ValueError):
    roll_id: UUID | None
    stage: str

    def __str__(self) -> str:
        return f"{self.stage} quantity already recorded"

    @property
    def detail(self) -> dict:
        return {
            "message": str(self),
            "roll_id": str(self.roll_id) if self.roll_id else None,
            "stage": self.stage,
        }


@dataclass(eq=False)
class RollClosed(ValueError):
    roll_id: UUID | None
    terminal_status: str

    def __str__(self) -> str:
        return f"roll is closed ({self.terminal_status})"

    @property
    def detail(self) -> dict:
        return {
            "message": str(self),
            "roll_id": str(self.roll_id) if self.roll_id else None,
            "terminal_status": self.terminal_status,
        }


@dataclass(eq=False)
class QuantityExceedsAvailable(ValueError):
    """Receiving request larger than the job order's unreceived cut material."""

    job_order_id: UUID
    requested: float
    available: float

    def __str__(self) -> str:
        return f"requested {self.requested:g} exceeds available {self.available:g}"

    @property
    def detail(self) -> dict:
        return {
            "message": str(self),
            "job_order_id": str(self.job_order_id),
            "requested": float(self.requested),
            "available": float(self.available),
        }


@dataclass(eq=False)
class NotFound(LookupError):
    entity: str
    id: object

    def __str__(self) -> str:
        return f"{self.entity} not found"


@dataclass(eq=False)
class RollAlreadyReceived(ValueError):
    """Damage on a roll whose cut material is already (partly) in the warehouse."""

    roll_id: UUID | None
    received: float

    def __str__(self) -> str:
        return f"roll already has {self.received:g} received"

    @property
    def detail(self) -> dict:
        return {
            "message": str(self),
            "roll_id": str(self.roll_id) if self.roll_id else None,
            "received": float(self.received),
        }


@dataclass(eq=False)
class JobOrderClosed(ValueError):
    job_order_id: UUID

    def __str__(self) -> str:
        return "job order is closed"

    @property
    def detail(self) -> dict:
        return {"message": str(self), "job_order_id": str(self.job_order_id)}
