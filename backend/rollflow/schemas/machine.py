from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel

from rollflow.schemas.common import APIModel


class MachineCreate(BaseModel):
    code: str
    name: str | None = None
    section: Literal["extrusion", "printing", "cutting"]
    is_active: bool = True


class MachineOut(APIModel):
    id: UUID
    code: str
    name: str | None
    section: str
    is_active: bool
    created_at: datetime
