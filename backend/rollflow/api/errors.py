from __future__ import annotations

from fastapi import HTTPException

from rollflow.services.errors import (
    JobOrderClosed,
    NotFound,
    QuantityExceedsAvailable,
    RollAlreadyReceived,
    RollClosed,
    StageAlreadyRecorded,
    StageOrderViolation,
)


DOMAIN_ERRORS = (NotFound, ValueError)
_CONFLICTS = (
    StageOrderViolation,
    StageAlreadyRecorded,
    RollClosed,
    RollAlreadyReceived,
    QuantityExceedsAvailable,
    JobOrderClosed,
)


def to_http(e: NotFound | ValueError) -> HTTPException:
    """Map a domain rejection to the HTTP error the client sees."""
    if isinstance(e, NotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, _CONFLICTS):
        return HTTPException(status_code=409, detail=e.detail)
    return HTTPException(status_code=400, detail=str(e))
