"""
Typed scheduling failures.

Raised inside the services and translated to HTTP responses by
``scheduling_error_handler``; none of them are swallowed on the way out.
"""
import logging
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SchedulingError(Exception):
    status_code: int = 400
    retryable: bool = False

    def __init__(self, message: str, code: str | None = None, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.code, "message": self.message, "details": self.details}


class ValidationError(SchedulingError):
    """Malformed input: start >= end, guest booking without a name, bad cursor..."""

    def __init__(self, message: str, field: str | None = None, details: dict[str, Any] | None = None):
        details = dict(details or {})
        if field:
            details["field"] = field
        super().__init__(message, details=details)
        self.field = field


class NotFound(SchedulingError):
    status_code = 404

    def __init__(self, entity_type: str, entity_id: Any, message: str | None = None):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            message or f"{entity_type} not found",
            details={"entity_type": entity_type, "entity_id": str(entity_id)},
        )


class SlotUnavailable(SchedulingError):
    def __init__(self, message: str, *, reason: str = "conflict", conflicts: list[dict] | None = None):
        self.reason = reason
        self.conflicts = conflicts or []
        super().__init__(message, details={"reason": reason, "conflicts": self.conflicts})


class InvalidTransition(SchedulingError):
    status_code = 409

    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(
            f"Cannot change status from {current} to {requested}",
            details={"current": current, "requested": requested},
        )


class ReasonRequired(SchedulingError):
    def __init__(self, message: str = "cancel_reason is required when cancelling an appointment"):
        super().__init__(message, details={"field": "cancel_reason"})


class ImmutableState(SchedulingError):
    def __init__(self, status: str):
        self.status = status
        super().__init__(f"Appointment in status {status} can no longer be edited", details={"status": status})


class OverlappingWindow(SchedulingError):
    status_code = 409


class SlotLocked(SchedulingError):
    status_code = 503
    retryable = True

    def __init__(self, message: str = "Schedule is busy, retry shortly", retry_after: int = 1):
        self.retry_after = retry_after
        super().__init__(message, details={"retry_after": retry_after})


async def scheduling_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, SchedulingError):
        raise exc
    logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.message}")
    headers = {"Retry-After": str(exc.retry_after)} if isinstance(exc, SlotLocked) else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict(), headers=headers)
