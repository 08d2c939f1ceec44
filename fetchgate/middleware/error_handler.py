"""Global error hierarchy and FastAPI exception handlers.

All gateway-specific errors extend GatewayError. Each carries an HTTP status
code for the service surface and a stable ``kind`` the caller can map to a
human message. The FastAPI exception handlers catch these errors (plus
Pydantic's RequestValidationError and unhandled exceptions) and return a
consistent JSON envelope: { success, data, error, meta }.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from fetchgate.models.errors import ErrorClassification, ErrorKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class GatewayError(Exception):
    """Base error for all gateway-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"
    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class UnsafeTargetError(GatewayError):
    """Target URL failed the safety checks or cannot use the secure scheme."""

    status_code = 400
    message = "Target URL is not safe to fetch"
    kind = ErrorKind.UNSAFE_TARGET


class NoEndpointsAvailableError(GatewayError):
    """Every endpoint is circuit-open or over its request budget."""

    status_code = 503
    message = "No forwarding endpoints available (circuit open or rate limited)"
    kind = ErrorKind.UNAVAILABLE


class AllEndpointsFailedError(GatewayError):
    """Every endpoint attempt for one forward call failed."""

    status_code = 502
    message = "All forwarding endpoints failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        last_error: BaseException | None = None,
        **kwargs: object,
    ) -> None:
        if message is None and last_error is not None:
            message = f"All forwarding endpoints failed. Last error: {last_error}"
        super().__init__(message, **kwargs)
        self.last_error = last_error


class ResponseTooLargeError(GatewayError):
    """Upstream response body exceeds the configured ceiling."""

    status_code = 502
    message = "Response body exceeds the size limit"


class OfflineError(GatewayError):
    """The network is known to be unavailable, so retrying cannot succeed."""

    status_code = 503
    message = "Network connection is offline"
    kind = ErrorKind.NETWORK


class OperationFailedError(GatewayError):
    """Terminal failure of a retried operation, carrying its classification."""

    status_code = 502
    message = "Operation failed"

    def __init__(
        self,
        message: str | None = None,
        *,
        classification: ErrorClassification,
        attempts: int = 1,
        **kwargs: object,
    ) -> None:
        super().__init__(message, **kwargs)
        self.classification = classification
        self.kind = classification.kind
        self.attempts = attempts


class TaskNotFoundError(GatewayError):
    """Transfer task not found."""

    status_code = 404
    message = "Transfer task not found"


class InvalidTaskStateError(GatewayError):
    """Operation is not valid for the task's current status."""

    status_code = 409
    message = "Operation not allowed in the task's current state"


class SchedulerClosedError(GatewayError):
    """The transfer scheduler has been shut down and accepts no new work."""

    status_code = 503
    message = "Transfer scheduler is shut down"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _gateway_error_handler(_request: Request, exc: GatewayError) -> JSONResponse:
    """Handle GatewayError subclasses."""
    status_code = exc.status_code
    meta: dict = {"kind": exc.kind.value}
    if isinstance(exc, OperationFailedError):
        meta["attempts"] = exc.attempts
        # Terminal gateway errors keep their own status (e.g. 400 for unsafe targets)
        if isinstance(exc.__cause__, GatewayError):
            status_code = exc.__cause__.status_code
    if exc.details:
        meta.update({key: str(value) for key, value in exc.details.items()})
    return _envelope(status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions: log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(GatewayError, _gateway_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
