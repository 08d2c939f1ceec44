"""Middleware package: error hierarchy and request ID."""

from fetchgate.middleware.error_handler import (
    AllEndpointsFailedError,
    GatewayError,
    InvalidTaskStateError,
    NoEndpointsAvailableError,
    OfflineError,
    OperationFailedError,
    ResponseTooLargeError,
    SchedulerClosedError,
    TaskNotFoundError,
    UnsafeTargetError,
    register_error_handlers,
)
from fetchgate.middleware.request_id import RequestIdMiddleware

__all__ = [
    "AllEndpointsFailedError",
    "GatewayError",
    "InvalidTaskStateError",
    "NoEndpointsAvailableError",
    "OfflineError",
    "OperationFailedError",
    "RequestIdMiddleware",
    "ResponseTooLargeError",
    "SchedulerClosedError",
    "TaskNotFoundError",
    "UnsafeTargetError",
    "register_error_handlers",
]
