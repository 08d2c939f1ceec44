"""Public models for the fetch gateway."""

from fetchgate.models.errors import ErrorClassification, ErrorKind, Severity
from fetchgate.models.events import EventType, TransferEvent
from fetchgate.models.requests import (
    FetchRequest,
    TaskStatus,
    TransferKind,
    TransferRequest,
    TransferTask,
)
from fetchgate.models.responses import ApiResponse

__all__ = [
    "ApiResponse",
    "ErrorClassification",
    "ErrorKind",
    "EventType",
    "FetchRequest",
    "Severity",
    "TaskStatus",
    "TransferEvent",
    "TransferKind",
    "TransferRequest",
    "TransferTask",
]
