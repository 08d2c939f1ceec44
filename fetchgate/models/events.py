"""Transfer notification events delivered to subscribers."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class EventType(str, Enum):
    PROGRESS = "progress"
    STATUS = "status"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class TransferEvent:
    """One notification about a transfer task.

    ``loaded``/``total``/``progress`` are set for progress events, ``status``
    for every event, ``error``/``error_kind`` for failures.
    """

    type: EventType
    task_id: str
    status: str
    loaded: int | None = None
    total: int | None = None
    progress: int | None = None
    error: str | None = None
    error_kind: str | None = None
    data: dict = field(default_factory=dict)
