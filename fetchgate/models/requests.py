"""Pydantic request models and in-memory state models for transfer tasks."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field


class TransferKind(str, Enum):
    """What a transfer task produces."""

    CONTENT_FETCH = "content_fetch"  # page content for display or conversion
    BYTE_TRANSFER = "byte_transfer"  # raw bytes destined for a file


class TaskStatus(str, Enum):
    """Status of a transfer task.

    ``pending`` and ``queued`` both mean "not started"; ``queued`` records that
    no concurrency slot was free at admission time.
    """

    PENDING = "pending"
    QUEUED = "queued"
    DOWNLOADING = "downloading"
    RETRYING = "retrying"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATUSES


_TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class TransferTask:
    """In-memory state for a single transfer task."""

    id: str  # UUID
    kind: TransferKind
    target: str
    destination_name: str
    status: TaskStatus = TaskStatus.PENDING
    progress: int = 0  # 0..100
    retry_count: int = 0
    last_error: str | None = None
    error_kind: str | None = None
    headers: dict[str, str] | None = None
    result: bytes | None = None
    content_type: str | None = None
    endpoint: str | None = None
    created_at: datetime = field(default_factory=_utcnow)
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: float = field(default_factory=time.monotonic)  # for retention sweeps

    def to_dict(self) -> dict:
        """Public view of the task (without the result payload)."""
        return {
            "task_id": self.id,
            "kind": self.kind.value,
            "target": self.target,
            "destination_name": self.destination_name,
            "status": self.status.value,
            "progress": self.progress,
            "retry_count": self.retry_count,
            "last_error": self.last_error,
            "error_kind": self.error_kind,
            "endpoint": self.endpoint,
            "content_type": self.content_type,
            "size": len(self.result) if self.result is not None else None,
            "created_at": self.created_at.isoformat(),
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


class TransferRequest(BaseModel):
    """Request model for submitting a transfer task."""

    target: str = Field(..., min_length=1, max_length=2048)
    destination_name: str = Field(..., min_length=1, max_length=255)
    kind: TransferKind = TransferKind.BYTE_TRANSFER
    headers: dict[str, str] | None = None


class FetchRequest(BaseModel):
    """Request model for a synchronous content fetch."""

    target: str = Field(..., min_length=1, max_length=2048)
    headers: dict[str, str] | None = None
    sanitize: bool = True
