"""Transfer task endpoints.

- POST /api/v1/transfers — submit a transfer task
- GET  /api/v1/transfers — list tasks (optional ``status`` filter)
- GET  /api/v1/transfers/{task_id} — get task status
- GET  /api/v1/transfers/{task_id}/content — download a completed task's bytes
- POST /api/v1/transfers/{task_id}/cancel — cancel a queued or running task
- POST /api/v1/transfers/{task_id}/retry — resubmit a failed task
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import quote

from fastapi import APIRouter, Response

from fetchgate.middleware.error_handler import InvalidTaskStateError
from fetchgate.models.requests import TaskStatus, TransferRequest
from fetchgate.models.responses import ApiResponse

if TYPE_CHECKING:
    from fetchgate.context import GatewayContext

logger = logging.getLogger(__name__)


def _content_disposition(filename: str) -> str:
    """Attachment header value; non-ASCII or quoted names use RFC 5987 encoding."""
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def create_transfers_router(*, context: GatewayContext) -> APIRouter:
    """Factory that creates the transfers router with injected dependencies."""

    transfers_router = APIRouter(prefix="/api/v1/transfers", tags=["transfers"])
    scheduler = context.scheduler

    @transfers_router.post("", status_code=202)
    async def submit_transfer(body: TransferRequest) -> dict:
        """Submit a transfer task. Returns 202 with task_id and its admission status."""
        task_id = scheduler.submit(
            body.target,
            body.destination_name,
            kind=body.kind,
            headers=body.headers,
        )
        task = scheduler.require_task(task_id)

        return ApiResponse(
            success=True,
            data={"task_id": task.id, "status": task.status.value},
        ).model_dump()

    @transfers_router.get("")
    async def list_transfers(status: TaskStatus | None = None) -> dict:
        tasks = scheduler.list_tasks(status)
        return ApiResponse(
            success=True,
            data={"tasks": [task.to_dict() for task in tasks], "count": len(tasks)},
        ).model_dump()

    @transfers_router.get("/{task_id}")
    async def get_transfer(task_id: str) -> dict:
        task = scheduler.require_task(task_id)
        return ApiResponse(success=True, data=task.to_dict()).model_dump()

    @transfers_router.get("/{task_id}/content")
    async def get_transfer_content(task_id: str) -> Response:
        """Return the raw bytes of a completed task as an attachment."""
        task = scheduler.require_task(task_id)
        if task.status is not TaskStatus.COMPLETED or task.result is None:
            raise InvalidTaskStateError(
                f"Content is only available for completed tasks (task is {task.status.value})",
                task_id=task_id,
            )

        return Response(
            content=task.result,
            media_type=task.content_type or "application/octet-stream",
            headers={"Content-Disposition": _content_disposition(task.destination_name)},
        )

    @transfers_router.post("/{task_id}/cancel")
    async def cancel_transfer(task_id: str) -> dict:
        task = scheduler.cancel(task_id)
        return ApiResponse(
            success=True,
            data={"task_id": task.id, "status": task.status.value},
        ).model_dump()

    @transfers_router.post("/{task_id}/retry")
    async def retry_transfer(task_id: str) -> dict:
        """Resubmit a failed task. Only valid for tasks in the failed state."""
        task = scheduler.retry(task_id)
        return ApiResponse(
            success=True,
            data={"task_id": task.id, "status": task.status.value},
        ).model_dump()

    return transfers_router
