"""Transfer executor: runs one attempt of a transfer task.

A single attempt is one ``Dispatcher.forward`` call, which may itself rotate
through several endpoints. Received chunks update the task's progress and
are published as progress events. Progress arriving for a task that has
already been cancelled is dropped.
"""

from __future__ import annotations

import logging

from fetchgate.models.events import EventType, TransferEvent
from fetchgate.models.requests import TaskStatus, TransferTask
from fetchgate.proxy.dispatcher import Dispatcher, ForwardedResponse
from fetchgate.services.events import EventBus

logger = logging.getLogger(__name__)


class TransferExecutor:
    """Executes transfer attempts through the dispatcher."""

    def __init__(self, *, dispatcher: Dispatcher, events: EventBus) -> None:
        self._dispatcher = dispatcher
        self._events = events

    async def execute(self, task: TransferTask) -> ForwardedResponse:
        """Fetch the task's target once, reporting progress as chunks arrive."""
        logger.debug(
            "Executing transfer %s (attempt %d)",
            task.id,
            task.retry_count + 1,
            extra={"task_id": task.id, "target_url": task.target},
        )

        def on_progress(loaded: int, total: int | None) -> None:
            if task.status is TaskStatus.CANCELLED:
                return
            if total:
                task.progress = min(100, int(loaded * 100 / total))
            self._events.publish(
                TransferEvent(
                    type=EventType.PROGRESS,
                    task_id=task.id,
                    status=task.status.value,
                    loaded=loaded,
                    total=total,
                    progress=task.progress,
                )
            )

        return await self._dispatcher.forward(
            task.target, headers=task.headers, on_progress=on_progress
        )
