"""Transfer scheduler: admission, FIFO queueing and the per-task state machine.

Task lifecycle::

    pending -> queued -> downloading -> completed
                             |  ^
                             v  |
                          retrying
                             |
                             v
                     failed | cancelled

``submit`` is synchronous: it records the task and either starts it (when
fewer than ``max_concurrent`` tasks are active) or appends it to a FIFO
queue. Each started task gets its own driver coroutine that runs the
transfer through a task-level ``RetryCoordinator``, so a task's retries are
strictly sequential. Whenever a driver finishes, its concurrency slot is
released and the oldest queued task is started.

All state mutation happens on the event loop thread between awaits, so no
locks are needed.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import deque
from datetime import datetime, timezone
from functools import partial

from fetchgate.middleware.error_handler import (
    InvalidTaskStateError,
    OperationFailedError,
    SchedulerClosedError,
    TaskNotFoundError,
)
from fetchgate.models.errors import ErrorClassification
from fetchgate.models.events import EventType, TransferEvent
from fetchgate.models.requests import TaskStatus, TransferKind, TransferTask
from fetchgate.proxy.dispatcher import ForwardedResponse
from fetchgate.resilience.connectivity import ConnectivityMonitor
from fetchgate.resilience.retry import RetryCoordinator
from fetchgate.services.events import EventBus
from fetchgate.services.transfer_executor import TransferExecutor
from fetchgate.validators.content import sanitize_content

logger = logging.getLogger(__name__)


class TransferScheduler:
    """Runs transfer tasks with bounded concurrency.

    Parameters
    ----------
    executor:
        Runs a single transfer attempt.
    events:
        Bus that receives status, progress, completion and failure events.
    max_concurrent:
        Maximum number of tasks downloading or retrying at once.
    max_retries:
        Task-level retry budget, independent of endpoint rotation.
    retry_base_delay_seconds:
        Backoff base for task-level retries.
    retention_seconds:
        How long terminal tasks are kept before the cleanup sweep drops them.
    cleanup_interval_seconds:
        Period of ``cleanup_loop``.
    connectivity:
        Optional network signal; while offline, attempts fail fast.
    """

    def __init__(
        self,
        *,
        executor: TransferExecutor,
        events: EventBus,
        max_concurrent: int = 3,
        max_retries: int = 3,
        retry_base_delay_seconds: float = 2.0,
        retention_seconds: float = 86400,
        cleanup_interval_seconds: float = 60,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        self._executor = executor
        self._events = events
        self._max_concurrent = max_concurrent
        self._retention_seconds = retention_seconds
        self._cleanup_interval_seconds = cleanup_interval_seconds
        self._retry = RetryCoordinator(
            max_retries=max_retries,
            base_delay_seconds=retry_base_delay_seconds,
            connectivity=connectivity,
        )

        self._tasks: dict[str, TransferTask] = {}
        self._queue: deque[str] = deque()
        self._drivers: dict[str, asyncio.Task[None]] = {}
        self._active = 0
        self._closed = False

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def active_count(self) -> int:
        return self._active

    @property
    def queue_length(self) -> int:
        return len(self._queue)

    @property
    def max_concurrent(self) -> int:
        return self._max_concurrent

    @property
    def retry_coordinator(self) -> RetryCoordinator:
        return self._retry

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(
        self,
        target: str,
        destination_name: str,
        *,
        kind: TransferKind = TransferKind.BYTE_TRANSFER,
        headers: dict[str, str] | None = None,
    ) -> str:
        """Record a new transfer task and admit it. Returns the task id.

        Must be called from a running event loop, since an admitted task
        starts immediately.

        Raises
        ------
        SchedulerClosedError
            If ``close`` has already been called.
        """
        if self._closed:
            raise SchedulerClosedError()

        task = TransferTask(
            id=str(uuid.uuid4()),
            kind=kind,
            target=target,
            destination_name=destination_name,
            headers=headers,
        )
        self._tasks[task.id] = task
        logger.info(
            "Submitted transfer %s (%s) for %s",
            task.id,
            kind.value,
            target,
            extra={"task_id": task.id, "target_url": target},
        )
        self._admit(task)
        return task.id

    def get_task(self, task_id: str) -> TransferTask | None:
        return self._tasks.get(task_id)

    def require_task(self, task_id: str) -> TransferTask:
        """Like ``get_task`` but raises ``TaskNotFoundError`` for unknown ids."""
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(task_id=task_id)
        return task

    def list_tasks(self, status: TaskStatus | None = None) -> list[TransferTask]:
        """All known tasks in submission order, optionally filtered by status."""
        tasks = sorted(self._tasks.values(), key=lambda t: t.created_at)
        if status is not None:
            tasks = [t for t in tasks if t.status is status]
        return tasks

    def cancel(self, task_id: str) -> TransferTask:
        """Cancel a queued or running task.

        A queued task is removed from the queue and never starts. A running
        task is marked cancelled at once and its driver is cancelled, which
        aborts the in-flight request; the slot is released when the driver
        unwinds.

        Raises
        ------
        TaskNotFoundError
            If the id is unknown.
        InvalidTaskStateError
            If the task already reached a terminal state.
        """
        task = self.require_task(task_id)
        if task.status.is_terminal:
            raise InvalidTaskStateError(
                f"Cannot cancel a task that is {task.status.value}", task_id=task_id
            )

        if task.status in (TaskStatus.PENDING, TaskStatus.QUEUED):
            try:
                self._queue.remove(task_id)
            except ValueError:
                pass
            self._finish(task, TaskStatus.CANCELLED, error="Transfer cancelled")
            logger.info("Cancelled queued transfer %s", task_id, extra={"task_id": task_id})
            return task

        self._finish(task, TaskStatus.CANCELLED, error="Transfer cancelled")
        driver = self._drivers.get(task_id)
        if driver is not None:
            driver.cancel()
        logger.info("Cancelled running transfer %s", task_id, extra={"task_id": task_id})
        return task

    def retry(self, task_id: str) -> TransferTask:
        """Resubmit a failed task with a fresh retry budget.

        Raises
        ------
        TaskNotFoundError
            If the id is unknown.
        InvalidTaskStateError
            If the task is not ``failed``.
        SchedulerClosedError
            If ``close`` has already been called.
        """
        if self._closed:
            raise SchedulerClosedError()

        task = self.require_task(task_id)
        if task.status is not TaskStatus.FAILED:
            raise InvalidTaskStateError(
                f"Only failed tasks can be retried (task is {task.status.value})",
                task_id=task_id,
            )

        task.status = TaskStatus.PENDING
        task.retry_count = 0
        task.progress = 0
        task.last_error = None
        task.error_kind = None
        task.result = None
        task.completed_at = None
        task.updated_at = time.monotonic()
        logger.info("Retrying failed transfer %s", task_id, extra={"task_id": task_id})
        self._admit(task)
        return task

    async def join(self) -> None:
        """Wait until no task is running or queued behind a running task."""
        while self._drivers:
            await asyncio.wait(list(self._drivers.values()))

    async def close(self) -> None:
        """Stop admitting work, cancel queued tasks and abort running ones."""
        if self._closed:
            return
        self._closed = True

        while self._queue:
            task = self._tasks.get(self._queue.popleft())
            if task is not None and not task.status.is_terminal:
                self._finish(task, TaskStatus.CANCELLED, error="Scheduler shut down")

        drivers = list(self._drivers.values())
        for driver in drivers:
            driver.cancel()
        if drivers:
            await asyncio.gather(*drivers, return_exceptions=True)

        logger.info("Transfer scheduler closed (%d running task(s) aborted)", len(drivers))

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def cleanup_expired(self, now: float | None = None) -> int:
        """Drop terminal tasks whose last update is older than the retention window."""
        now = time.monotonic() if now is None else now
        expired = [
            task_id
            for task_id, task in self._tasks.items()
            if task.status.is_terminal and now - task.updated_at > self._retention_seconds
        ]
        for task_id in expired:
            del self._tasks[task_id]
        if expired:
            logger.info("Removed %d expired transfer task(s)", len(expired))
        return len(expired)

    async def cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval_seconds)
            self.cleanup_expired()

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        by_status = {status.value: 0 for status in TaskStatus}
        for task in self._tasks.values():
            by_status[task.status.value] += 1
        return {
            "total": len(self._tasks),
            "active": self._active,
            "queue_length": len(self._queue),
            "max_concurrent": self._max_concurrent,
            "by_status": by_status,
        }

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    def _admit(self, task: TransferTask) -> None:
        if self._active < self._max_concurrent:
            self._start(task)
            return
        task.status = TaskStatus.QUEUED
        task.updated_at = time.monotonic()
        self._queue.append(task.id)
        self._publish_status(task)
        logger.debug(
            "Queued transfer %s (queue_length=%d)", task.id, len(self._queue)
        )

    def _start(self, task: TransferTask) -> None:
        self._active += 1
        task.status = TaskStatus.DOWNLOADING
        task.started_at = datetime.now(timezone.utc)
        task.updated_at = time.monotonic()
        self._publish_status(task)

        driver = asyncio.create_task(self._drive(task), name=f"transfer-{task.id}")
        self._drivers[task.id] = driver
        driver.add_done_callback(partial(self._on_driver_done, task.id))

    def _on_driver_done(self, task_id: str, driver: asyncio.Task[None]) -> None:
        self._active -= 1

        # A retry may already have registered a newer driver for this task.
        if self._drivers.get(task_id) is driver:
            del self._drivers[task_id]
            task = self._tasks.get(task_id)
            # A driver cancelled before its first step never runs its own handlers.
            if task is not None and task.status in (TaskStatus.DOWNLOADING, TaskStatus.RETRYING):
                self._finish(task, TaskStatus.CANCELLED, error="Transfer cancelled")

        if not driver.cancelled() and driver.exception() is not None:
            logger.error(
                "Transfer driver %s crashed: %s",
                task_id,
                driver.exception(),
                extra={"task_id": task_id},
            )

        self._admit_next()

    def _admit_next(self) -> None:
        while self._queue and self._active < self._max_concurrent and not self._closed:
            task = self._tasks.get(self._queue.popleft())
            if task is None or task.status is not TaskStatus.QUEUED:
                continue
            self._start(task)

    # ------------------------------------------------------------------
    # Driver
    # ------------------------------------------------------------------

    async def _drive(self, task: TransferTask) -> None:
        try:
            response = await self._retry.run(
                f"transfer-{task.id}",
                partial(self._attempt, task),
                on_retry=partial(self._on_retry, task),
            )
        except asyncio.CancelledError:
            if not task.status.is_terminal:
                self._finish(task, TaskStatus.CANCELLED, error="Transfer cancelled")
            raise
        except OperationFailedError as exc:
            if task.status is TaskStatus.CANCELLED:
                return
            task.last_error = exc.message
            task.error_kind = exc.kind.value
            self._finish(task, TaskStatus.FAILED, error=exc.message, error_kind=exc.kind.value)
            logger.error(
                "Transfer %s failed after %d attempt(s): %s",
                task.id,
                exc.attempts,
                exc.message,
                extra={
                    "task_id": task.id,
                    "target_url": task.target,
                    "error_kind": exc.kind.value,
                    "attempt": exc.attempts,
                },
            )
            return

        if task.status is TaskStatus.CANCELLED:
            logger.debug("Discarding result for cancelled transfer %s", task.id)
            return
        self._complete(task, response)

    async def _attempt(self, task: TransferTask) -> ForwardedResponse:
        if task.status is TaskStatus.RETRYING:
            task.status = TaskStatus.DOWNLOADING
            task.updated_at = time.monotonic()
            self._publish_status(task)
        return await self._executor.execute(task)

    def _on_retry(
        self, task: TransferTask, attempt: int, classification: ErrorClassification, delay: float
    ) -> None:
        task.status = TaskStatus.RETRYING
        task.retry_count = attempt
        task.error_kind = classification.kind.value
        task.updated_at = time.monotonic()
        self._publish_status(task, error_kind=classification.kind.value)
        logger.warning(
            "Transfer %s retrying in %.2fs (retry %d, kind=%s)",
            task.id,
            delay,
            attempt,
            classification.kind.value,
            extra={"task_id": task.id, "attempt": attempt, "error_kind": classification.kind.value},
        )

    def _complete(self, task: TransferTask, response: ForwardedResponse) -> None:
        content = response.content
        if task.kind is TransferKind.CONTENT_FETCH and response.needs_sanitization:
            content = sanitize_content(response.text).content.encode("utf-8")

        task.result = content
        task.content_type = response.content_type or None
        task.endpoint = response.endpoint
        task.progress = 100
        task.last_error = None
        task.error_kind = None
        self._finish(task, TaskStatus.COMPLETED)
        logger.info(
            "Transfer %s completed via %s (%d bytes)",
            task.id,
            response.endpoint,
            len(content),
            extra={
                "task_id": task.id,
                "endpoint": response.endpoint,
                "duration_ms": round(response.duration_ms, 1),
            },
        )

    # ------------------------------------------------------------------
    # State transitions and events
    # ------------------------------------------------------------------

    def _finish(
        self,
        task: TransferTask,
        status: TaskStatus,
        *,
        error: str | None = None,
        error_kind: str | None = None,
    ) -> None:
        task.status = status
        task.completed_at = datetime.now(timezone.utc)
        task.updated_at = time.monotonic()
        if status is TaskStatus.COMPLETED:
            event_type = EventType.COMPLETED
        elif status is TaskStatus.FAILED:
            event_type = EventType.FAILED
        else:
            event_type = EventType.STATUS
        self._events.publish(
            TransferEvent(
                type=event_type,
                task_id=task.id,
                status=status.value,
                progress=task.progress,
                error=error,
                error_kind=error_kind,
            )
        )

    def _publish_status(self, task: TransferTask, *, error_kind: str | None = None) -> None:
        self._events.publish(
            TransferEvent(
                type=EventType.STATUS,
                task_id=task.id,
                status=task.status.value,
                progress=task.progress,
                error_kind=error_kind,
            )
        )
