"""Unit tests for the transfer scheduler."""

import asyncio
import time

import httpx
import pytest

from conftest import GatedExecutor, wait_until
from fetchgate.middleware.error_handler import (
    InvalidTaskStateError,
    SchedulerClosedError,
    TaskNotFoundError,
)
from fetchgate.models.events import EventType, TransferEvent
from fetchgate.models.requests import TaskStatus, TransferKind
from fetchgate.services.events import EventBus
from fetchgate.services.transfer_scheduler import TransferScheduler


def _scheduler(executor: GatedExecutor, **kwargs) -> TransferScheduler:
    options = {
        "events": EventBus(),
        "max_concurrent": 2,
        "max_retries": 3,
        "retry_base_delay_seconds": 0,
    }
    options.update(kwargs)
    return TransferScheduler(executor=executor, **options)


def _statuses(scheduler: TransferScheduler, task_ids: list[str]) -> list[TaskStatus]:
    return [scheduler.get_task(task_id).status for task_id in task_ids]


class TestAdmission:
    @pytest.mark.asyncio
    async def test_submit_round_trip(self):
        scheduler = _scheduler(GatedExecutor())
        task_id = scheduler.submit("https://example.com/a", "a.bin")

        task = scheduler.get_task(task_id)
        assert task.id == task_id
        assert task.target == "https://example.com/a"
        assert task.destination_name == "a.bin"
        assert task.kind is TransferKind.BYTE_TRANSFER
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_slots_fill_then_queue(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, max_concurrent=2)
        ids = [scheduler.submit(f"https://example.com/{n}", f"{n}.bin") for n in range(4)]

        assert _statuses(scheduler, ids) == [
            TaskStatus.DOWNLOADING,
            TaskStatus.DOWNLOADING,
            TaskStatus.QUEUED,
            TaskStatus.QUEUED,
        ]
        assert scheduler.active_count == 2
        assert scheduler.queue_length == 2

        executor.release("https://example.com/0")
        await wait_until(lambda: scheduler.get_task(ids[0]).status is TaskStatus.COMPLETED)
        await wait_until(lambda: scheduler.get_task(ids[2]).status is TaskStatus.DOWNLOADING)

        assert _statuses(scheduler, ids)[1:] == [
            TaskStatus.DOWNLOADING,
            TaskStatus.DOWNLOADING,
            TaskStatus.QUEUED,
        ]
        assert scheduler.active_count == 2
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_queued_tasks_start_in_fifo_order(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, max_concurrent=1)
        targets = [f"https://example.com/{n}" for n in range(4)]
        executor.release(*targets)
        for target in targets:
            scheduler.submit(target, "out.bin")

        await scheduler.join()
        assert executor.calls == targets

    @pytest.mark.asyncio
    async def test_active_count_never_exceeds_limit(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, max_concurrent=2)
        observed = []
        scheduler._events.subscribe(lambda event: observed.append(scheduler.active_count))

        targets = [f"https://example.com/{n}" for n in range(6)]
        executor.release(*targets)
        ids = [scheduler.submit(target, "out.bin") for target in targets]
        await scheduler.join()

        assert max(observed) <= 2
        assert all(status is TaskStatus.COMPLETED for status in _statuses(scheduler, ids))
        assert scheduler.active_count == 0

    @pytest.mark.asyncio
    async def test_completed_task_keeps_result(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor)
        executor.release("https://example.com/x")
        task_id = scheduler.submit("https://example.com/x", "x.txt")
        await scheduler.join()

        task = scheduler.get_task(task_id)
        assert task.result == b"payload"
        assert task.progress == 100
        assert task.endpoint == "a"
        assert task.content_type == "text/plain"
        assert task.completed_at is not None


class TestRetries:
    @pytest.mark.asyncio
    async def test_recovers_after_two_network_failures(self):
        executor = GatedExecutor()
        target = "https://example.com/flaky"
        executor.failures[target] = [httpx.ConnectError("refused"), httpx.ConnectError("refused")]
        executor.release(target)
        scheduler = _scheduler(executor)
        events: list[TransferEvent] = []
        scheduler._events.subscribe(events.append)

        task_id = scheduler.submit(target, "flaky.bin")
        await scheduler.join()

        task = scheduler.get_task(task_id)
        assert task.status is TaskStatus.COMPLETED
        assert task.retry_count == 2
        assert len(executor.calls) == 3
        assert [e.status for e in events if e.status == "retrying"] == ["retrying", "retrying"]

    @pytest.mark.asyncio
    async def test_exhausted_budget_marks_failed(self):
        executor = GatedExecutor()
        target = "https://example.com/down"
        executor.failures[target] = [httpx.ConnectError("refused") for _ in range(10)]
        scheduler = _scheduler(executor, max_retries=2)
        events: list[TransferEvent] = []
        scheduler._events.subscribe(events.append)

        task_id = scheduler.submit(target, "down.bin")
        await scheduler.join()

        task = scheduler.get_task(task_id)
        assert task.status is TaskStatus.FAILED
        assert task.retry_count == 2
        assert task.error_kind == "network"
        assert task.last_error == "refused"
        assert len(executor.calls) == 3
        assert events[-1].type is EventType.FAILED
        assert scheduler.active_count == 0

    @pytest.mark.asyncio
    async def test_non_retryable_failure_is_not_retried(self):
        executor = GatedExecutor()
        target = "https://example.com/missing"
        request = httpx.Request("GET", target)
        executor.failures[target] = [
            httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))
        ]
        scheduler = _scheduler(executor)

        task_id = scheduler.submit(target, "missing.bin")
        await scheduler.join()

        assert scheduler.get_task(task_id).error_kind == "notfound"
        assert len(executor.calls) == 1


class TestCancel:
    @pytest.mark.asyncio
    async def test_cancel_queued_task(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, max_concurrent=1)
        first = scheduler.submit("https://example.com/1", "1.bin")
        second = scheduler.submit("https://example.com/2", "2.bin")

        task = scheduler.cancel(second)

        assert task.status is TaskStatus.CANCELLED
        assert scheduler.active_count == 1
        assert scheduler.queue_length == 0

        executor.release("https://example.com/1", "https://example.com/2")
        await scheduler.join()
        assert scheduler.get_task(first).status is TaskStatus.COMPLETED
        assert scheduler.get_task(second).status is TaskStatus.CANCELLED
        assert "https://example.com/2" not in executor.calls

    @pytest.mark.asyncio
    async def test_cancel_running_task_releases_slot(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, max_concurrent=1)
        running = scheduler.submit("https://example.com/slow", "slow.bin")
        queued = scheduler.submit("https://example.com/next", "next.bin")
        executor.release("https://example.com/next")
        await wait_until(lambda: executor.calls == ["https://example.com/slow"])

        scheduler.cancel(running)
        assert scheduler.get_task(running).status is TaskStatus.CANCELLED

        await scheduler.join()
        assert scheduler.get_task(running).result is None
        assert scheduler.get_task(queued).status is TaskStatus.COMPLETED
        assert scheduler.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_before_driver_runs(self):
        scheduler = _scheduler(GatedExecutor())
        task_id = scheduler.submit("https://example.com/x", "x.bin")
        scheduler.cancel(task_id)
        await scheduler.join()
        assert scheduler.get_task(task_id).status is TaskStatus.CANCELLED
        assert scheduler.active_count == 0

    @pytest.mark.asyncio
    async def test_cancel_terminal_task_rejected(self):
        executor = GatedExecutor()
        executor.release("https://example.com/x")
        scheduler = _scheduler(executor)
        task_id = scheduler.submit("https://example.com/x", "x.bin")
        await scheduler.join()

        with pytest.raises(InvalidTaskStateError):
            scheduler.cancel(task_id)

    @pytest.mark.asyncio
    async def test_unknown_task(self):
        scheduler = _scheduler(GatedExecutor())
        with pytest.raises(TaskNotFoundError):
            scheduler.cancel("missing")
        assert scheduler.get_task("missing") is None


class TestRetry:
    @pytest.mark.asyncio
    async def test_retry_failed_task(self):
        executor = GatedExecutor()
        target = "https://example.com/x"
        executor.failures[target] = [httpx.ConnectError("refused") for _ in range(2)]
        scheduler = _scheduler(executor, max_retries=1)
        task_id = scheduler.submit(target, "x.bin")
        await scheduler.join()
        assert scheduler.get_task(task_id).status is TaskStatus.FAILED

        executor.release(target)
        task = scheduler.retry(task_id)
        assert task.retry_count == 0
        assert task.last_error is None
        await scheduler.join()

        assert task.status is TaskStatus.COMPLETED
        assert task.id == task_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_concurrent", [1, 2])
    async def test_retry_from_failed_listener_runs_again(self, max_concurrent):
        executor = GatedExecutor()
        target = "https://example.com/missing"
        request = httpx.Request("GET", target)
        executor.failures[target] = [
            httpx.HTTPStatusError("404", request=request, response=httpx.Response(404, request=request))
        ]
        executor.release(target)
        scheduler = _scheduler(executor, max_concurrent=max_concurrent, max_retries=0)
        failed = asyncio.Event()
        statuses: list[str] = []

        def on_event(event: TransferEvent) -> None:
            statuses.append(event.status)
            if event.type is EventType.FAILED:
                failed.set()

        scheduler._events.subscribe(on_event)
        task_id = scheduler.submit(target, "missing.bin")

        # Runs before the failed driver's done callback.
        await failed.wait()
        scheduler.retry(task_id)
        await scheduler.join()

        task = scheduler.get_task(task_id)
        assert task.status is TaskStatus.COMPLETED
        assert len(executor.calls) == 2
        assert "cancelled" not in statuses
        assert scheduler.active_count == 0
        assert scheduler.get_stats()["queue_length"] == 0

    @pytest.mark.asyncio
    async def test_retry_only_from_failed(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor)
        task_id = scheduler.submit("https://example.com/x", "x.bin")
        with pytest.raises(InvalidTaskStateError):
            scheduler.retry(task_id)

        executor.release("https://example.com/x")
        await scheduler.join()
        with pytest.raises(InvalidTaskStateError):
            scheduler.retry(task_id)


class TestEventsAndRetention:
    @pytest.mark.asyncio
    async def test_late_subscriber_only_sees_future_events(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor)
        executor.release("https://example.com/1", "https://example.com/2")
        first = scheduler.submit("https://example.com/1", "1.bin")
        await scheduler.join()

        events: list[TransferEvent] = []
        scheduler._events.subscribe(events.append)
        second = scheduler.submit("https://example.com/2", "2.bin")
        await scheduler.join()

        assert events
        assert {e.task_id for e in events} == {second}
        assert first != second
        assert events[-1].type is EventType.COMPLETED

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired_terminal_tasks(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, retention_seconds=100)
        executor.release("https://example.com/done")
        done = scheduler.submit("https://example.com/done", "done.bin")
        await scheduler.join()
        running = scheduler.submit("https://example.com/running", "running.bin")

        assert scheduler.cleanup_expired() == 0
        assert scheduler.cleanup_expired(now=time.monotonic() + 101) == 1
        assert scheduler.get_task(done) is None
        assert scheduler.get_task(running) is not None
        await scheduler.close()

    @pytest.mark.asyncio
    async def test_list_and_stats(self):
        executor = GatedExecutor()
        scheduler = _scheduler(executor, max_concurrent=1)
        ids = [scheduler.submit(f"https://example.com/{n}", "out.bin") for n in range(3)]

        assert [t.id for t in scheduler.list_tasks()] == ids
        assert [t.id for t in scheduler.list_tasks(TaskStatus.QUEUED)] == ids[1:]
        stats = scheduler.get_stats()
        assert stats["total"] == 3
        assert stats["active"] == 1
        assert stats["queue_length"] == 2
        assert stats["by_status"]["queued"] == 2
        await scheduler.close()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_cancels_running_and_queued(self):
        scheduler = _scheduler(GatedExecutor(), max_concurrent=1)
        running = scheduler.submit("https://example.com/1", "1.bin")
        queued = scheduler.submit("https://example.com/2", "2.bin")
        await wait_until(lambda: scheduler.active_count == 1)

        await scheduler.close()

        assert _statuses(scheduler, [running, queued]) == [
            TaskStatus.CANCELLED,
            TaskStatus.CANCELLED,
        ]
        assert scheduler.active_count == 0
        with pytest.raises(SchedulerClosedError):
            scheduler.submit("https://example.com/3", "3.bin")
