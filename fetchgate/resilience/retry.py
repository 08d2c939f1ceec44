"""Retry coordination with exponential backoff.

``RetryCoordinator.run`` invokes a zero-argument async unit of work and, on
failure, classifies the error. Retryable failures are re-attempted after
``base_delay * 2 ** (attempt - 1)`` seconds until the per-operation budget
of ``max_retries`` re-attempts is spent, so a unit that always fails is
invoked ``max_retries + 1`` times in total.

Attempt counters are keyed by operation id and live only while the
operation is in flight: success and terminal failure both clear them.
Terminal failures are raised as ``OperationFailedError`` carrying the
classification, chained from the underlying exception.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from fetchgate.middleware.error_handler import OfflineError, OperationFailedError
from fetchgate.models.errors import ErrorClassification
from fetchgate.resilience.classifier import classify_error, user_message
from fetchgate.resilience.connectivity import ConnectivityMonitor

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryHook = Callable[[int, ErrorClassification, float], None]


class RetryCoordinator:
    """Re-invokes failed operations with exponential backoff.

    Parameters
    ----------
    max_retries:
        Re-attempts allowed per operation after the first attempt.
    base_delay_seconds:
        Delay before the first re-attempt; doubled for each further one.
    connectivity:
        Optional network-availability signal. While offline, ``run`` fails
        immediately without consuming a retry attempt.
    """

    def __init__(
        self,
        *,
        max_retries: int = 3,
        base_delay_seconds: float = 1.0,
        connectivity: ConnectivityMonitor | None = None,
    ) -> None:
        self._max_retries = max_retries
        self._base_delay = base_delay_seconds
        self._connectivity = connectivity
        self._attempts: dict[str, int] = {}
        self._retries_total = 0

    @property
    def max_retries(self) -> int:
        return self._max_retries

    def get_attempts(self, operation_id: str) -> int:
        """Retry attempts consumed so far by an in-flight operation (0 when idle)."""
        return self._attempts.get(operation_id, 0)

    def reset(self, operation_id: str) -> None:
        self._attempts.pop(operation_id, None)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before re-attempt number ``attempt`` (1-based)."""
        return self._base_delay * (2 ** (attempt - 1))

    async def run(
        self,
        operation_id: str,
        work: Callable[[], Awaitable[T]],
        *,
        on_retry: RetryHook | None = None,
    ) -> T:
        """Run ``work`` until it succeeds or its failure is terminal.

        ``on_retry(attempt, classification, delay)`` is called before each
        backoff sleep.

        Raises
        ------
        OperationFailedError
            On a non-retryable failure, an exhausted budget, or while offline.
        """
        while True:
            self._fail_if_offline(operation_id, cause=None)

            try:
                result = await work()
            except asyncio.CancelledError:
                self.reset(operation_id)
                raise
            except Exception as exc:
                self._fail_if_offline(operation_id, cause=exc)

                classification = classify_error(exc)
                attempts = self._attempts.get(operation_id, 0)

                if not classification.retryable or attempts >= self._max_retries:
                    self.reset(operation_id)
                    logger.error(
                        "Operation %s failed (kind=%s, retryable=%s, attempts=%d): %s",
                        operation_id,
                        classification.kind.value,
                        classification.retryable,
                        attempts + 1,
                        exc,
                    )
                    raise OperationFailedError(
                        str(exc) or user_message(classification.kind),
                        classification=classification,
                        attempts=attempts + 1,
                    ) from exc

                attempts += 1
                self._attempts[operation_id] = attempts
                self._retries_total += 1
                delay = self.backoff_delay(attempts)

                logger.warning(
                    "Retrying operation %s (attempt %d/%d, kind=%s) in %.2fs",
                    operation_id,
                    attempts,
                    self._max_retries,
                    classification.kind.value,
                    delay,
                )
                if on_retry is not None:
                    on_retry(attempts, classification, delay)

                try:
                    await asyncio.sleep(delay)
                except asyncio.CancelledError:
                    self.reset(operation_id)
                    raise
            else:
                self.reset(operation_id)
                return result

    def _fail_if_offline(self, operation_id: str, cause: BaseException | None) -> None:
        if self._connectivity is None or self._connectivity.is_online:
            return
        self.reset(operation_id)
        offline = OfflineError()
        logger.warning("Operation %s aborted: network is offline", operation_id)
        raise OperationFailedError(
            offline.message,
            classification=classify_error(offline),
            attempts=0,
        ) from (cause or offline)

    def get_stats(self) -> dict:
        """Retry statistics for the metrics endpoint."""
        return {
            "in_flight_retries": sum(self._attempts.values()),
            "active_operations": len(self._attempts),
            "retries_total": self._retries_total,
            "network_status": (
                "online"
                if self._connectivity is None or self._connectivity.is_online
                else "offline"
            ),
        }
