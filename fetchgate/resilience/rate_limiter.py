"""Per-endpoint fixed-window request budget.

Each endpoint carries a request counter that is incremented on every
dispatched attempt, successful or not, and compared against the endpoint's
``rate_limit_per_minute``. All counters are zeroed together when the window
rolls over; the rollover is driven by the owner calling ``reset()`` on a
fixed interval.

Key behaviors:
- check() is a pure read and never mutates a counter
- record() counts the attempt against the endpoint's budget
- Counters of one endpoint never affect another
"""

from __future__ import annotations

import logging
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from fetchgate.proxy.types import Endpoint

logger = logging.getLogger(__name__)


class EndpointRateLimiter:
    """Fixed-window request counter over a set of endpoints.

    Args:
        window_seconds: Length of the budget window in seconds.
    """

    def __init__(self, window_seconds: float = 60) -> None:
        self._window_seconds = window_seconds
        self._window_started = time.monotonic()

    @property
    def window_seconds(self) -> float:
        return self._window_seconds

    def check(self, endpoint: Endpoint) -> bool:
        """Return True while the endpoint is under its per-window budget."""
        return endpoint.request_count < endpoint.rate_limit_per_minute

    def record(self, endpoint: Endpoint) -> None:
        """Count one dispatched attempt against the endpoint's budget."""
        endpoint.request_count += 1
        if endpoint.request_count == endpoint.rate_limit_per_minute:
            logger.info(
                "Endpoint %s reached its budget of %d requests for this window",
                endpoint.name,
                endpoint.rate_limit_per_minute,
            )

    def reset(self, endpoints: Iterable[Endpoint]) -> None:
        """Start a new window: zero every endpoint's counter."""
        for endpoint in endpoints:
            endpoint.request_count = 0
        self._window_started = time.monotonic()
        logger.debug("Rate limit window reset")

    def seconds_until_reset(self) -> float:
        elapsed = time.monotonic() - self._window_started
        return max(0.0, self._window_seconds - elapsed)

    def get_stats(self, endpoint: Endpoint) -> dict:
        """Current budget usage for one endpoint."""
        return {
            "requests": endpoint.request_count,
            "limit": endpoint.rate_limit_per_minute,
            "remaining": max(0, endpoint.rate_limit_per_minute - endpoint.request_count),
            "is_limited": not self.check(endpoint),
        }
