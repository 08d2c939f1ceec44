"""Endpoint registry with least-recently-used selection, circuit breaking and request budgets.

Endpoints are loaded from configuration. Selection filters out endpoints
whose circuit is open or whose per-window budget is spent, then picks the
one used least recently. Every attempt is recorded against the chosen
endpoint's counters, and every outcome is fed to its circuit breaker.

Two background loops keep the state fresh without real traffic: a health
probe that sends a lightweight canary request through each endpoint and
records the outcome, and a window reset that zeroes the request counters.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable

import httpx

from fetchgate.config.endpoints import EndpointConfig
from fetchgate.proxy.types import Endpoint
from fetchgate.resilience.circuit_breaker import EndpointCircuitBreaker
from fetchgate.resilience.rate_limiter import EndpointRateLimiter

logger = logging.getLogger(__name__)


class EndpointRegistry:
    """Owns the forwarding endpoints and their health and quota state."""

    def __init__(
        self,
        endpoints: Iterable[EndpointConfig],
        *,
        circuit_breaker: EndpointCircuitBreaker | None = None,
        rate_limiter: EndpointRateLimiter | None = None,
        health_check_interval_seconds: float = 300,
        health_check_url: str = "https://httpbin.org/get",
        health_check_timeout_seconds: float = 5.0,
    ) -> None:
        self._endpoints: list[Endpoint] = [Endpoint.from_config(cfg) for cfg in endpoints]
        self._circuit_breaker = circuit_breaker or EndpointCircuitBreaker()
        self._rate_limiter = rate_limiter or EndpointRateLimiter()
        self._health_check_interval_seconds = health_check_interval_seconds
        self._health_check_url = health_check_url
        self._health_check_timeout_seconds = health_check_timeout_seconds

        logger.info("Endpoint registry initialized with %d endpoints", len(self._endpoints))

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def endpoints(self) -> list[Endpoint]:
        return list(self._endpoints)

    @property
    def circuit_breaker(self) -> EndpointCircuitBreaker:
        return self._circuit_breaker

    @property
    def rate_limiter(self) -> EndpointRateLimiter:
        return self._rate_limiter

    def __len__(self) -> int:
        return len(self._endpoints)

    def get(self, name: str) -> Endpoint | None:
        for endpoint in self._endpoints:
            if endpoint.name == name:
                return endpoint
        return None

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def is_available(self, endpoint: Endpoint) -> bool:
        """Circuit closed and budget not yet spent."""
        return self._circuit_breaker.is_available(endpoint.name) and self._rate_limiter.check(
            endpoint
        )

    def check_rate_limit(self, endpoint: Endpoint) -> bool:
        return self._rate_limiter.check(endpoint)

    def select_endpoint(self) -> Endpoint | None:
        """Return the least recently used available endpoint, or None if none qualifies.

        Ties keep configuration order.
        """
        best: Endpoint | None = None
        for endpoint in self._endpoints:
            if not self.is_available(endpoint):
                continue
            if best is None or endpoint.last_used < best.last_used:
                best = endpoint
        return best

    # ------------------------------------------------------------------
    # Outcome bookkeeping
    # ------------------------------------------------------------------

    def record_attempt(self, endpoint: Endpoint) -> None:
        """Stamp last-used time and count the attempt against the budget."""
        endpoint.last_used = time.monotonic()
        self._rate_limiter.record(endpoint)

    def record_success(self, endpoint: Endpoint) -> None:
        endpoint.success_count += 1
        self._circuit_breaker.record_success(endpoint.name)

    def record_failure(self, endpoint: Endpoint) -> None:
        endpoint.failure_count += 1
        self._circuit_breaker.record_failure(endpoint.name)
        logger.warning(
            "Endpoint %s failure recorded (consecutive: %d)",
            endpoint.name,
            self._circuit_breaker.get_state(endpoint.name).consecutive_failures,
        )

    def reset_rate_limits(self) -> None:
        self._rate_limiter.reset(self._endpoints)

    # ------------------------------------------------------------------
    # Background loops
    # ------------------------------------------------------------------

    async def health_check_loop(self, client: httpx.AsyncClient) -> None:
        """Probe every endpoint each ``health_check_interval_seconds``."""
        while True:
            await asyncio.sleep(self._health_check_interval_seconds)
            await self.run_health_checks(client)

    async def rate_window_loop(self) -> None:
        """Zero all request counters at the start of every window."""
        while True:
            await asyncio.sleep(self._rate_limiter.window_seconds)
            self.reset_rate_limits()

    async def run_health_checks(self, client: httpx.AsyncClient) -> dict[str, bool]:
        """Send one canary request through each endpoint and record the outcome.

        Canary requests do not count against the request budget.
        """
        logger.info("Running endpoint health checks")
        outcomes = await asyncio.gather(
            *(self._probe(client, endpoint) for endpoint in self._endpoints)
        )
        results: dict[str, bool] = {}
        for endpoint, healthy in zip(self._endpoints, outcomes):
            if healthy:
                self.record_success(endpoint)
            else:
                self.record_failure(endpoint)
            results[endpoint.name] = healthy
        return results

    async def _probe(self, client: httpx.AsyncClient, endpoint: Endpoint) -> bool:
        try:
            response = await client.get(
                endpoint.forward_url(self._health_check_url),
                timeout=httpx.Timeout(self._health_check_timeout_seconds),
            )
        except httpx.HTTPError as exc:
            logger.debug("Health check failed for endpoint %s: %s", endpoint.name, exc)
            return False
        return response.status_code < 400

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def get_stats(self) -> dict:
        """Return endpoint pool statistics for the health endpoint."""
        per_endpoint = []
        available = 0
        for endpoint in self._endpoints:
            is_available = self.is_available(endpoint)
            available += int(is_available)
            circuit = self._circuit_breaker.get_state(endpoint.name)
            per_endpoint.append(
                {
                    "name": endpoint.name,
                    "available": is_available,
                    "circuit_open": circuit.open,
                    "consecutive_failures": circuit.consecutive_failures,
                    "success_count": endpoint.success_count,
                    "failure_count": endpoint.failure_count,
                    **self._rate_limiter.get_stats(endpoint),
                }
            )

        return {
            "total": len(self._endpoints),
            "available": available,
            "open_circuits": self._circuit_breaker.open_endpoints(),
            "window_resets_in_seconds": round(self._rate_limiter.seconds_until_reset(), 1),
            "endpoints": per_endpoint,
        }
