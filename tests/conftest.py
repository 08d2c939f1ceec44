"""Shared test fixtures and helpers for the fetch gateway test suite."""

from __future__ import annotations

import asyncio
from collections.abc import Callable

import httpx
import pytest

from fetchgate.config.endpoints import EndpointConfig, EndpointStyle
from fetchgate.config.settings import GatewaySettings
from fetchgate.models.requests import TransferTask
from fetchgate.proxy.dispatcher import ForwardedResponse
from fetchgate.proxy.registry import EndpointRegistry
from fetchgate.resilience.circuit_breaker import EndpointCircuitBreaker
from fetchgate.resilience.rate_limiter import EndpointRateLimiter


# ---------------------------------------------------------------------------
# Settings fixture
# ---------------------------------------------------------------------------

@pytest.fixture
def settings() -> GatewaySettings:
    """Test settings with zero retry delays."""
    return GatewaySettings(
        max_concurrent=2,
        retry_base_delay_seconds=0,
        task_retry_base_delay_seconds=0,
    )


# ---------------------------------------------------------------------------
# Endpoint fixtures
# ---------------------------------------------------------------------------

def make_endpoint_configs(rate_limit: int = 100) -> list[EndpointConfig]:
    """Three endpoints named after their hosts: a.example, b.example, c.example."""
    return [
        EndpointConfig(
            name="a",
            url="https://a.example/get?url=",
            style=EndpointStyle.QUERY,
            timeout_seconds=5.0,
            rate_limit_per_minute=rate_limit,
        ),
        EndpointConfig(
            name="b",
            url="https://b.example/",
            style=EndpointStyle.PATH,
            timeout_seconds=5.0,
            rate_limit_per_minute=rate_limit,
        ),
        EndpointConfig(
            name="c",
            url="https://c.example/?",
            style=EndpointStyle.QUERY,
            timeout_seconds=5.0,
            rate_limit_per_minute=rate_limit,
        ),
    ]


@pytest.fixture
def endpoint_configs() -> list[EndpointConfig]:
    return make_endpoint_configs()


@pytest.fixture
def registry(endpoint_configs: list[EndpointConfig]) -> EndpointRegistry:
    return EndpointRegistry(
        endpoint_configs,
        circuit_breaker=EndpointCircuitBreaker(failure_threshold=3, cooldown_seconds=300),
        rate_limiter=EndpointRateLimiter(window_seconds=60),
    )


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by ``handler``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def endpoint_of(request: httpx.Request) -> str:
    """Endpoint name a forwarded request went through (first label of the host)."""
    return request.url.host.split(".")[0]


# ---------------------------------------------------------------------------
# Scheduler helpers
# ---------------------------------------------------------------------------

class GatedExecutor:
    """Executor stub: each attempt raises the next queued error for its target,
    otherwise blocks until the target's gate is opened."""

    def __init__(self) -> None:
        self.gates: dict[str, asyncio.Event] = {}
        self.failures: dict[str, list[BaseException]] = {}
        self.calls: list[str] = []

    def gate(self, target: str) -> asyncio.Event:
        return self.gates.setdefault(target, asyncio.Event())

    def release(self, *targets: str) -> None:
        for target in targets:
            self.gate(target).set()

    async def execute(self, task: TransferTask) -> ForwardedResponse:
        self.calls.append(task.target)
        errors = self.failures.get(task.target)
        if errors:
            raise errors.pop(0)
        await self.gate(task.target).wait()
        return ForwardedResponse(
            target_url=task.target,
            endpoint="a",
            status_code=200,
            headers={"content-type": "text/plain"},
            content=b"payload",
            duration_ms=1.0,
        )


async def wait_until(predicate: Callable[[], bool], attempts: int = 200) -> None:
    """Yield to the event loop until ``predicate`` holds."""
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition not reached")
