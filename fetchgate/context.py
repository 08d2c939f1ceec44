"""Explicit gateway context.

Everything with shared mutable state (endpoint registry, circuit breaker,
rate limiter, retry counters, task queue) is built once by ``build_context``
and handed to whoever needs it. There are no module-level singletons, so
tests build a fresh context per case.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

import httpx

from fetchgate.config.endpoints import EndpointConfig, load_endpoints
from fetchgate.config.settings import GatewaySettings
from fetchgate.proxy.dispatcher import Dispatcher
from fetchgate.proxy.registry import EndpointRegistry
from fetchgate.resilience.circuit_breaker import EndpointCircuitBreaker
from fetchgate.resilience.connectivity import ConnectivityMonitor
from fetchgate.resilience.rate_limiter import EndpointRateLimiter
from fetchgate.resilience.retry import RetryCoordinator
from fetchgate.services.events import EventBus
from fetchgate.services.transfer_executor import TransferExecutor
from fetchgate.services.transfer_scheduler import TransferScheduler

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    """Owns the gateway components and their background loops."""

    settings: GatewaySettings
    client: httpx.AsyncClient
    registry: EndpointRegistry
    dispatcher: Dispatcher
    retry: RetryCoordinator
    connectivity: ConnectivityMonitor
    events: EventBus
    scheduler: TransferScheduler
    owns_client: bool = True
    _background: list[asyncio.Task[None]] = field(default_factory=list)

    @property
    def started(self) -> bool:
        return bool(self._background)

    def start(self) -> None:
        """Start health probing, rate-window resets and retention cleanup."""
        if self._background:
            logger.warning("Gateway context already started, skipping")
            return
        self._background = [
            asyncio.create_task(
                self.registry.health_check_loop(self.client), name="endpoint-health-check"
            ),
            asyncio.create_task(self.registry.rate_window_loop(), name="rate-window-reset"),
            asyncio.create_task(self.scheduler.cleanup_loop(), name="transfer-cleanup"),
        ]
        logger.info("Gateway background loops started")

    async def close(self) -> None:
        """Cancel background loops and running transfers, then close the client."""
        for task in self._background:
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        self._background.clear()

        await self.scheduler.close()

        if self.owns_client:
            await self.client.aclose()
        logger.info("Gateway context closed")


def build_context(
    settings: GatewaySettings,
    *,
    endpoints: Iterable[EndpointConfig] | None = None,
    client: httpx.AsyncClient | None = None,
) -> GatewayContext:
    """Wire up a gateway from settings.

    ``endpoints`` overrides the YAML endpoint list and ``client`` overrides
    the HTTP client (the context does not close a client it did not create).
    """
    if endpoints is None:
        endpoints = load_endpoints(settings.endpoints_path)

    owns_client = client is None
    if client is None:
        client = httpx.AsyncClient(follow_redirects=True)

    registry = EndpointRegistry(
        endpoints,
        circuit_breaker=EndpointCircuitBreaker(
            failure_threshold=settings.circuit_failure_threshold,
            cooldown_seconds=settings.circuit_cooldown_seconds,
        ),
        rate_limiter=EndpointRateLimiter(window_seconds=settings.rate_window_seconds),
        health_check_interval_seconds=settings.health_check_interval_seconds,
        health_check_url=settings.health_check_url,
        health_check_timeout_seconds=settings.health_check_timeout_seconds,
    )
    dispatcher = Dispatcher(
        registry=registry,
        client=client,
        max_response_bytes=settings.max_response_bytes,
    )
    connectivity = ConnectivityMonitor()
    retry = RetryCoordinator(
        max_retries=settings.max_retries,
        base_delay_seconds=settings.retry_base_delay_seconds,
        connectivity=connectivity,
    )
    events = EventBus()
    scheduler = TransferScheduler(
        executor=TransferExecutor(dispatcher=dispatcher, events=events),
        events=events,
        max_concurrent=settings.max_concurrent,
        max_retries=settings.task_max_retries,
        retry_base_delay_seconds=settings.task_retry_base_delay_seconds,
        retention_seconds=settings.task_retention_seconds,
        cleanup_interval_seconds=settings.cleanup_interval_seconds,
        connectivity=connectivity,
    )

    return GatewayContext(
        settings=settings,
        client=client,
        registry=registry,
        dispatcher=dispatcher,
        retry=retry,
        connectivity=connectivity,
        events=events,
        scheduler=scheduler,
        owns_client=owns_client,
    )
