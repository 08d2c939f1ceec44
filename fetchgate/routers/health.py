"""Health, readiness, and metrics endpoints.

- GET /health — service status + endpoint pool stats
- GET /readiness — 200 only when at least one endpoint is selectable
- GET /metrics — operational metrics
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, Response

from fetchgate.models.responses import ApiResponse

if TYPE_CHECKING:
    from fetchgate.context import GatewayContext


def create_health_router(*, context: GatewayContext) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        """Service health check with endpoint pool statistics."""
        return ApiResponse(
            success=True,
            data={
                "status": "healthy",
                "network_status": "online" if context.connectivity.is_online else "offline",
                "endpoint_pool": context.registry.get_stats(),
            },
        ).model_dump()

    @health_router.get("/readiness")
    async def readiness(response: Response) -> dict:
        """Readiness probe: 200 iff some endpoint has a closed circuit and budget left."""
        pool_stats = context.registry.get_stats()
        is_ready = context.registry.select_endpoint() is not None

        if not is_ready:
            response.status_code = 503

        return ApiResponse(
            success=is_ready,
            data={
                "ready": is_ready,
                "endpoints_available": pool_stats["available"],
                "endpoints_total": pool_stats["total"],
            },
            error=None if is_ready else "Service not ready",
        ).model_dump()

    @health_router.get("/metrics")
    async def metrics() -> dict:
        """Operational metrics endpoint."""
        return ApiResponse(
            success=True,
            data={
                "endpoint_pool": context.registry.get_stats(),
                "retry": context.retry.get_stats(),
                "transfer_retry": context.scheduler.retry_coordinator.get_stats(),
                "transfers": context.scheduler.get_stats(),
                "events": context.events.get_stats(),
            },
        ).model_dump()

    return health_router
