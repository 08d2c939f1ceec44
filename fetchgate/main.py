"""FastAPI application entry point with lifespan management.

Startup: load settings, configure logging, build the gateway context (endpoint
registry, dispatcher, retry coordinator, transfer scheduler), start its
background loops and mount the routers.
Shutdown: cancel background loops, abort running transfers, close the HTTP
client.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from fetchgate import __version__
from fetchgate.config.settings import GatewaySettings
from fetchgate.context import GatewayContext, build_context
from fetchgate.logging_config import configure_logging
from fetchgate.middleware.error_handler import register_error_handlers
from fetchgate.middleware.request_id import RequestIdMiddleware
from fetchgate.routers.fetch import create_fetch_router
from fetchgate.routers.health import create_health_router
from fetchgate.routers.transfers import create_transfers_router

logger = logging.getLogger(__name__)


def create_app(
    settings: GatewaySettings | None = None,
    *,
    context: GatewayContext | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    A prebuilt ``context`` is used as-is (tests inject one wired to a mock
    transport); otherwise one is built from ``settings`` at startup.
    """
    settings = settings or (context.settings if context else GatewaySettings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: startup and shutdown logic."""
        if context is None:
            configure_logging(settings.log_level)
        logger.info("Starting fetch gateway on port %d", settings.port)

        ctx = context or build_context(settings)
        ctx.start()

        app.include_router(create_health_router(context=ctx))
        app.include_router(create_transfers_router(context=ctx))
        app.include_router(create_fetch_router(context=ctx))
        app.state.context = ctx

        logger.info("Fetch gateway started with %d endpoint(s)", len(ctx.registry))

        yield

        # --- Shutdown ---
        logger.info("Shutting down fetch gateway…")
        try:
            await asyncio.wait_for(ctx.close(), timeout=settings.graceful_shutdown_seconds)
        except asyncio.TimeoutError:
            logger.error(
                "Gateway shutdown did not finish within %ds", settings.graceful_shutdown_seconds
            )
        logger.info("Fetch gateway shut down")

    app = FastAPI(
        title="Fetchgate",
        version=__version__,
        lifespan=lifespan,
    )

    # Register error handlers
    register_error_handlers(app)

    app.add_middleware(RequestIdMiddleware)

    return app


app = create_app()
