"""HTTP routers for the fetch gateway."""

from fetchgate.routers.fetch import create_fetch_router
from fetchgate.routers.health import create_health_router
from fetchgate.routers.transfers import create_transfers_router

__all__ = ["create_fetch_router", "create_health_router", "create_transfers_router"]
