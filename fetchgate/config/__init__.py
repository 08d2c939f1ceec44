"""Configuration module: settings and endpoint list."""

from fetchgate.config.endpoints import (
    DEFAULT_ENDPOINTS,
    EndpointConfig,
    EndpointStyle,
    load_endpoints,
)
from fetchgate.config.settings import GatewaySettings

__all__ = [
    "DEFAULT_ENDPOINTS",
    "EndpointConfig",
    "EndpointStyle",
    "GatewaySettings",
    "load_endpoints",
]
