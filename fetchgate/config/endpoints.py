"""Forwarding endpoint models and YAML loader.

Provides a typed Pydantic model for a single forwarding endpoint and a
loader that parses the YAML endpoint list into those models, falling back
to the built-in endpoint set when the file is missing or unusable.
"""

from __future__ import annotations

import logging
from enum import Enum
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)


class EndpointStyle(str, Enum):
    """How the target URL is embedded in the forwarded address."""

    QUERY = "query"  # percent-encoded, appended to a query-string template
    PATH = "path"  # appended verbatim as a path suffix


class EndpointConfig(BaseModel):
    """Configuration for a single forwarding endpoint."""

    name: str = Field(min_length=1)
    url: str = Field(min_length=1)
    style: EndpointStyle = EndpointStyle.QUERY
    timeout_seconds: float = Field(default=10.0, gt=0)
    rate_limit_per_minute: int = Field(default=60, ge=1)


DEFAULT_ENDPOINTS: tuple[EndpointConfig, ...] = (
    EndpointConfig(
        name="AllOrigins",
        url="https://api.allorigins.win/get?url=",
        style=EndpointStyle.QUERY,
        timeout_seconds=10.0,
        rate_limit_per_minute=100,
    ),
    EndpointConfig(
        name="CORS.SH",
        url="https://cors.sh/",
        style=EndpointStyle.PATH,
        timeout_seconds=8.0,
        rate_limit_per_minute=50,
    ),
    EndpointConfig(
        name="CORSProxy.io",
        url="https://corsproxy.io/?",
        style=EndpointStyle.QUERY,
        timeout_seconds=12.0,
        rate_limit_per_minute=80,
    ),
)


def load_endpoints(yaml_path: str) -> list[EndpointConfig]:
    """Parse an endpoints YAML file into typed EndpointConfig objects.

    Args:
        yaml_path: Path to the YAML configuration file.

    Returns:
        The configured endpoints in file order. If the file is not found,
        cannot be parsed, or yields no valid entries, returns the built-in
        default endpoints.
    """
    path = Path(yaml_path)

    if not path.exists():
        logger.warning("Endpoints file not found at %s, using built-in defaults", yaml_path)
        return list(DEFAULT_ENDPOINTS)

    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        logger.error("Failed to parse endpoints YAML at %s: %s", yaml_path, exc)
        return list(DEFAULT_ENDPOINTS)

    if not isinstance(raw, dict) or not isinstance(raw.get("endpoints"), list):
        logger.warning("Endpoints YAML missing 'endpoints' list, using built-in defaults")
        return list(DEFAULT_ENDPOINTS)

    endpoints: list[EndpointConfig] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw["endpoints"]):
        try:
            config = EndpointConfig.model_validate(entry)
        except Exception as exc:
            logger.error("Invalid endpoint entry #%d: %s, skipping", index, exc)
            continue
        if config.name in seen:
            logger.warning("Duplicate endpoint name '%s', keeping the first", config.name)
            continue
        seen.add(config.name)
        endpoints.append(config)

    if not endpoints:
        logger.warning("No valid endpoints in %s, using built-in defaults", yaml_path)
        return list(DEFAULT_ENDPOINTS)

    return endpoints
