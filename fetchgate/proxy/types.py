"""Forwarding endpoint data model for the endpoint registry."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

from fetchgate.config.endpoints import EndpointConfig, EndpointStyle


@dataclass
class Endpoint:
    """A forwarding endpoint with its live usage counters."""

    name: str
    url: str  # base address template
    style: EndpointStyle = EndpointStyle.QUERY
    timeout_seconds: float = 10.0
    rate_limit_per_minute: int = 60
    request_count: int = 0  # attempts issued in the current window
    last_used: float = 0.0  # time.monotonic() of the last attempt, 0 = never
    success_count: int = 0
    failure_count: int = 0

    @classmethod
    def from_config(cls, config: EndpointConfig) -> Endpoint:
        return cls(
            name=config.name,
            url=config.url,
            style=config.style,
            timeout_seconds=config.timeout_seconds,
            rate_limit_per_minute=config.rate_limit_per_minute,
        )

    def forward_url(self, target_url: str) -> str:
        """Build the address that forwards a request for ``target_url`` through this endpoint."""
        if self.style == EndpointStyle.PATH:
            return f"{self.url}{target_url}"
        return f"{self.url}{quote(target_url, safe='')}"
