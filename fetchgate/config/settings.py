"""Pydantic Settings for the fetch gateway.

All environment variables use the FETCHGATE_ prefix.
Example: FETCHGATE_MAX_CONCURRENT=5, FETCHGATE_CIRCUIT_COOLDOWN_SECONDS=60
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class GatewaySettings(BaseSettings):
    """Gateway configuration validated from environment variables."""

    # Service
    port: int = 8002
    log_level: str = "INFO"
    graceful_shutdown_seconds: int = Field(default=30, ge=0)

    # Endpoints
    endpoints_path: str = "fetchgate/config/endpoints.yaml"

    # Transfer scheduler
    max_concurrent: int = Field(default=3, ge=1)
    task_max_retries: int = Field(default=3, ge=0)
    task_retry_base_delay_seconds: float = Field(default=2.0, ge=0)
    task_retention_seconds: int = Field(default=86400, ge=0)  # 24 hours
    cleanup_interval_seconds: int = Field(default=60, ge=1)

    # Retry coordinator
    max_retries: int = Field(default=3, ge=0)
    retry_base_delay_seconds: float = Field(default=1.0, ge=0)

    # Circuit breaker
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_cooldown_seconds: int = Field(default=300, ge=1)

    # Rate limiting
    rate_window_seconds: int = Field(default=60, ge=1)

    # Health probe
    health_check_interval_seconds: int = Field(default=300, ge=1)
    health_check_url: str = "https://httpbin.org/get"
    health_check_timeout_seconds: float = Field(default=5.0, gt=0)

    # Response validation
    max_response_bytes: int = Field(default=50 * 1024 * 1024, ge=1)

    model_config = {"env_prefix": "FETCHGATE_"}
