"""Unit tests for gateway settings."""

import pytest
from pydantic import ValidationError

from fetchgate.config.settings import GatewaySettings


class TestDefaults:
    def test_defaults(self):
        settings = GatewaySettings()
        assert settings.port == 8002
        assert settings.max_concurrent == 3
        assert settings.max_retries == 3
        assert settings.retry_base_delay_seconds == 1.0
        assert settings.circuit_failure_threshold == 3
        assert settings.circuit_cooldown_seconds == 300
        assert settings.rate_window_seconds == 60
        assert settings.health_check_interval_seconds == 300
        assert settings.task_retention_seconds == 86400
        assert settings.max_response_bytes == 50 * 1024 * 1024


class TestEnvironment:
    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("FETCHGATE_MAX_CONCURRENT", "5")
        monkeypatch.setenv("FETCHGATE_CIRCUIT_COOLDOWN_SECONDS", "60")
        settings = GatewaySettings()
        assert settings.max_concurrent == 5
        assert settings.circuit_cooldown_seconds == 60

    def test_bounds_validated(self):
        with pytest.raises(ValidationError):
            GatewaySettings(max_concurrent=0)
        with pytest.raises(ValidationError):
            GatewaySettings(retry_base_delay_seconds=-1)
