"""Unit tests for target URL validation."""

import pytest

from fetchgate.middleware.error_handler import UnsafeTargetError
from fetchgate.validators.url_validator import (
    MAX_URL_LENGTH,
    ensure_secure_url,
    is_secure,
    unsafe_reason,
)


class TestUnsafeReason:
    def test_https_url_passes(self):
        assert unsafe_reason("https://example.com/a?b=c") is None

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "javascript:alert(1)",
            "data:text/html,<script>alert(1)</script>",
            "vbscript:msgbox",
            "file:///etc/passwd",
            "ftp://example.com/",
            "https://",
            "example.com/no-scheme",
        ],
    )
    def test_rejected(self, url):
        assert unsafe_reason(url) is not None

    def test_over_long_url_rejected(self):
        url = "https://example.com/" + "a" * MAX_URL_LENGTH
        assert "exceeds" in unsafe_reason(url)


class TestEnsureSecureUrl:
    def test_https_unchanged(self):
        assert ensure_secure_url("https://example.com/x") == "https://example.com/x"

    def test_http_upgraded_on_same_host(self):
        assert ensure_secure_url("http://example.com/x?y=1") == "https://example.com/x?y=1"

    def test_default_port_dropped_on_upgrade(self):
        assert ensure_secure_url("http://example.com:80/x") == "https://example.com/x"

    def test_localhost_http_accepted(self):
        assert ensure_secure_url("http://localhost:8000/x") == "http://localhost:8000/x"
        assert is_secure("http://127.0.0.1/") is True

    def test_unsafe_raises_with_url_detail(self):
        with pytest.raises(UnsafeTargetError) as exc_info:
            ensure_secure_url("javascript:alert(1)")
        assert exc_info.value.details["url"] == "javascript:alert(1)"
        assert exc_info.value.status_code == 400
