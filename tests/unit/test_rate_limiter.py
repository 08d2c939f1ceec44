"""Unit tests for the per-endpoint fixed-window rate limiter."""

from fetchgate.proxy.types import Endpoint
from fetchgate.resilience.rate_limiter import EndpointRateLimiter


def _endpoint(name: str = "a", limit: int = 3) -> Endpoint:
    return Endpoint(name=name, url=f"https://{name}.example/?", rate_limit_per_minute=limit)


class TestCheck:
    def test_fresh_endpoint_is_under_budget(self):
        assert EndpointRateLimiter().check(_endpoint()) is True

    def test_check_does_not_count(self):
        limiter = EndpointRateLimiter()
        endpoint = _endpoint()
        for _ in range(10):
            limiter.check(endpoint)
        assert endpoint.request_count == 0

    def test_budget_exhausted_after_limit_attempts(self):
        limiter = EndpointRateLimiter()
        endpoint = _endpoint(limit=3)
        for _ in range(2):
            limiter.record(endpoint)
        assert limiter.check(endpoint) is True
        limiter.record(endpoint)
        assert limiter.check(endpoint) is False

    def test_endpoints_do_not_share_counters(self):
        limiter = EndpointRateLimiter()
        a, b = _endpoint("a", limit=1), _endpoint("b", limit=1)
        limiter.record(a)
        assert limiter.check(a) is False
        assert limiter.check(b) is True


class TestReset:
    def test_reset_restores_budget(self):
        limiter = EndpointRateLimiter()
        a, b = _endpoint("a", limit=1), _endpoint("b", limit=1)
        limiter.record(a)
        limiter.record(b)

        limiter.reset([a, b])

        assert a.request_count == 0
        assert limiter.check(a) is True
        assert limiter.check(b) is True

    def test_seconds_until_reset_within_window(self):
        limiter = EndpointRateLimiter(window_seconds=60)
        assert 0 < limiter.seconds_until_reset() <= 60


class TestStats:
    def test_stats_report_usage(self):
        limiter = EndpointRateLimiter()
        endpoint = _endpoint(limit=2)
        limiter.record(endpoint)
        assert limiter.get_stats(endpoint) == {
            "requests": 1,
            "limit": 2,
            "remaining": 1,
            "is_limited": False,
        }
        limiter.record(endpoint)
        stats = limiter.get_stats(endpoint)
        assert stats["remaining"] == 0
        assert stats["is_limited"] is True
