"""Resilience components for the fetch gateway."""

from fetchgate.resilience.circuit_breaker import CircuitState, EndpointCircuitBreaker
from fetchgate.resilience.classifier import classification_for, classify_error, user_message
from fetchgate.resilience.connectivity import ConnectivityMonitor
from fetchgate.resilience.rate_limiter import EndpointRateLimiter
from fetchgate.resilience.retry import RetryCoordinator

__all__ = [
    "CircuitState",
    "ConnectivityMonitor",
    "EndpointCircuitBreaker",
    "EndpointRateLimiter",
    "RetryCoordinator",
    "classification_for",
    "classify_error",
    "user_message",
]
