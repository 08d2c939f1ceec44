"""Per-endpoint circuit breaker for forwarding resilience.

Counts consecutive failures per endpoint and opens the circuit once the
count reaches the threshold. An open circuit is checked lazily: the first
availability query after the cooldown has elapsed clears it back to closed.

State machine:
- Closed → Open: consecutive failures reach ``failure_threshold``
- Open → Closed: cooldown elapses (checked on the next availability query)
- Any → Closed with a zero failure count: a success is recorded

The consecutive failure count survives the cooldown reset, so the first
attempt after cooldown acts as the probe: if it fails the circuit reopens
immediately, if it succeeds the count is cleared.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class CircuitState:
    """Circuit state tracked per endpoint."""

    endpoint: str
    open: bool = False
    opened_at: float = 0.0  # time.monotonic()
    cooldown: float = 300.0
    consecutive_failures: int = 0


class EndpointCircuitBreaker:
    """Consecutive-failure circuit breaker keyed by endpoint name.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        cooldown_seconds: Seconds an open circuit stays open.
    """

    def __init__(
        self,
        failure_threshold: int = 3,
        cooldown_seconds: float = 300,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._cooldown_seconds = cooldown_seconds
        self._states: dict[str, CircuitState] = {}

    def _get_or_create(self, endpoint: str) -> CircuitState:
        if endpoint not in self._states:
            self._states[endpoint] = CircuitState(
                endpoint=endpoint, cooldown=self._cooldown_seconds
            )
        return self._states[endpoint]

    def is_available(self, endpoint: str) -> bool:
        """Check whether the endpoint may receive a request.

        - Unknown/closed endpoints: always allowed.
        - Open endpoints: rejected until the cooldown elapses, then reset to closed.
        """
        state = self._states.get(endpoint)
        if state is None or not state.open:
            return True

        if time.monotonic() - state.opened_at >= state.cooldown:
            state.open = False
            state.opened_at = 0.0
            logger.info("Circuit reset for endpoint %s after cooldown", endpoint)
            return True

        return False

    def record_success(self, endpoint: str) -> None:
        """Reset the failure count and close any open circuit."""
        state = self._get_or_create(endpoint)
        if state.open:
            logger.info("Circuit closed for endpoint %s", endpoint)
        state.consecutive_failures = 0
        state.open = False
        state.opened_at = 0.0

    def record_failure(self, endpoint: str) -> None:
        """Count a failure; open (or re-open) the circuit at the threshold."""
        state = self._get_or_create(endpoint)
        state.consecutive_failures += 1

        if state.consecutive_failures >= self._failure_threshold:
            was_open = state.open
            state.open = True
            state.opened_at = time.monotonic()
            if not was_open:
                logger.warning(
                    "Circuit opened for endpoint %s after %d consecutive failures (cooldown %ss)",
                    endpoint,
                    state.consecutive_failures,
                    state.cooldown,
                )

    def get_state(self, endpoint: str) -> CircuitState:
        """Return a snapshot of the endpoint's circuit state (closed for unknown endpoints)."""
        state = self._states.get(endpoint)
        if state is None:
            return CircuitState(endpoint=endpoint, cooldown=self._cooldown_seconds)
        return CircuitState(
            endpoint=state.endpoint,
            open=state.open,
            opened_at=state.opened_at,
            cooldown=state.cooldown,
            consecutive_failures=state.consecutive_failures,
        )

    def open_endpoints(self) -> list[str]:
        """Names of endpoints whose circuit is currently marked open."""
        return [name for name, state in self._states.items() if state.open]
