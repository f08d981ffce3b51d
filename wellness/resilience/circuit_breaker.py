"""Circuit breaker for the achievement decision service

After repeated failures the breaker opens and completions stop waiting on a
service that is down; the achievements stay pending on the session and can be
re-sent once the breaker closes again.

    CLOSED -> OPEN (fail_max failures) -> HALF_OPEN (after timeout) -> CLOSED/OPEN
"""

import pybreaker
import logging
from typing import Any

logger = logging.getLogger(__name__)


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Logs breaker events and mirrors them into metrics"""

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state: Any, new_state: Any) -> None:
        logger.warning(f"[CIRCUIT_BREAKER] {cb.name}: {old_state.name} -> {new_state.name}")

        from wellness.resilience.metrics import record_circuit_breaker_state
        record_circuit_breaker_state(cb.name, new_state.name.lower().replace("-", "_"))

    def failure(self, cb: pybreaker.CircuitBreaker, exc: Exception) -> None:
        logger.error(f"[CIRCUIT_BREAKER] {cb.name} recorded failure: {type(exc).__name__}: {exc}")

        from wellness.resilience.metrics import record_external_failure
        record_external_failure(cb.name, type(exc).__name__)

    def success(self, cb: pybreaker.CircuitBreaker) -> None:
        logger.debug(f"[CIRCUIT_BREAKER] {cb.name} recorded success")


# 5 consecutive failures open the breaker for 60s
ACHIEVEMENT_SERVICE_BREAKER = pybreaker.CircuitBreaker(
    fail_max=5,
    reset_timeout=60,
    name="achievement_service",
    listeners=[CircuitBreakerListener()]
)
