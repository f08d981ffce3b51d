"""Resilience patterns for the achievement decision service

Circuit breaker, retry with backoff, and Prometheus metrics.
"""

from wellness.resilience.circuit_breaker import ACHIEVEMENT_SERVICE_BREAKER
from wellness.resilience.retry import retry_with_backoff, is_retryable_error
from wellness.resilience.metrics import (
    record_circuit_breaker_state,
    record_external_call,
    record_external_failure,
    record_retry,
    record_session_transition,
    record_points_awarded,
)

__all__ = [
    # Circuit Breakers
    "ACHIEVEMENT_SERVICE_BREAKER",
    # Retry
    "retry_with_backoff",
    "is_retryable_error",
    # Metrics
    "record_circuit_breaker_state",
    "record_external_call",
    "record_external_failure",
    "record_retry",
    "record_session_transition",
    "record_points_awarded",
]
