"""Prometheus metrics

Covers calls to the achievement decision service (calls, failures, retries,
breaker state) and domain events (session transitions, points awarded).
Exposed by whatever process hosts the library via prometheus_client.
"""

import logging
from prometheus_client import Counter, Histogram, Enum

logger = logging.getLogger(__name__)

# Values: closed, open, half_open
circuit_breaker_state = Enum(
    'wellness_circuit_breaker_state',
    'Current state of a circuit breaker',
    ['service'],
    states=['closed', 'open', 'half_open']
)

# Labels: service, status (success/failure)
external_calls_total = Counter(
    'wellness_external_calls_total',
    'Calls to external services',
    ['service', 'status']
)

external_call_duration = Histogram(
    'wellness_external_call_duration_seconds',
    'Duration of external service calls in seconds',
    ['service'],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, float('inf'))
)

# Labels: service, error_type (exception class name)
external_failures_total = Counter(
    'wellness_external_failures_total',
    'Failed calls to external services',
    ['service', 'error_type']
)

external_retries_total = Counter(
    'wellness_external_retries_total',
    'Retry attempts against external services',
    ['service']
)

# Labels: session_type, action (pause/resume/interrupt/complete/abandon)
session_transitions_total = Counter(
    'wellness_session_transitions_total',
    'Accepted session lifecycle transitions',
    ['session_type', 'action']
)

# Labels: source (session/achievement/streak/...)
points_awarded_total = Counter(
    'wellness_points_awarded_total',
    'Points credited to user ledgers',
    ['source']
)


def record_circuit_breaker_state(service: str, state: str) -> None:
    try:
        circuit_breaker_state.labels(service=service).state(state)
        logger.debug(f"[METRICS] Circuit breaker {service} state: {state}")
    except Exception as e:
        logger.error(f"Failed to record circuit breaker state: {e}")


def record_external_call(service: str, success: bool, duration: float) -> None:
    """
    Record one call to an external service.

    Args:
        service: Service name (achievement_service)
        success: Whether the call succeeded
        duration: Call duration in seconds
    """
    try:
        status = 'success' if success else 'failure'
        external_calls_total.labels(service=service, status=status).inc()
        external_call_duration.labels(service=service).observe(duration)
        logger.debug(f"[METRICS] {service} call: {status}, duration: {duration:.2f}s")
    except Exception as e:
        logger.error(f"Failed to record external call metrics: {e}")


def record_external_failure(service: str, error_type: str) -> None:
    try:
        external_failures_total.labels(service=service, error_type=error_type).inc()
    except Exception as e:
        logger.error(f"Failed to record external failure: {e}")


def record_retry(service: str) -> None:
    try:
        external_retries_total.labels(service=service).inc()
    except Exception as e:
        logger.error(f"Failed to record retry: {e}")


def record_session_transition(session_type: str, action: str) -> None:
    try:
        session_transitions_total.labels(session_type=session_type, action=action).inc()
    except Exception as e:
        logger.error(f"Failed to record session transition: {e}")


def record_points_awarded(source: str, amount: int) -> None:
    """Only positive awards are counted; Counter cannot decrease"""
    if amount <= 0:
        return
    try:
        points_awarded_total.labels(source=source).inc(amount)
    except Exception as e:
        logger.error(f"Failed to record points award: {e}")
