"""Retry with exponential backoff and jitter

Only transient failures of the achievement decision service are retried:
timeouts, dropped connections, HTTP 429 and 5xx. Everything else (4xx,
validation problems, programming errors) is raised on the first attempt.
"""

import asyncio
import random
import logging
from typing import Callable, Any, Optional, TypeVar
import httpx

from wellness.config import ACHIEVEMENT_SERVICE_MAX_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar('T')

BASE_DELAY = 0.5  # seconds
MAX_DELAY = 10.0  # seconds
JITTER = 0.1  # +/- 10%

RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})


def is_retryable_error(exc: Exception) -> bool:
    """
    Whether an exception is transient.

    Args:
        exc: The exception raised by the attempt

    Returns:
        True for timeouts, network errors, 429 and 5xx responses
    """
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in RETRYABLE_STATUS_CODES

    if isinstance(exc, (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)):
        return True

    return False


def calculate_backoff(attempt: int) -> float:
    """
    Delay before retry number `attempt` (0-indexed).

    delay = min(BASE_DELAY * 2**attempt, MAX_DELAY), then +/- JITTER.
    Roughly 0.5s, 1s, 2s, 4s...
    """
    delay = min(BASE_DELAY * (2 ** attempt), MAX_DELAY)
    jitter_amount = random.uniform(-JITTER * delay, JITTER * delay)
    return max(delay + jitter_amount, 0.0)


async def retry_with_backoff(
    func: Callable[..., T],
    *args: Any,
    max_retries: int = ACHIEVEMENT_SERVICE_MAX_RETRIES,
    service: Optional[str] = None,
    **kwargs: Any
) -> T:
    """
    Call an async function, retrying transient failures.

    Args:
        func: Async function to call
        max_retries: Retries after the first attempt
        service: Name used for the retry metric (defaults to func name)
        *args, **kwargs: Passed through to func

    Raises:
        The last exception once retries are exhausted, or the first
        non-retryable one
    """
    service = service or func.__name__

    for attempt in range(max_retries + 1):
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            if not is_retryable_error(e):
                logger.warning(
                    f"[RETRY] Non-retryable error for {service}: {type(e).__name__}: {e}"
                )
                raise

            if attempt == max_retries:
                logger.error(f"[RETRY] All {max_retries} retries exhausted for {service}")
                raise

            backoff = calculate_backoff(attempt)

            from wellness.resilience.metrics import record_retry
            record_retry(service)

            logger.info(
                f"[RETRY] Attempt {attempt + 1}/{max_retries} for {service} "
                f"after {backoff:.2f}s (error: {type(e).__name__})"
            )
            await asyncio.sleep(backoff)

    raise RuntimeError(f"retry_with_backoff exited without a result for {service}")
