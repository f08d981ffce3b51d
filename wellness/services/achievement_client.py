"""
HTTP client for the achievement decision service

POST {ACHIEVEMENT_SERVICE_URL}/achievements/{session_type} with the payload as
JSON. Transient failures are retried with backoff; every attempt goes through
the achievement service circuit breaker. Any failure that survives retries is
raised as AchievementServiceError.
"""

import logging
import time
from typing import Any, Optional

import httpx
import pybreaker

from wellness import config
from wellness.exceptions import AchievementServiceError
from wellness.gamification.hooks import AchievementPayload
from wellness.resilience.circuit_breaker import ACHIEVEMENT_SERVICE_BREAKER
from wellness.resilience.metrics import record_external_call
from wellness.resilience.retry import retry_with_backoff

logger = logging.getLogger(__name__)

SERVICE_NAME = "achievement_service"


class AchievementDecisionClient:
    """
    Forwards completed-session payloads to the decision service

    With no base URL configured the client is disabled: payloads are
    dropped with a debug log and the call succeeds.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None,
        max_retries: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: pybreaker.CircuitBreaker = ACHIEVEMENT_SERVICE_BREAKER
    ):
        self.base_url = (base_url if base_url is not None else config.ACHIEVEMENT_SERVICE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else config.ACHIEVEMENT_SERVICE_TIMEOUT
        self.api_key = api_key if api_key is not None else config.ACHIEVEMENT_SERVICE_API_KEY
        self.max_retries = max_retries if max_retries is not None else config.ACHIEVEMENT_SERVICE_MAX_RETRIES
        self.breaker = breaker
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def process_achievements(self, payload: AchievementPayload) -> Optional[Any]:
        """
        Send one payload

        Returns:
            The decoded JSON response (uninterpreted), or None

        Raises:
            AchievementServiceError: the service failed or the breaker is open
        """
        if not self.enabled:
            logger.debug(f"Achievement service disabled, dropping payload for session {payload.session_id}")
            return None

        try:
            return await retry_with_backoff(
                self._call_through_breaker,
                payload,
                max_retries=self.max_retries,
                service=SERVICE_NAME
            )
        except pybreaker.CircuitBreakerError as e:
            raise AchievementServiceError(
                "Achievement service unavailable (circuit open)",
                session_id=payload.session_id,
                user_id=payload.user_id,
                operation="process_achievements",
                cause=e
            ) from e
        except httpx.HTTPStatusError as e:
            raise AchievementServiceError(
                f"Achievement service returned {e.response.status_code}",
                session_id=payload.session_id,
                status_code=e.response.status_code,
                user_id=payload.user_id,
                operation="process_achievements",
                cause=e
            ) from e
        except httpx.HTTPError as e:
            raise AchievementServiceError(
                f"Achievement service request failed: {type(e).__name__}: {e}",
                session_id=payload.session_id,
                user_id=payload.user_id,
                operation="process_achievements",
                cause=e
            ) from e

    async def _call_through_breaker(self, payload: AchievementPayload) -> Optional[Any]:
        return await self.breaker.call_async(self._post, payload)

    async def _post(self, payload: AchievementPayload) -> Optional[Any]:
        url = f"{self.base_url}/achievements/{payload.session_type}"
        body = payload.model_dump(mode="json")
        started = time.monotonic()
        try:
            if self._http_client is not None:
                response = await self._http_client.post(url, json=body, headers=self._headers())
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.post(url, json=body, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPError:
            record_external_call(SERVICE_NAME, False, time.monotonic() - started)
            raise

        record_external_call(SERVICE_NAME, True, time.monotonic() - started)
        logger.info(f"Forwarded {payload.session_type} session {payload.session_id} to achievement service")
        return response.json() if response.content else None
