import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("freebet.http_client")

# Retryable HTTP status codes
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
_MAX_DELAY_SECONDS = 60.0


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failed fetches.

    While open, callers should not hit the upstream at all; one probe is let
    through once ``recovery_timeout`` seconds have passed since the last
    failure, and a success closes the circuit again.
    """

    def __init__(self, name: str = "", failure_threshold: int = 3, recovery_timeout: float = 300.0):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self._opened_at: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self._opened_at is not None

    def record_success(self) -> None:
        if self.is_open:
            logger.info("[%s] Circuit closed", self.name)
        self.failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count < self.failure_threshold:
            return
        if not self.is_open:
            logger.warning("[%s] Circuit OPEN after %d failures", self.name, self.failure_count)
        self._opened_at = time.monotonic()

    def can_attempt(self) -> bool:
        if self._opened_at is None:
            return True
        if time.monotonic() - self._opened_at >= self.recovery_timeout:
            logger.info("[%s] Circuit half-open, allowing one probe", self.name)
            return True
        return False


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Extract wait time from Retry-After or X-RateLimit-Retry-After headers."""
    for header in ("retry-after", "x-ratelimit-retry-after"):
        value = response.headers.get(header)
        if value is None:
            continue
        try:
            return float(value)
        except (ValueError, TypeError):
            continue
    return None


def safe_url(url: str) -> str:
    """Strip query params (may contain API keys) and bot tokens for safe logging."""
    parsed = urlparse(str(url))
    path = parsed.path
    if path.startswith("/bot"):
        path = "/bot***/" + path.split("/", 2)[-1]
    return f"{parsed.scheme}://{parsed.netloc}{path}"


class ResilientClient:
    """httpx.AsyncClient wrapper with a fixed per-call timeout, bounded retry
    with exponential backoff, and a circuit breaker."""

    def __init__(
        self,
        name: str,
        timeout: float = 15.0,
        max_retries: int = 2,
        base_delay: float = 2.0,
    ):
        self._client = httpx.AsyncClient(timeout=timeout)
        self._name = name
        self._max_retries = max_retries
        self._base_delay = base_delay
        self.circuit = CircuitBreaker(name)

    def _delay_for(self, attempt: int, resp: Optional[httpx.Response] = None) -> float:
        delay = _parse_retry_after(resp) if resp is not None else None
        if delay is None:
            delay = self._base_delay * (2 ** attempt)
        return min(delay, _MAX_DELAY_SECONDS)

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Execute an HTTP request, retrying transient failures.

        Returns the last response when every attempt hit a retryable status;
        re-raises the last network error when no response was ever received.
        """
        attempts = self._max_retries + 1
        last_exc: Optional[Exception] = None
        last_resp: Optional[httpx.Response] = None

        for attempt in range(attempts):
            try:
                resp = await self._client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as exc:
                last_exc = exc
                logger.warning(
                    "[%s] Network error on %s %s (attempt %d/%d): %s",
                    self._name, method, safe_url(url), attempt + 1, attempts, exc,
                )
                if attempt < self._max_retries:
                    await asyncio.sleep(self._delay_for(attempt))
                continue

            if resp.status_code not in _RETRYABLE_STATUSES:
                return resp

            last_resp = resp
            logger.warning(
                "[%s] Retryable status %d on %s %s (attempt %d/%d)",
                self._name, resp.status_code, method, safe_url(url),
                attempt + 1, attempts,
            )
            if attempt < self._max_retries:
                await asyncio.sleep(self._delay_for(attempt, resp))

        if last_resp is not None:
            logger.error(
                "[%s] All %d attempts failed for %s %s (last status: %d)",
                self._name, attempts, method, safe_url(url), last_resp.status_code,
            )
            return last_resp

        logger.error(
            "[%s] All %d attempts failed for %s %s: %s",
            self._name, attempts, method, safe_url(url), last_exc,
        )
        raise last_exc  # type: ignore[misc]

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
