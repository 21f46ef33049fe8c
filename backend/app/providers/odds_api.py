import logging
from typing import Any, Optional

import httpx

from app.config import settings
from app.models.engine import UsageStats
from app.providers.base import BaseFeedProvider, FeedBatch
from app.providers.http_client import ResilientClient, safe_url
from app.services.errors import FeedConfigurationError, FeedError

logger = logging.getLogger("freebet.odds_api")


def _header_int(headers: httpx.Headers, name: str) -> Optional[int]:
    value = headers.get(name)
    if value is None:
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


class TheOddsAPIProvider(BaseFeedProvider):
    """The Odds API feed: one sport, one bookmaker, h2h prices and scores.

    Unlike a display cache, a failed fetch is never papered over with stale
    data: partial tolerance starts at normalization, not here.
    """

    def __init__(self):
        self._client = ResilientClient(
            "odds_api",
            timeout=settings.FEED_TIMEOUT_SECONDS,
            max_retries=settings.FEED_MAX_RETRIES,
            base_delay=settings.FEED_RETRY_BASE_DELAY_SECONDS,
        )
        self._api_usage = UsageStats()

    @staticmethod
    def _require_api_key() -> str:
        api_key = settings.ODDS_API_KEY.strip()
        if not api_key:
            raise FeedConfigurationError("ODDS_API_KEY is not configured")
        return api_key

    def _sport_url(self, collection: str) -> str:
        base = settings.THEODDSAPI_BASE_URL.rstrip("/")
        return f"{base}/sports/{settings.ODDS_SPORT_KEY}/{collection}"

    async def fetch_odds(self) -> FeedBatch:
        api_key = self._require_api_key()
        params = {
            "apiKey": api_key,
            "regions": settings.ODDS_REGIONS,
            "markets": settings.ODDS_MARKETS,
            "oddsFormat": "decimal",
            "dateFormat": "iso",
        }
        if settings.ODDS_BOOKMAKERS:
            params["bookmakers"] = settings.ODDS_BOOKMAKERS
        return await self._fetch("odds", self._sport_url("odds"), params)

    async def fetch_scores(self) -> FeedBatch:
        api_key = self._require_api_key()
        params = {
            "apiKey": api_key,
            "daysFrom": settings.SCORES_DAYS_FROM,
            "dateFormat": "iso",
        }
        return await self._fetch("scores", self._sport_url("scores"), params)

    async def _fetch(self, label: str, url: str, params: dict[str, Any]) -> FeedBatch:
        if not self._client.circuit.can_attempt():
            raise FeedError(f"Circuit open for {label} feed, not attempting")

        logger.info("External request (%s): %s", label, safe_url(url))
        try:
            resp = await self._client.get(url, params=params)
        except httpx.HTTPError as exc:
            self._client.circuit.record_failure()
            raise FeedError(f"Failed to fetch {label}: {exc}") from exc

        if resp.status_code != 200:
            self._client.circuit.record_failure()
            body = resp.text[:300] if resp.text else ""
            raise FeedError(
                f"{label} feed returned status {resp.status_code}: {body}",
                status_code=resp.status_code,
            )

        try:
            raw = resp.json()
        except ValueError as exc:
            self._client.circuit.record_failure()
            raise FeedError(f"Failed to decode {label} response: {exc}") from exc
        if not isinstance(raw, list):
            self._client.circuit.record_failure()
            raise FeedError(
                f"Unexpected {label} payload: expected a list, got {type(raw).__name__}"
            )

        self._client.circuit.record_success()
        usage = self._track_usage_headers(resp)
        logger.info(
            "%s feed: %d records, requests_used=%s, requests_remaining=%s",
            label, len(raw), usage.requests_used, usage.requests_remaining,
        )
        return FeedBatch(records=raw, usage=usage)

    def _track_usage_headers(self, resp: httpx.Response) -> UsageStats:
        """Extract API usage from response headers, keeping the last known values."""
        usage = UsageStats(
            requests_used=_header_int(resp.headers, "x-requests-used"),
            requests_remaining=_header_int(resp.headers, "x-requests-remaining"),
        )
        if usage.requests_used is not None or usage.requests_remaining is not None:
            self._api_usage = usage
        return usage

    @property
    def api_usage(self) -> UsageStats:
        return self._api_usage

    @property
    def circuit_open(self) -> bool:
        return self._client.circuit.is_open

    async def aclose(self) -> None:
        await self._client.aclose()


# Singleton provider instance
odds_provider = TheOddsAPIProvider()
