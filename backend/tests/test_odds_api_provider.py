"""
backend/tests/test_odds_api_provider.py

Purpose:
    The Odds API feed client: request parameters, usage header tracking and
    failure classification (configuration vs. feed).
"""

from __future__ import annotations

import httpx
import pytest

from app.config import settings
from app.providers.http_client import CircuitBreaker, safe_url
from app.providers.odds_api import TheOddsAPIProvider
from app.services.errors import FeedConfigurationError, FeedError


class _FakeResponse:
    def __init__(self, payload=None, headers: dict[str, str] | None = None,
                 status_code: int = 200, text: str = "") -> None:
        self._payload = payload
        self.headers = headers or {}
        self.status_code = status_code
        self.text = text

    def json(self):
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class _FakeClient:
    def __init__(self, responses: list) -> None:
        self._responses = list(responses)
        self.calls: list[dict] = []
        self.circuit = CircuitBreaker()

    async def get(self, url, **kwargs):
        self.calls.append({"url": url, **kwargs})
        item = self._responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def aclose(self) -> None:
        return None


@pytest.fixture
def provider(monkeypatch):
    monkeypatch.setattr(settings, "ODDS_API_KEY", "secret-key")
    monkeypatch.setattr(settings, "ODDS_SPORT_KEY", "soccer_epl")
    monkeypatch.setattr(settings, "THEODDSAPI_BASE_URL", "https://api.example.test/v4")
    return TheOddsAPIProvider()


@pytest.mark.asyncio
async def test_fetch_odds_sends_pinned_market_parameters(provider, monkeypatch):
    fake = _FakeClient([_FakeResponse([{"id": "e1"}], {"x-requests-used": "10", "x-requests-remaining": "490"})])
    monkeypatch.setattr(provider, "_client", fake)

    batch = await provider.fetch_odds()

    call = fake.calls[0]
    assert call["url"] == "https://api.example.test/v4/sports/soccer_epl/odds"
    assert call["params"] == {
        "apiKey": "secret-key",
        "regions": "us",
        "markets": "h2h",
        "oddsFormat": "decimal",
        "dateFormat": "iso",
        "bookmakers": "marathonbet",
    }
    assert batch.records == [{"id": "e1"}]
    assert batch.usage.requests_used == 10
    assert batch.usage.requests_remaining == 490
    assert provider.api_usage.requests_remaining == 490


@pytest.mark.asyncio
async def test_fetch_scores_asks_for_recent_days(provider, monkeypatch):
    fake = _FakeClient([_FakeResponse([])])
    monkeypatch.setattr(provider, "_client", fake)

    batch = await provider.fetch_scores()

    call = fake.calls[0]
    assert call["url"].endswith("/sports/soccer_epl/scores")
    assert call["params"]["daysFrom"] == 3
    assert call["params"]["dateFormat"] == "iso"
    assert batch.records == []
    assert batch.usage.requests_used is None


@pytest.mark.asyncio
async def test_missing_api_key_is_a_configuration_error(provider, monkeypatch):
    fake = _FakeClient([])
    monkeypatch.setattr(provider, "_client", fake)
    monkeypatch.setattr(settings, "ODDS_API_KEY", "  ")

    with pytest.raises(FeedConfigurationError):
        await provider.fetch_odds()
    assert fake.calls == []


@pytest.mark.asyncio
async def test_non_200_is_a_feed_error(provider, monkeypatch):
    monkeypatch.setattr(provider, "_client", _FakeClient([_FakeResponse(status_code=401, text="bad key")]))

    with pytest.raises(FeedError) as excinfo:
        await provider.fetch_odds()
    assert excinfo.value.status_code == 401


@pytest.mark.asyncio
async def test_non_list_body_is_a_feed_error(provider, monkeypatch):
    monkeypatch.setattr(provider, "_client", _FakeClient([_FakeResponse({"message": "quota"})]))

    with pytest.raises(FeedError):
        await provider.fetch_scores()


@pytest.mark.asyncio
async def test_undecodable_body_is_a_feed_error(provider, monkeypatch):
    monkeypatch.setattr(provider, "_client", _FakeClient([_FakeResponse(ValueError("not json"))]))

    with pytest.raises(FeedError):
        await provider.fetch_odds()


@pytest.mark.asyncio
async def test_network_error_is_a_feed_error(provider, monkeypatch):
    monkeypatch.setattr(provider, "_client", _FakeClient([httpx.ConnectError("refused")]))

    with pytest.raises(FeedError):
        await provider.fetch_odds()


@pytest.mark.asyncio
async def test_open_circuit_short_circuits(provider, monkeypatch):
    fake = _FakeClient([_FakeResponse(status_code=500)] * 3)
    monkeypatch.setattr(provider, "_client", fake)

    for _ in range(3):
        with pytest.raises(FeedError):
            await provider.fetch_odds()
    assert provider.circuit_open

    with pytest.raises(FeedError):
        await provider.fetch_odds()
    assert len(fake.calls) == 3


@pytest.mark.asyncio
async def test_usage_keeps_last_known_values_when_headers_missing(provider, monkeypatch):
    monkeypatch.setattr(provider, "_client", _FakeClient([
        _FakeResponse([], {"x-requests-used": "5", "x-requests-remaining": "95"}),
        _FakeResponse([]),
    ]))

    await provider.fetch_odds()
    await provider.fetch_scores()

    assert provider.api_usage.requests_used == 5
    assert provider.api_usage.requests_remaining == 95


def test_safe_url_hides_keys_and_bot_tokens():
    assert safe_url("https://api.example.test/v4/sports/x/odds?apiKey=abc") == (
        "https://api.example.test/v4/sports/x/odds"
    )
    assert "123:ABC" not in safe_url("https://api.telegram.org/bot123:ABC/sendMessage")


def test_circuit_half_opens_after_recovery_and_closes_on_success():
    breaker = CircuitBreaker("odds_api", failure_threshold=2, recovery_timeout=0)
    breaker.record_failure()
    assert breaker.can_attempt() and not breaker.is_open

    breaker.record_failure()
    assert breaker.is_open
    assert breaker.can_attempt()

    breaker.record_success()
    assert not breaker.is_open
    assert breaker.failure_count == 0
