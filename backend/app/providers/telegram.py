"""Telegram channel notifications for settled matches (best-effort)."""

import html
import logging
from datetime import datetime
from typing import Optional

import httpx

from app.config import settings
from app.models.engine import SettledMatch
from app.providers.http_client import ResilientClient
from app.utils import utcnow

logger = logging.getLogger("freebet.telegram")

TELEGRAM_API_URL = "https://api.telegram.org"


def format_settlement_message(matches: list[SettledMatch], now: Optional[datetime] = None) -> str:
    """HTML summary: timestamp, one numbered line per match, closing note."""
    now = now or utcnow()
    lines = [
        "🎯 <b>Matches settled!</b>",
        "",
        f"📅 {now.strftime('%d/%m/%Y %H:%M:%S')} UTC",
        "",
        "⚽ <b>Results:</b>",
    ]
    for idx, match in enumerate(matches, start=1):
        lines.append(
            f"{idx}. {html.escape(match.home_team)} {match.score} {html.escape(match.away_team)}"
            f" | result: <b>{match.result.value}</b>"
        )
    lines.append("")
    lines.append("💰 <i>All bets on these matches have been settled.</i>")
    return "\n".join(lines)


class TelegramNotifier:
    """Posts settlement summaries to a channel. Never raises to the caller."""

    def __init__(self):
        # One attempt: a retry storm here would only delay the settle response.
        self._client = ResilientClient(
            "telegram",
            timeout=settings.TELEGRAM_TIMEOUT_SECONDS,
            max_retries=0,
        )

    @staticmethod
    def is_configured() -> bool:
        return bool(settings.TELEGRAM_BOT_TOKEN and settings.TELEGRAM_CHANNEL_ID)

    async def send_message(self, text: str) -> bool:
        if not self.is_configured():
            logger.info("Telegram not configured, skipping notification")
            return False

        url = f"{TELEGRAM_API_URL}/bot{settings.TELEGRAM_BOT_TOKEN}/sendMessage"
        payload = {
            "chat_id": settings.TELEGRAM_CHANNEL_ID,
            "text": text,
            "parse_mode": "HTML",
        }
        try:
            resp = await self._client.post(url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("Telegram request failed: %s", exc)
            return False

        if resp.status_code != 200:
            logger.error("Telegram API returned status %d: %s", resp.status_code, resp.text[:300])
            return False
        logger.info("Telegram notification sent to channel %s", settings.TELEGRAM_CHANNEL_ID)
        return True

    async def notify_settlement(self, matches: list[SettledMatch]) -> None:
        if not matches:
            return
        await self.send_message(format_settlement_message(matches))

    async def aclose(self) -> None:
        await self._client.aclose()


telegram_notifier = TelegramNotifier()
