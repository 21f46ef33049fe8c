"""Settlement trigger.

Runs the Outcome Settler over every completed-unsettled match, then hands the
settled list to the Telegram notifier once all transactions are done.
"""

import asyncio
import logging

from pymongo.errors import PyMongoError

from app.models.engine import SettleSummary
from app.providers.telegram import telegram_notifier
from app.services.settlement_service import settle_matches
from app.workers._state import set_synced

logger = logging.getLogger("freebet.match_settler")

_lock = asyncio.Lock()


async def settle() -> SettleSummary:
    async with _lock:
        summary = await settle_matches(notify=telegram_notifier.notify_settlement)
        try:
            await set_synced("settlement", metrics={
                "settled_count": summary.settled_count,
                "failed": summary.failed,
                "duration_ms": summary.duration_ms,
            })
        except PyMongoError:
            logger.warning("Failed to record settlement state", exc_info=True)
        return summary
