import asyncio
import logging
import time

from pymongo.errors import PyMongoError

from app.models.engine import SyncSummary
from app.models.match import FeedKind
from app.providers.odds_api import odds_provider
from app.services.match_sync_service import ingest_records
from app.workers._state import set_synced

logger = logging.getLogger("freebet.odds_poller")

_lock = asyncio.Lock()


async def sync_odds() -> SyncSummary:
    """Fetch upcoming-match odds and merge them into the match store.

    Feed configuration and fetch errors propagate: nothing useful can be done
    without the batch. Record-level problems are counted as skipped.
    """
    async with _lock:
        started = time.monotonic()
        batch = await odds_provider.fetch_odds()
        if not batch.records:
            logger.info("No upcoming matches found")

        counts = await ingest_records(batch.records, FeedKind.odds)
        summary = SyncSummary(
            task="odds:sync",
            **counts,
            usage=batch.usage,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Odds sync completed: created=%d updated=%d skipped=%d in %dms",
            summary.created, summary.updated, summary.skipped, summary.duration_ms,
        )

        try:
            await set_synced("odds_sync", metrics=summary.model_dump(exclude={"task"}))
        except PyMongoError:
            logger.warning("Failed to record odds sync state", exc_info=True)
        return summary
