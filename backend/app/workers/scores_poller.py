import asyncio
import logging
import time

from pymongo.errors import PyMongoError

from app.models.engine import SyncSummary
from app.models.match import FeedKind
from app.providers.odds_api import odds_provider
from app.services.match_sync_service import ingest_records
from app.workers._state import set_synced

logger = logging.getLogger("freebet.scores_poller")

_lock = asyncio.Lock()


async def sync_scores() -> SyncSummary:
    """Fetch live and recently finished scores and merge them into the store.

    Score records may create matches the odds feed never quoted; their odds
    stay null. Completion flags land here and nowhere else.
    """
    async with _lock:
        started = time.monotonic()
        batch = await odds_provider.fetch_scores()
        if not batch.records:
            logger.info("No scores found")

        counts = await ingest_records(batch.records, FeedKind.scores)
        summary = SyncSummary(
            task="scores:sync",
            **counts,
            usage=batch.usage,
            duration_ms=int((time.monotonic() - started) * 1000),
        )
        logger.info(
            "Scores sync completed: created=%d updated=%d skipped=%d in %dms",
            summary.created, summary.updated, summary.skipped, summary.duration_ms,
        )

        try:
            await set_synced("scores_sync", metrics=summary.model_dump(exclude={"task"}))
        except PyMongoError:
            logger.warning("Failed to record scores sync state", exc_info=True)
        return summary
