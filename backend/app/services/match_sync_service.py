"""
backend/app/services/match_sync_service.py

Purpose:
    Batch loop shared by the odds and scores pipelines: normalize each raw
    record, upsert it, and count created/updated/skipped. Records are handled
    one at a time, in feed order; a failure skips that record only.

Dependencies:
    - app.services.event_normalizer
    - app.services.match_store
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, TypedDict

from pymongo.errors import PyMongoError

from app.models.match import FeedKind
from app.services.errors import MalformedRecordError
from app.services.event_normalizer import normalize_event
from app.services.match_store import UpsertOutcome, upsert_match

logger = logging.getLogger("freebet.match_sync")


class IngestCounts(TypedDict):
    fetched: int
    created: int
    updated: int
    skipped: int


async def ingest_records(records: Iterable[Any], source: FeedKind) -> IngestCounts:
    counts: IngestCounts = {"fetched": 0, "created": 0, "updated": 0, "skipped": 0}

    for record in records:
        counts["fetched"] += 1
        try:
            fact = normalize_event(record, source)
        except MalformedRecordError as exc:
            counts["skipped"] += 1
            logger.warning(
                "Skipping malformed %s record %s: %s",
                source.value, exc.external_id or "<no id>", exc,
            )
            continue

        # A fixture nobody quotes yet is not worth storing; scores may always create.
        allow_create = source is FeedKind.scores or fact.has_full_odds
        try:
            result = await upsert_match(fact, allow_create=allow_create)
        except PyMongoError as exc:
            counts["skipped"] += 1
            logger.error("Failed to upsert match %s: %s", fact.external_id, exc)
            continue

        if result.outcome is UpsertOutcome.created:
            counts["created"] += 1
        elif result.outcome is UpsertOutcome.updated:
            counts["updated"] += 1
        else:
            counts["skipped"] += 1
            logger.debug("No usable odds for new match %s, not stored", fact.external_id)

    return counts
