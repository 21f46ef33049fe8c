"""
backend/app/services/match_store.py

Purpose:
    Authoritative match collection keyed by the feed's external fixture id.
    Upserts merge field by field: a non-null incoming value replaces the stored
    one, an absent value never erases it. The merge is a single upsert
    ($set for present fields, $setOnInsert for absent ones and defaults), so
    there is no separate existence check and no hand-built update per call site.

Dependencies:
    - app.database
    - pymongo
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pymongo import ASCENDING

import app.database as _db
from app.models.match import FeedKind, MatchFact, MatchOutcome
from app.utils import utcnow

logger = logging.getLogger("freebet.match_store")

# Nullable fields merged with "incoming wins only when present"
_MERGED_FIELDS = (
    "home_team",
    "away_team",
    "commence_time",
    "home_odds",
    "draw_odds",
    "away_odds",
    "home_score",
    "away_score",
)


class UpsertOutcome(str, Enum):
    created = "created"
    updated = "updated"
    skipped = "skipped"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    match: Optional[dict] = None


def build_merge_update(fact: MatchFact, now: datetime) -> dict[str, dict[str, Any]]:
    """Translate a MatchFact into a coalescing upsert document.

    Present fields land in $set. Absent fields land in $setOnInsert so a new
    document gets explicit nulls while an existing one keeps its values.
    ``completed`` belongs to the scores feed: every score fact writes its
    value, while an odds fact only seeds False on insert.
    """
    to_set: dict[str, Any] = {"updated_at": now}
    on_insert: dict[str, Any] = {
        "external_id": fact.external_id,
        "calculated": False,
        "result": None,
        "created_at": now,
    }

    for field_name in _MERGED_FIELDS:
        value = getattr(fact, field_name)
        if value is None:
            on_insert[field_name] = None
        else:
            to_set[field_name] = value

    if fact.source is FeedKind.scores:
        to_set["completed"] = bool(fact.completed)
    else:
        on_insert["completed"] = False

    return {"$set": to_set, "$setOnInsert": on_insert}


async def upsert_match(fact: MatchFact, *, allow_create: bool = True) -> UpsertResult:
    """Merge one fact into the store and return the document as now stored.

    ``allow_create=False`` makes the write update-only; a fixture we have never
    seen is then reported as skipped. Storage errors propagate to the caller.
    """
    now = utcnow()
    update = build_merge_update(fact, now)
    result = await _db.db.matches.update_one(
        {"external_id": fact.external_id},
        update,
        upsert=allow_create,
    )

    if result.upserted_id is not None:
        outcome = UpsertOutcome.created
    elif result.matched_count:
        outcome = UpsertOutcome.updated
    else:
        return UpsertResult(UpsertOutcome.skipped)

    match = await _db.db.matches.find_one({"external_id": fact.external_id})
    logger.debug("Match %s %s from %s feed", fact.external_id, outcome.value, fact.source.value)
    return UpsertResult(outcome, match)


async def get_match(external_id: str) -> Optional[dict]:
    return await _db.db.matches.find_one({"external_id": external_id})


async def list_upcoming_matches(now: datetime | None = None, limit: int = 200) -> list[dict]:
    """Fixtures open for betting: all three odds quoted and kickoff in the future."""
    now = now or utcnow()
    query = {
        "home_odds": {"$gt": 0},
        "draw_odds": {"$gt": 0},
        "away_odds": {"$gt": 0},
        "commence_time": {"$gt": now},
    }
    return await _db.db.matches.find(query).sort(
        "commence_time", ASCENDING,
    ).to_list(length=limit)


def settlement_candidate_query() -> dict:
    """Completed, unsettled, and both scores known. Anything else waits."""
    return {
        "completed": True,
        "calculated": False,
        "home_score": {"$ne": None},
        "away_score": {"$ne": None},
    }


async def find_settlement_candidates(limit: int = 500) -> list[dict]:
    return await _db.db.matches.find(settlement_candidate_query()).sort(
        "commence_time", ASCENDING,
    ).to_list(length=limit)


async def mark_settled(external_id: str, result: MatchOutcome) -> bool:
    """Flip calculated false -> true exactly once. Returns True if this call did it."""
    now = utcnow()
    res = await _db.db.matches.update_one(
        {"external_id": external_id, "calculated": False},
        {"$set": {
            "calculated": True,
            "result": result.value,
            "settled_at": now,
            "updated_at": now,
        }},
    )
    return bool(res.modified_count)
