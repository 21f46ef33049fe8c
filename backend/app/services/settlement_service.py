"""
backend/app/services/settlement_service.py

Purpose:
    Outcome Settler. Moves completed, unsettled matches to settled: every
    pending wager becomes won/lost and winners are credited, all inside one
    MongoDB transaction per match. The match is flagged calculated only after
    that transaction commits.

Dependencies:
    - app.database (client sessions + collections)
    - app.services.match_store
    - pymongo
"""

from __future__ import annotations

import logging
import time
import uuid
from collections import defaultdict
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from bson import ObjectId
from pymongo import UpdateOne
from pymongo.errors import PyMongoError
from pymongo.read_concern import ReadConcern
from pymongo.write_concern import WriteConcern

import app.database as _db
from app.config import settings
from app.models.engine import SettledMatch, SettleSummary
from app.models.match import MatchOutcome
from app.models.wager import BalanceTransactionInDB, TransactionType, WagerStatus
from app.services import match_store
from app.services.errors import EngineError, LedgerIntegrityError
from app.utils import utcnow

logger = logging.getLogger("freebet.settlement")


def compute_outcome(home_score: int, away_score: int) -> MatchOutcome:
    if home_score > away_score:
        return MatchOutcome.home
    if home_score < away_score:
        return MatchOutcome.away
    return MatchOutcome.draw


@dataclass
class LedgerEffect:
    """What one settlement transaction changed."""
    claimed: bool
    won: int = 0
    lost: int = 0
    credited: float = 0.0


def _owner_filter(user_id: str) -> dict:
    return {"_id": ObjectId(user_id) if ObjectId.is_valid(user_id) else user_id}


async def _apply_settlement(
    session, external_id: str, result: MatchOutcome, token: str,
) -> LedgerEffect:
    """The transactional body. Every write carries ``session``."""
    now = utcnow()

    # Claim: concurrent settlements of the same match both write this document,
    # so one of them hits a write conflict and aborts.
    claim = await _db.db.matches.update_one(
        {"external_id": external_id, "calculated": False},
        {"$set": {"settlement_token": token, "updated_at": now}},
        session=session,
    )
    if not claim.matched_count:
        return LedgerEffect(claimed=False)

    # One pipeline update resolves every pending wager of the match; the
    # status of each document is derived from its own selection.
    transitioned = await _db.db.wagers.update_many(
        {"match_external_id": external_id, "status": WagerStatus.pending.value},
        [{"$set": {
            "status": {"$cond": [
                {"$eq": ["$selection", result.value]},
                WagerStatus.won.value,
                WagerStatus.lost.value,
            ]},
            "settlement_token": token,
            "settled_at": now,
            "updated_at": now,
        }}],
        session=session,
    )

    winners = await _db.db.wagers.find(
        {"settlement_token": token, "status": WagerStatus.won.value},
        {"_id": 1, "user_id": 1, "potential_payout": 1},
        session=session,
    ).to_list(length=None)

    credits: dict[str, float] = defaultdict(float)
    audit: list[dict] = []
    for wager in winners:
        payout = float(wager.get("potential_payout") or 0.0)
        if payout <= 0:
            continue
        credits[wager["user_id"]] += payout
        audit.append(BalanceTransactionInDB(
            user_id=wager["user_id"],
            type=TransactionType.WAGER_WON,
            amount=payout,
            reference_id=str(wager["_id"]),
            description=f"Won wager on {external_id}: {payout:.2f}",
            created_at=now,
        ).model_dump())

    if credits:
        ops = [
            UpdateOne(_owner_filter(user_id), {"$inc": {"balance": round(amount, 2)}})
            for user_id, amount in credits.items()
        ]
        credited = await _db.db.users.bulk_write(ops, ordered=True, session=session)
        if credited.matched_count != len(ops):
            # A winner without a user row would silently lose the payout.
            raise LedgerIntegrityError(
                f"Balance credit matched {credited.matched_count}/{len(ops)} users "
                f"for match {external_id}"
            )
        await _db.db.balance_transactions.insert_many(audit, ordered=True, session=session)

    return LedgerEffect(
        claimed=True,
        won=len(winners),
        lost=transitioned.modified_count - len(winners),
        credited=round(sum(credits.values()), 2),
    )


async def settle_match_ledger(external_id: str, result: MatchOutcome) -> LedgerEffect:
    """Run the status transition + balance credit transaction for one match.

    All effects commit together or not at all. Safe to repeat: only wagers
    still pending are touched, and a settled match cannot be claimed again.
    """
    token = uuid.uuid4().hex
    async with await _db.client.start_session() as session:
        async with session.start_transaction(
            read_concern=ReadConcern("majority"),
            write_concern=WriteConcern("majority"),
            max_commit_time_ms=settings.SETTLEMENT_COMMIT_TIMEOUT_MS,
        ):
            return await _apply_settlement(session, external_id, result, token)


Notify = Callable[[list[SettledMatch]], Awaitable[None]]


async def settle_matches(notify: Optional[Notify] = None) -> SettleSummary:
    """Settle every candidate match, one transaction each.

    A failing match is logged and left Completed-Unsettled for the next run;
    it never blocks the others. ``notify`` runs once, after every transaction
    has finished, and its failure never touches committed settlements.
    """
    started = time.monotonic()
    candidates = await match_store.find_settlement_candidates()
    if not candidates:
        logger.info("No matches to settle")

    settled: list[SettledMatch] = []
    failed = 0

    for match in candidates:
        external_id = match["external_id"]
        home_score = match.get("home_score")
        away_score = match.get("away_score")
        if home_score is None or away_score is None:
            continue
        result = compute_outcome(home_score, away_score)

        try:
            effect = await settle_match_ledger(external_id, result)
        except (PyMongoError, EngineError) as exc:
            failed += 1
            logger.error("Settlement transaction failed for match %s: %s", external_id, exc)
            continue

        if not effect.claimed:
            logger.info("Match %s already settled elsewhere, skipping", external_id)
            continue

        try:
            marked = await match_store.mark_settled(external_id, result)
        except PyMongoError as exc:
            # Wagers are terminal already; the next run re-selects it as a no-op.
            failed += 1
            logger.error("Could not mark match %s calculated: %s", external_id, exc)
            continue
        if not marked:
            logger.warning("Match %s was flagged calculated by another run, not reporting", external_id)
            continue

        settled.append(SettledMatch(
            external_id=external_id,
            home_team=match.get("home_team", ""),
            away_team=match.get("away_team", ""),
            score=f"{home_score}-{away_score}",
            result=result,
            won=effect.won,
            lost=effect.lost,
            credited=effect.credited,
        ))
        logger.info(
            "Match settled: %s %d-%d %s | result=%s won=%d lost=%d credited=%.2f",
            match.get("home_team", "?"), home_score, away_score, match.get("away_team", "?"),
            result.value, effect.won, effect.lost, effect.credited,
        )

    if notify is not None and settled:
        try:
            await notify(settled)
        except Exception:
            logger.exception("Settlement notification failed")

    summary = SettleSummary(
        settled_count=len(settled),
        failed=failed,
        matches=settled,
        duration_ms=int((time.monotonic() - started) * 1000),
    )
    logger.info(
        "Settlement completed: %d settled, %d failed in %dms",
        summary.settled_count, summary.failed, summary.duration_ms,
    )
    return summary
