"""Wager placement: atomic stake deduction and pending-wager creation."""

import logging

from bson import ObjectId

import app.database as _db
from app.models.match import MatchOutcome
from app.models.wager import (
    BalanceTransactionInDB,
    TransactionType,
    WagerInDB,
    WagerResponse,
    WagerStatus,
)
from app.services import match_store
from app.services.errors import InsufficientBalanceError, WagerRejectedError
from app.utils import ensure_utc, utcnow

logger = logging.getLogger("freebet.wager_service")

_ODDS_FIELD = {
    MatchOutcome.home: "home_odds",
    MatchOutcome.draw: "draw_odds",
    MatchOutcome.away: "away_odds",
}


def _user_filter(user_id: str) -> dict:
    return {"_id": ObjectId(user_id) if ObjectId.is_valid(user_id) else user_id}


async def place_wager(
    user_id: str, match_external_id: str, selection: str, stake: float,
) -> WagerResponse:
    """Place a pending wager at the currently stored odds.

    The odds are read from the match, not taken from the client, and frozen on
    the wager together with stake * odds. Stake deduction, wager insert and
    the audit row commit in one transaction.
    """
    try:
        outcome = MatchOutcome(selection)
    except ValueError:
        raise WagerRejectedError(f"Invalid selection: {selection!r}") from None
    if stake is None or stake <= 0:
        raise WagerRejectedError("Stake must be positive.")
    stake = round(float(stake), 2)

    match = await match_store.get_match(match_external_id)
    if not match:
        raise WagerRejectedError(f"Match not found: {match_external_id}")
    if match.get("completed") or match.get("calculated"):
        raise WagerRejectedError("Match is already finished.")
    if ensure_utc(match["commence_time"]) <= utcnow():
        raise WagerRejectedError("Cannot place a wager on a match that has already started.")

    odds = match.get(_ODDS_FIELD[outcome])
    if not odds or odds <= 0:
        raise WagerRejectedError(f"No odds available for {outcome.value}.")

    now = utcnow()
    wager_doc = WagerInDB(
        user_id=user_id,
        match_external_id=match_external_id,
        selection=outcome,
        stake=stake,
        odds=float(odds),
        potential_payout=round(stake * float(odds), 2),
        status=WagerStatus.pending,
        home_team=match.get("home_team", ""),
        away_team=match.get("away_team", ""),
        created_at=now,
        updated_at=now,
    ).model_dump()

    async with await _db.client.start_session() as session:
        async with session.start_transaction():
            user = await _db.db.users.find_one_and_update(
                {**_user_filter(user_id), "balance": {"$gte": stake}},
                {"$inc": {"balance": -stake}, "$set": {"updated_at": now}},
                return_document=True,
                session=session,
            )
            if not user:
                raise InsufficientBalanceError("Not enough balance for this stake.")

            inserted = await _db.db.wagers.insert_one(wager_doc, session=session)
            audit = BalanceTransactionInDB(
                user_id=user_id,
                type=TransactionType.WAGER_PLACED,
                amount=-stake,
                reference_id=str(inserted.inserted_id),
                description=(
                    f"Wager {outcome.value} on {wager_doc['home_team']} vs "
                    f"{wager_doc['away_team']} @ {wager_doc['odds']:.2f}"
                ),
                created_at=now,
            )
            await _db.db.balance_transactions.insert_one(audit.model_dump(), session=session)

    logger.info(
        "Wager placed: user=%s match=%s selection=%s stake=%.2f odds=%.2f new_balance=%.2f",
        user_id, match_external_id, outcome.value, stake, wager_doc["odds"], user["balance"],
    )
    return WagerResponse(
        id=str(inserted.inserted_id),
        match_external_id=match_external_id,
        selection=outcome,
        stake=stake,
        odds=wager_doc["odds"],
        potential_payout=wager_doc["potential_payout"],
        status=WagerStatus.pending,
        home_team=wager_doc["home_team"],
        away_team=wager_doc["away_team"],
        created_at=now,
        new_balance=user["balance"],
    )
