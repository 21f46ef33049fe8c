"""
backend/app/routers/engine.py

Purpose:
    HTTP trigger surface for the engine: manual odds/scores sync, settlement,
    upcoming-match listing, wager placement and operational status.

Dependencies:
    - app.workers.odds_poller
    - app.workers.scores_poller
    - app.workers.match_settler
    - app.services.match_store
    - app.services.wager_service
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status

from app.models.engine import SettleSummary, SyncSummary
from app.models.match import MatchResponse, db_to_response
from app.models.wager import WagerCreate, WagerResponse
from app.providers.odds_api import odds_provider
from app.services.errors import (
    FeedConfigurationError,
    FeedError,
    InsufficientBalanceError,
    WagerRejectedError,
)
from app.services.match_store import list_upcoming_matches
from app.services.wager_service import place_wager
from app.utils import ensure_utc
from app.workers import match_settler, odds_poller, scores_poller
from app.workers._state import get_worker_states

logger = logging.getLogger("freebet.engine")
router = APIRouter(prefix="/api/engine", tags=["engine"])


async def _run_sync(name: str, fn) -> SyncSummary:
    try:
        return await fn()
    except FeedConfigurationError as exc:
        logger.error("%s not configured: %s", name, exc)
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    except FeedError as exc:
        logger.error("%s failed: %s", name, exc)
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail="Feed request failed.")


@router.post("/odds/sync", response_model=SyncSummary)
async def trigger_odds_sync():
    return await _run_sync("Odds sync", odds_poller.sync_odds)


@router.post("/scores/sync", response_model=SyncSummary)
async def trigger_scores_sync():
    return await _run_sync("Scores sync", scores_poller.sync_scores)


@router.post("/settle", response_model=SettleSummary)
async def trigger_settlement():
    """Settle every completed, unsettled match with a full score."""
    return await match_settler.settle()


@router.get("/matches", response_model=list[MatchResponse])
async def upcoming_matches(limit: int = Query(200, ge=1, le=500)):
    docs = await list_upcoming_matches(limit=limit)
    return [db_to_response(doc) for doc in docs]


@router.post("/wagers", response_model=WagerResponse, status_code=status.HTTP_201_CREATED)
async def create_wager(body: WagerCreate):
    try:
        return await place_wager(
            body.user_id, body.match_external_id, body.selection.value, body.stake,
        )
    except InsufficientBalanceError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    except WagerRejectedError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.get("/status")
async def engine_status():
    """Last run per trigger plus the feed quota as last reported."""
    states = await get_worker_states()
    usage = odds_provider.api_usage
    return {
        "workers": {
            wid: {
                "last_synced": ensure_utc(state["synced_at"]).isoformat() if state["synced_at"] else None,
                "last_metrics": state["last_metrics"],
            }
            for wid, state in states.items()
        },
        "feed": {
            "status": "circuit_open" if odds_provider.circuit_open else "ok",
            "requests_used": usage.requests_used,
            "requests_remaining": usage.requests_remaining,
        },
    }
