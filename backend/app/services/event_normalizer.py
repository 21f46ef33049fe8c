"""
backend/app/services/event_normalizer.py

Purpose:
    Convert raw The Odds API records into MatchFact values. Pure functions:
    no I/O, no state. Fields a feed cannot supply are left absent (None) so the
    store's merge never mistakes "unknown" for zero.

Dependencies:
    - app.models.match
    - app.utils
"""

from __future__ import annotations

import math
from typing import Any, Optional

from app.models.match import FeedKind, MatchFact
from app.services.errors import MalformedRecordError
from app.utils import parse_utc

DRAW_LABEL = "Draw"


def _identity(record: Any) -> tuple[str, str, str]:
    if not isinstance(record, dict):
        raise MalformedRecordError(f"Record is not an object: {type(record).__name__}")

    external_id = str(record.get("id") or "").strip()
    if not external_id:
        raise MalformedRecordError("Record has no id")

    home_team = str(record.get("home_team") or "").strip()
    away_team = str(record.get("away_team") or "").strip()
    if not home_team or not away_team:
        raise MalformedRecordError("Record has no team names", external_id=external_id)
    return external_id, home_team, away_team


def _commence_time(record: dict, external_id: str):
    try:
        return parse_utc(record.get("commence_time"))
    except (TypeError, ValueError) as exc:
        raise MalformedRecordError(
            f"Unparseable commence_time {record.get('commence_time')!r}",
            external_id=external_id,
        ) from exc


def _price(value: Any) -> Optional[float]:
    """A decimal price, or None when the quote is unusable."""
    if isinstance(value, bool):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(price) or price <= 0:
        return None
    return price


def parse_score(value: Any) -> Optional[int]:
    """Parse one side's score string; missing, empty or garbage -> None (not 0)."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    text = str(value).strip()
    if not text:
        return None
    try:
        score = int(text)
    except ValueError:
        return None
    return score if score >= 0 else None


def extract_h2h_odds(
    bookmakers: Any, home_team: str, away_team: str,
) -> tuple[Optional[float], Optional[float], Optional[float]]:
    """Map the first bookmaker's first market onto (home, draw, away) prices.

    The request is pinned to one bookmaker and the h2h market, so the first
    market is the match-winner market. Outcomes named after neither team nor
    the draw label are ignored.
    """
    if not isinstance(bookmakers, list) or not bookmakers:
        return None, None, None
    first = bookmakers[0] if isinstance(bookmakers[0], dict) else {}
    markets = first.get("markets") or []
    if not isinstance(markets, list) or not markets or not isinstance(markets[0], dict):
        return None, None, None

    outcomes = markets[0].get("outcomes")
    if not isinstance(outcomes, list):
        outcomes = []

    home = draw = away = None
    for outcome in outcomes:
        if not isinstance(outcome, dict):
            continue
        name = outcome.get("name")
        price = _price(outcome.get("price"))
        if name == home_team:
            home = price
        elif name == away_team:
            away = price
        elif name == DRAW_LABEL:
            draw = price
    return home, draw, away


def normalize_odds_event(record: Any) -> MatchFact:
    """Odds-feed record -> MatchFact carrying identity, kickoff and prices only."""
    external_id, home_team, away_team = _identity(record)
    commence_time = _commence_time(record, external_id)
    home_odds, draw_odds, away_odds = extract_h2h_odds(
        record.get("bookmakers"), home_team, away_team,
    )
    return MatchFact(
        source=FeedKind.odds,
        external_id=external_id,
        home_team=home_team,
        away_team=away_team,
        commence_time=commence_time,
        home_odds=home_odds,
        draw_odds=draw_odds,
        away_odds=away_odds,
    )


def normalize_score_event(record: Any) -> MatchFact:
    """Scores-feed record -> MatchFact carrying identity, scores and completion."""
    external_id, home_team, away_team = _identity(record)
    commence_time = _commence_time(record, external_id)

    scores = record.get("scores")
    if not isinstance(scores, list):
        scores = []

    home_score = away_score = None
    for entry in scores:
        if not isinstance(entry, dict):
            continue
        if entry.get("name") == home_team:
            home_score = parse_score(entry.get("score"))
        elif entry.get("name") == away_team:
            away_score = parse_score(entry.get("score"))

    return MatchFact(
        source=FeedKind.scores,
        external_id=external_id,
        home_team=home_team,
        away_team=away_team,
        commence_time=commence_time,
        home_score=home_score,
        away_score=away_score,
        completed=bool(record.get("completed", False)),
    )


def normalize_event(record: Any, source: FeedKind) -> MatchFact:
    if source is FeedKind.odds:
        return normalize_odds_event(record)
    return normalize_score_event(record)
