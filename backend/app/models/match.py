from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel

from app.utils import as_utc


class MatchOutcome(str, Enum):
    home = "home"
    draw = "draw"
    away = "away"


class FeedKind(str, Enum):
    """Which external collection a record came from."""
    odds = "odds"
    scores = "scores"


@dataclass(frozen=True)
class MatchFact:
    """Normalized, partial view of one fixture taken from a single feed record.

    ``None`` means the feed did not supply the field (absent), never zero.
    Odds facts leave scores and ``completed`` absent; score facts leave odds
    absent.
    """
    source: FeedKind
    external_id: str
    home_team: str
    away_team: str
    commence_time: datetime
    home_odds: Optional[float] = None
    draw_odds: Optional[float] = None
    away_odds: Optional[float] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    completed: Optional[bool] = None

    @property
    def has_full_odds(self) -> bool:
        return None not in (self.home_odds, self.draw_odds, self.away_odds)

    @property
    def has_full_score(self) -> bool:
        return self.home_score is not None and self.away_score is not None


# ---------------------------------------------------------------------------
# API response models
# ---------------------------------------------------------------------------


class MatchResponse(BaseModel):
    """Match data returned to the trigger caller."""
    id: str
    external_id: str
    home_team: str
    away_team: str
    commence_time: datetime
    home_odds: Optional[float] = None
    draw_odds: Optional[float] = None
    away_odds: Optional[float] = None
    completed: bool = False
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    calculated: bool = False
    result: Optional[MatchOutcome] = None


def db_to_response(doc: dict) -> MatchResponse:
    """Convert a MongoDB match document to an API response."""
    return MatchResponse(
        id=str(doc["_id"]),
        external_id=doc["external_id"],
        home_team=doc.get("home_team", ""),
        away_team=doc.get("away_team", ""),
        commence_time=as_utc(doc["commence_time"]),
        home_odds=doc.get("home_odds"),
        draw_odds=doc.get("draw_odds"),
        away_odds=doc.get("away_odds"),
        completed=bool(doc.get("completed", False)),
        home_score=doc.get("home_score"),
        away_score=doc.get("away_score"),
        calculated=bool(doc.get("calculated", False)),
        result=doc.get("result"),
    )
