"""Summaries returned by the trigger operations (odds sync, scores sync, settle)."""

from typing import List, Optional

from pydantic import BaseModel

from app.models.match import MatchOutcome


class UsageStats(BaseModel):
    """Provider-reported quota counters (x-requests-used / x-requests-remaining)."""
    requests_used: Optional[int] = None
    requests_remaining: Optional[int] = None


class SyncSummary(BaseModel):
    task: str  # "odds:sync" | "scores:sync"
    fetched: int = 0
    created: int = 0
    updated: int = 0
    skipped: int = 0
    usage: UsageStats = UsageStats()
    duration_ms: int = 0


class SettledMatch(BaseModel):
    external_id: str
    home_team: str
    away_team: str
    score: str  # "2-1"
    result: MatchOutcome
    won: int = 0
    lost: int = 0
    credited: float = 0.0


class SettleSummary(BaseModel):
    task: str = "settle"
    settled_count: int = 0
    failed: int = 0
    matches: List[SettledMatch] = []
    duration_ms: int = 0
