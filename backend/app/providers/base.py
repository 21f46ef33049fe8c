from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from app.models.engine import UsageStats


@dataclass
class FeedBatch:
    """Raw records of one feed fetch plus the provider's quota counters."""
    records: list[dict[str, Any]]
    usage: UsageStats = field(default_factory=UsageStats)


class BaseFeedProvider(ABC):
    """Abstract base class for the odds/scores data feed."""

    @abstractmethod
    async def fetch_odds(self) -> FeedBatch:
        """Fetch upcoming fixtures with bookmaker prices.

        Each record carries at least id, home_team, away_team, commence_time
        and a ``bookmakers`` list of ``{markets: [{outcomes: [{name, price}]}]}``.
        """
        ...

    @abstractmethod
    async def fetch_scores(self) -> FeedBatch:
        """Fetch in-progress and recently finished fixtures.

        Each record carries id, home_team, away_team, commence_time,
        ``completed`` and a ``scores`` list of ``{name, score}`` (score is a
        string, possibly empty) or null.
        """
        ...
