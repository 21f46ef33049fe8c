"""Wager and ledger models: wager lifecycle plus the balance audit trail."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from app.models.match import MatchOutcome


class WagerStatus(str, Enum):
    pending = "pending"
    won = "won"
    lost = "lost"


class WagerInDB(BaseModel):
    """One placed bet on a single match outcome."""
    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    match_external_id: str
    selection: MatchOutcome
    stake: float
    odds: float  # frozen at placement
    potential_payout: float  # stake * odds, immune to later odds changes
    status: WagerStatus = WagerStatus.pending
    home_team: str = ""
    away_team: str = ""
    settlement_token: Optional[str] = None
    settled_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class WagerCreate(BaseModel):
    user_id: str
    match_external_id: str
    selection: MatchOutcome
    stake: float = Field(gt=0)


class WagerResponse(BaseModel):
    id: str
    match_external_id: str
    selection: MatchOutcome
    stake: float
    odds: float
    potential_payout: float
    status: WagerStatus
    home_team: str = ""
    away_team: str = ""
    created_at: datetime
    new_balance: Optional[float] = None


# ---------- Balance transactions ----------

class TransactionType(str, Enum):
    WAGER_PLACED = "WAGER_PLACED"
    WAGER_WON = "WAGER_WON"


class BalanceTransactionInDB(BaseModel):
    """Immutable audit trail for every balance movement."""
    model_config = ConfigDict(use_enum_values=True)

    user_id: str
    type: TransactionType
    amount: float  # positive = credit, negative = debit
    reference_type: str = "wager"
    reference_id: str
    description: str
    created_at: datetime
