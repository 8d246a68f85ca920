"""Settlement snapshots and results."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ResolutionState(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"


class BetSnapshot(BaseModel):
    id: str
    member_id: str
    outcome_name: str
    stake: int = Field(gt=0)
    placement_order: int = 0

    class Config:
        frozen = True
        from_attributes = True


class PricePoint(BaseModel):
    outcome_name: str
    price: float
    created_at: datetime

    class Config:
        frozen = True


class BetPayout(BaseModel):
    bet_id: str
    member_id: str
    stake: int
    payout: int

    class Config:
        frozen = True


class BalanceDelta(BaseModel):
    member_id: str
    amount: int  # positive = credit, negative = debit

    class Config:
        frozen = True


class SettlementResult(BaseModel):
    """Everything a collaborator needs to persist one confirm or reverse."""

    state: ResolutionState
    final_outcome: Optional[str]
    total_winning_stake: int = 0
    total_losing_stake: int = 0
    total_pool: int = 0
    voided: bool = False  # nobody backed the winner; every stake refunded
    payouts: list[BetPayout] = []
    balance_deltas: list[BalanceDelta] = []
    price_points: list[PricePoint] = []  # to append
    remove_terminal_prices: bool = False

    class Config:
        frozen = True

    @property
    def total_moved(self) -> int:
        return sum(d.amount for d in self.balance_deltas)
