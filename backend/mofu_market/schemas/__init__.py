"""Pydantic value types passed in and out of the engine."""

from mofu_market.schemas.settlement import (
    ResolutionState,
    BetSnapshot,
    PricePoint,
    BetPayout,
    BalanceDelta,
    SettlementResult,
)
from mofu_market.schemas.call import CallState, CallRecord

__all__ = [
    "ResolutionState",
    "BetSnapshot",
    "PricePoint",
    "BetPayout",
    "BalanceDelta",
    "SettlementResult",
    "CallState",
    "CallRecord",
]
