"""
Stake-pool pricing with Laplace (add-one) smoothing.

Key formula:
    prob(o) = (stake(o) + 1) / (T + n)

Where:
    stake(o) = total mofus staked on outcome o
    T        = total mofus staked on the event
    n        = number of outcomes

Price per share is defined as the probability. Smoothing keeps every price
strictly inside (0, 1): an empty pool is uniform and a one-sided pool only
approaches 1.
"""

from datetime import datetime, timezone
from typing import Iterable, Mapping, Optional, Tuple

from mofu_market.errors import EmptyOutcomeSet, InvalidStake, UnknownOutcome
from mofu_market.schemas.settlement import BetSnapshot, PricePoint

# Prices written at resolution. Smoothed prices only reach these for a
# single-outcome event, which always prices at 1.
TERMINAL_PRICES = (0.0, 1.0)


def price(stakes: Mapping[str, int]) -> dict[str, float]:
    """Compute the price (probability) of every outcome.

    Args:
        stakes: Outcome name -> non-negative total stake. Iteration order is
            preserved in the result.

    Returns:
        Outcome name -> probability in (0, 1), summing to 1.

    Raises:
        EmptyOutcomeSet: If there are no outcomes.
    """
    if not stakes:
        raise EmptyOutcomeSet("Cannot price an event with no outcomes")

    total = sum(stakes.values())
    denom = total + len(stakes)
    return {name: (stake + 1) / denom for name, stake in stakes.items()}


def stake_pool(outcome_names: Iterable[str], bets: Iterable[BetSnapshot]) -> dict[str, int]:
    """Sum bet stakes per outcome, in outcome order.

    Bets on names outside the outcome set are ignored.
    """
    pool = {name: 0 for name in outcome_names}
    for bet in bets:
        if bet.outcome_name in pool:
            pool[bet.outcome_name] += bet.stake
    return pool


def quote_bet(
    stakes: Mapping[str, int], outcome_name: str, stake: int
) -> Tuple[float, dict[str, int], dict[str, float]]:
    """Quote a bet against the current pool without placing it.

    Returns:
        Tuple of (price_at_bet, new_stakes, new_prices). price_at_bet is the
        price before the bet is added to the pool.

    Raises:
        UnknownOutcome: If outcome_name is not in the pool.
        InvalidStake: If stake is not a positive integer.
    """
    if outcome_name not in stakes:
        raise UnknownOutcome(f"Outcome '{outcome_name}' not found in event")
    if isinstance(stake, bool) or not isinstance(stake, int) or stake <= 0:
        raise InvalidStake(f"Stake must be a positive integer, got {stake!r}")

    price_at_bet = price(stakes)[outcome_name]
    new_stakes = dict(stakes)
    new_stakes[outcome_name] += stake
    return price_at_bet, new_stakes, price(new_stakes)


def terminal_prices(outcome_names: Iterable[str], winning_outcome: str) -> dict[str, float]:
    """Final prices written at resolution: 1 for the winner, 0 for the rest."""
    names = list(outcome_names)
    if not names:
        raise EmptyOutcomeSet("Cannot resolve an event with no outcomes")
    if winning_outcome not in names:
        raise UnknownOutcome(f"Outcome '{winning_outcome}' not found in event")
    return {name: 1.0 if name == winning_outcome else 0.0 for name in names}


def is_terminal_price(value: float) -> bool:
    return value in TERMINAL_PRICES


def snapshot(prices: Mapping[str, float], at: Optional[datetime] = None) -> list[PricePoint]:
    """One price point per outcome, all sharing a timestamp."""
    at = at or datetime.now(timezone.utc)
    return [PricePoint(outcome_name=name, price=p, created_at=at) for name, p in prices.items()]


def validate_prices_sum_to_one(stakes: Mapping[str, int], tolerance: float = 1e-9) -> bool:
    """Verify that prices sum to 1 within tolerance."""
    return abs(sum(price(stakes).values()) - 1.0) < tolerance
