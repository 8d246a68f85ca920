"""
Settlement state machine.

    OPEN --confirm(outcome)--> RESOLVED(outcome) --reverse--> OPEN

Both transitions are pure: they take the event state and a snapshot of its
bets and return a SettlementResult describing balance deltas and price-history
changes. Persisting the result is up to the caller (see stores.apply_settlement).

Stakes are debited when a bet is placed, so confirmation only credits. Each
winning bet is credited its payout (own stake plus its share of the losing
pool). If nobody backed the winning outcome the event is voided and every bet
is refunded its stake. Reversal recomputes the same payouts and debits them
back, which is exact because distribute() is deterministic and no bets can be
placed while the event is resolved. By default reversal also hands every
losing bet its stake back; pass refund_losers=False for a strict inverse that
leaves balances exactly as they were before confirmation.
"""

import logging
from datetime import datetime
from typing import Iterable, Optional, Sequence

from mofu_market import pricing
from mofu_market.errors import EventNotOpen, EventNotResolved
from mofu_market.payouts import check_conservation, distribute
from mofu_market.schemas.settlement import (
    BalanceDelta,
    BetPayout,
    BetSnapshot,
    ResolutionState,
    SettlementResult,
)

logger = logging.getLogger(__name__)


def _ordered(bets: Iterable[BetSnapshot]) -> list[BetSnapshot]:
    return sorted(bets, key=lambda b: b.placement_order)


def _compute_payouts(bets: Sequence[BetSnapshot], outcome: str):
    """Return (winning_total, losing_total, payouts, voided) for a snapshot."""
    winning = [b for b in bets if b.outcome_name == outcome]
    total_winning = sum(b.stake for b in winning)
    total_losing = sum(b.stake for b in bets) - total_winning

    if total_winning == 0:
        # No winners to pay: every stake goes back to its bettor.
        credited = list(bets)
        amounts = distribute([b.stake for b in credited], 0, total_losing)
        voided = bool(credited)
    else:
        credited = winning
        amounts = distribute([b.stake for b in credited], total_winning, total_losing)
        voided = False

    if bets:
        check_conservation(amounts, total_winning + total_losing)

    payouts = [
        BetPayout(bet_id=b.id, member_id=b.member_id, stake=b.stake, payout=amount)
        for b, amount in zip(credited, amounts)
    ]
    return total_winning, total_losing, payouts, voided


def _aggregate(entries: Iterable[tuple], sign: int) -> list[BalanceDelta]:
    """Fold (member_id, amount) pairs into one delta per member."""
    totals: dict[str, int] = {}
    for member_id, amount in entries:
        totals[member_id] = totals.get(member_id, 0) + amount
    return [
        BalanceDelta(member_id=member_id, amount=sign * amount)
        for member_id, amount in totals.items()
        if amount
    ]


def confirm(
    state: ResolutionState,
    outcome: str,
    outcome_names: Sequence[str],
    bets: Iterable[BetSnapshot],
    at: Optional[datetime] = None,
) -> SettlementResult:
    """Resolve an open event in favour of ``outcome``.

    Raises:
        EventNotOpen: If the event is already resolved.
        UnknownOutcome: If outcome is not one of outcome_names.
        EmptyOutcomeSet: If the event has no outcomes.
        InvariantViolation: If payouts do not sum to the pool.
    """
    if state != ResolutionState.OPEN:
        raise EventNotOpen("Event is already resolved")

    final_prices = pricing.terminal_prices(outcome_names, outcome)
    snapshot = _ordered(bets)
    total_winning, total_losing, payouts, voided = _compute_payouts(snapshot, outcome)

    logger.debug(
        "confirm %s: %d bets, winning=%d losing=%d voided=%s",
        outcome, len(snapshot), total_winning, total_losing, voided,
    )
    return SettlementResult(
        state=ResolutionState.RESOLVED,
        final_outcome=outcome,
        total_winning_stake=total_winning,
        total_losing_stake=total_losing,
        total_pool=total_winning + total_losing,
        voided=voided,
        payouts=payouts,
        balance_deltas=_aggregate(((p.member_id, p.payout) for p in payouts), 1),
        price_points=pricing.snapshot(final_prices, at),
    )


def reverse(
    state: ResolutionState,
    final_outcome: Optional[str],
    bets: Iterable[BetSnapshot],
    refund_losers: bool = True,
) -> SettlementResult:
    """Undo a confirmation, returning the event to OPEN.

    Every credit made by confirm() is debited back and the terminal price
    points are flagged for removal. With refund_losers (the default), losing
    bets are also credited their stake when the event had both winners and
    losers.

    Raises:
        EventNotResolved: If the event is not resolved.
    """
    if state != ResolutionState.RESOLVED or final_outcome is None:
        raise EventNotResolved("Event is not resolved or has no confirmed outcome")

    snapshot = _ordered(bets)
    total_winning, total_losing, payouts, voided = _compute_payouts(snapshot, final_outcome)

    deltas = _aggregate(((p.member_id, p.payout) for p in payouts), -1)
    if refund_losers and total_winning > 0 and total_losing > 0:
        losers = [(b.member_id, b.stake) for b in snapshot if b.outcome_name != final_outcome]
        # Re-fold so a member who both won and lost gets a single net delta.
        entries = [(d.member_id, d.amount) for d in deltas]
        entries.extend(losers)
        deltas = _aggregate(entries, 1)

    logger.debug(
        "reverse %s: %d bets, refund_losers=%s", final_outcome, len(snapshot), refund_losers
    )
    return SettlementResult(
        state=ResolutionState.OPEN,
        final_outcome=None,
        total_winning_stake=total_winning,
        total_losing_stake=total_losing,
        total_pool=total_winning + total_losing,
        voided=voided,
        payouts=payouts,
        balance_deltas=deltas,
        remove_terminal_prices=True,
    )
