"""
Proportional payout distribution with largest-remainder rounding.

Each winner's exact entitlement is

    stake + (stake / W) * L  =  stake * (W + L) / W

where W is the total winning stake and L the total losing stake. Floors are
paid first and the leftover units go, one each, to the winners with the
largest fractional remainder (earlier winners first on ties), so the payouts
always sum to W + L exactly.

All arithmetic is integer: the fractional part of stake * (W + L) / W is
compared through its numerator modulo W, which shares a denominator across
winners.
"""

from typing import Sequence

from mofu_market.errors import InvariantViolation


def distribute(
    winning_stakes: Sequence[int], total_winning_stake: int, total_losing_stake: int
) -> list[int]:
    """Split the pool among winners.

    Args:
        winning_stakes: Stake of each winning bet, in placement order.
        total_winning_stake: Sum of the winning stakes.
        total_losing_stake: Sum of the losing stakes.

    Returns:
        Integer payouts in the same order as winning_stakes. Each payout
        already includes the winner's own stake.
    """
    if total_winning_stake == 0 or total_losing_stake == 0:
        return list(winning_stakes)

    pool = total_winning_stake + total_losing_stake
    floors = []
    fractions = []
    for stake in winning_stakes:
        whole, frac = divmod(stake * pool, total_winning_stake)
        floors.append(whole)
        fractions.append(frac)

    remainder = pool - sum(floors)
    # Stable sort keeps input order among equal remainders.
    ranked = sorted(range(len(floors)), key=lambda i: -fractions[i])
    for i in ranked[:remainder]:
        floors[i] += 1
    return floors


def check_conservation(payouts: Sequence[int], total_pool: int) -> None:
    """Raise InvariantViolation unless payouts add up to the pool."""
    paid = sum(payouts)
    if paid != total_pool:
        raise InvariantViolation(f"Payouts sum to {paid}, pool is {total_pool}")
