"""Settlement service — confirming outcomes and undoing confirmations.

Each operation locks the event, snapshots its bets, runs the pure settlement
engine and writes the result through the stores in one transaction. If any
step fails (a payout invariant, a debit that would go negative) nothing is
committed.
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from mofu_market import settlement
from mofu_market.config import settings
from mofu_market.database import atomic
from mofu_market.schemas.settlement import ResolutionState, SettlementResult
from mofu_market.stores import apply_settlement, sql_stores

logger = logging.getLogger(__name__)


def confirm_outcome(db: Session, event_id: str, outcome: str) -> SettlementResult:
    """Resolve an event and pay winners.

    The outcome does not have to match any call on the event.
    """
    stores = sql_stores(db)
    with atomic(db):
        event = stores.events.lock(event_id)
        result = settlement.confirm(
            ResolutionState(event.status),
            outcome,
            stores.events.outcome_names(event_id),
            stores.bets.bets_for_event(event_id),
        )
        apply_settlement(event_id, result, stores.balances, stores.prices, stores.events)

    logger.info(
        "event %s resolved '%s': pool=%d winners=%d voided=%s",
        event_id, outcome, result.total_pool, len(result.payouts), result.voided,
    )
    return result


def reverse_confirmed_outcome(
    db: Session, event_id: str, refund_losers: Optional[bool] = None
) -> SettlementResult:
    """Undo a confirmation and reopen the event.

    refund_losers defaults to the REFUND_LOSERS_ON_REVERSAL setting.
    """
    if refund_losers is None:
        refund_losers = settings.REFUND_LOSERS_ON_REVERSAL

    stores = sql_stores(db)
    with atomic(db):
        event = stores.events.lock(event_id)
        previous = event.final_outcome
        result = settlement.reverse(
            ResolutionState(event.status),
            event.final_outcome,
            stores.bets.bets_for_event(event_id),
            refund_losers=refund_losers,
        )
        apply_settlement(event_id, result, stores.balances, stores.prices, stores.events)

    logger.info(
        "event %s resolution '%s' reversed: %d balances adjusted", event_id, previous, len(result.balance_deltas)
    )
    return result
