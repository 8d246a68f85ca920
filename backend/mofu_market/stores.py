"""
Collaborator stores the engine reads from and writes through.

The engine itself is pure; these interfaces are what a transactional caller
hands it. The Sql* implementations work inside the caller's Session and never
commit, so one service call stays one transaction.

Balance updates are single UPDATE statements (balance = balance + delta), not
read-then-write, so concurrent bets and settlements on the same member cannot
lose an update.
"""

import logging
from datetime import datetime, timezone
from typing import NamedTuple, Optional, Protocol, Sequence

from sqlalchemy import func
from sqlalchemy.orm import Session

from mofu_market import pricing
from mofu_market.errors import (
    CallNotFound,
    EventNotFound,
    InsufficientBalance,
    MemberNotFound,
)
from mofu_market.models.bet import Bet
from mofu_market.models.event import Event
from mofu_market.models.event_call import EventCall
from mofu_market.models.event_outcome import EventOutcome
from mofu_market.models.party_member import PartyMember
from mofu_market.models.price_history import OutcomePriceHistory
from mofu_market.schemas.call import CallRecord
from mofu_market.schemas.settlement import (
    BetSnapshot,
    PricePoint,
    ResolutionState,
    SettlementResult,
)

logger = logging.getLogger(__name__)


class BetStore(Protocol):
    def bets_for_event(self, event_id: str) -> list[BetSnapshot]: ...


class BalanceStore(Protocol):
    def credit(self, member_id: str, amount: int) -> None: ...

    def debit(self, member_id: str, amount: int) -> None: ...


class PriceHistoryStore(Protocol):
    def append(self, event_id: str, points: Sequence[PricePoint]) -> None: ...

    def remove_terminal(self, event_id: str) -> int: ...


class EventStore(Protocol):
    def get_state(self, event_id: str) -> tuple[ResolutionState, Optional[str]]: ...

    def set_state(self, event_id: str, state: ResolutionState, final_outcome: Optional[str]) -> None: ...

    def outcome_names(self, event_id: str) -> list[str]: ...

    def calls(self, event_id: str) -> list[CallRecord]: ...

    def add_call(self, call: CallRecord) -> None: ...

    def mark_call_reversed(self, call_id: str) -> None: ...


# ── SQLAlchemy implementations ───────────────────────────────────────────────


class SqlBetStore:
    def __init__(self, db: Session):
        self.db = db

    def bets_for_event(self, event_id: str) -> list[BetSnapshot]:
        bets = (
            self.db.query(Bet)
            .filter(Bet.event_id == event_id)
            .order_by(Bet.placement_order.asc())
            .all()
        )
        return [
            BetSnapshot(
                id=b.id,
                member_id=b.party_member_id,
                outcome_name=b.outcome_name,
                stake=b.stake_mofus,
                placement_order=b.placement_order,
            )
            for b in bets
        ]

    def add_bet(
        self, event_id: str, member_id: str, outcome_name: str, stake: int, price_at_bet: float
    ) -> Bet:
        """Insert a bet at the next placement position for its event."""
        last = (
            self.db.query(func.coalesce(func.max(Bet.placement_order), 0))
            .filter(Bet.event_id == event_id)
            .scalar()
        )
        bet = Bet(
            event_id=event_id,
            party_member_id=member_id,
            outcome_name=outcome_name,
            stake_mofus=stake,
            price_at_bet=price_at_bet,
            placement_order=last + 1,
        )
        self.db.add(bet)
        self.db.flush()
        return bet


class SqlBalanceStore:
    def __init__(self, db: Session):
        self.db = db

    def _apply(self, member_id: str, delta: int, guard: bool) -> int:
        query = self.db.query(PartyMember).filter(PartyMember.id == member_id)
        if guard:
            query = query.filter(PartyMember.balance_mofus >= -delta)
        return query.update(
            {PartyMember.balance_mofus: PartyMember.balance_mofus + delta},
            synchronize_session="fetch",
        )

    def _exists(self, member_id: str) -> bool:
        return self.db.query(PartyMember.id).filter(PartyMember.id == member_id).first() is not None

    def credit(self, member_id: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Credit amount must be non-negative")
        if not self._apply(member_id, amount, guard=False):
            raise MemberNotFound(f"Member {member_id} not found")

    def debit(self, member_id: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("Debit amount must be non-negative")
        if not self._apply(member_id, -amount, guard=True):
            if not self._exists(member_id):
                raise MemberNotFound(f"Member {member_id} not found")
            raise InsufficientBalance(f"Member {member_id} cannot cover {amount} mofus")

    def balance(self, member_id: str) -> int:
        value = (
            self.db.query(PartyMember.balance_mofus)
            .filter(PartyMember.id == member_id)
            .scalar()
        )
        if value is None:
            raise MemberNotFound(f"Member {member_id} not found")
        return value


class SqlPriceHistoryStore:
    def __init__(self, db: Session):
        self.db = db

    def append(self, event_id: str, points: Sequence[PricePoint]) -> None:
        for p in points:
            self.db.add(OutcomePriceHistory(
                event_id=event_id,
                outcome_name=p.outcome_name,
                price=p.price,
                created_at=p.created_at,
            ))
        self.db.flush()

    def remove_terminal(self, event_id: str) -> int:
        """Delete the resolution snapshot of an event.

        That is the latest snapshot, provided every point in it is a terminal
        price. Earlier snapshots are kept even when they price at 1, as every
        snapshot of a single-outcome event does.
        """
        latest = (
            self.db.query(func.max(OutcomePriceHistory.created_at))
            .filter(OutcomePriceHistory.event_id == event_id)
            .scalar()
        )
        if latest is None:
            return 0

        points = (
            self.db.query(OutcomePriceHistory)
            .filter(
                OutcomePriceHistory.event_id == event_id,
                OutcomePriceHistory.created_at == latest,
            )
            .all()
        )
        if not all(pricing.is_terminal_price(p.price) for p in points):
            return 0

        for p in points:
            self.db.delete(p)
        self.db.flush()
        return len(points)

    def history(self, event_id: str) -> list[OutcomePriceHistory]:
        return (
            self.db.query(OutcomePriceHistory)
            .filter(OutcomePriceHistory.event_id == event_id)
            .order_by(OutcomePriceHistory.created_at.asc())
            .all()
        )


class SqlEventStore:
    def __init__(self, db: Session):
        self.db = db

    def _event(self, event_id: str, lock: bool = False) -> Event:
        query = self.db.query(Event).filter(Event.id == event_id)
        if lock:
            query = query.with_for_update()
        event = query.first()
        if not event:
            raise EventNotFound(f"Event {event_id} not found")
        return event

    def lock(self, event_id: str) -> Event:
        """Row-lock the event for the rest of the transaction."""
        return self._event(event_id, lock=True)

    def get_state(self, event_id: str) -> tuple[ResolutionState, Optional[str]]:
        event = self._event(event_id)
        return ResolutionState(event.status), event.final_outcome

    def set_state(self, event_id: str, state: ResolutionState, final_outcome: Optional[str]) -> None:
        event = self._event(event_id)
        event.status = state.value
        event.final_outcome = final_outcome
        event.resolved_at = datetime.now(timezone.utc) if state == ResolutionState.RESOLVED else None
        self.db.flush()

    def outcome_names(self, event_id: str) -> list[str]:
        rows = (
            self.db.query(EventOutcome.name)
            .filter(EventOutcome.event_id == event_id)
            .order_by(EventOutcome.display_order.asc())
            .all()
        )
        return [name for (name,) in rows]

    def calls(self, event_id: str) -> list[CallRecord]:
        rows = (
            self.db.query(EventCall)
            .filter(EventCall.event_id == event_id)
            .order_by(EventCall.created_at.asc())
            .all()
        )
        return [_call_record(c) for c in rows]

    def get_call(self, call_id: str) -> CallRecord:
        call = self.db.query(EventCall).filter(EventCall.id == call_id).first()
        if not call:
            raise CallNotFound(f"Call {call_id} not found")
        return _call_record(call)

    def add_call(self, call: CallRecord) -> None:
        self.db.add(EventCall(
            id=call.id,
            event_id=call.event_id,
            party_member_id=call.proposer_id,
            proposed_outcome=call.proposed_outcome,
            justification=call.justification,
            is_reversed=call.is_reversed,
            created_at=call.created_at,
        ))
        self.db.flush()

    def mark_call_reversed(self, call_id: str) -> None:
        call = self.db.query(EventCall).filter(EventCall.id == call_id).first()
        if not call:
            raise CallNotFound(f"Call {call_id} not found")
        call.is_reversed = True
        self.db.flush()


def _call_record(call: EventCall) -> CallRecord:
    return CallRecord(
        id=call.id,
        event_id=call.event_id,
        proposer_id=call.party_member_id,
        proposed_outcome=call.proposed_outcome,
        justification=call.justification,
        is_reversed=call.is_reversed,
        created_at=call.created_at,
    )


class Stores(NamedTuple):
    bets: SqlBetStore
    balances: SqlBalanceStore
    prices: SqlPriceHistoryStore
    events: SqlEventStore


def sql_stores(db: Session) -> Stores:
    return Stores(
        bets=SqlBetStore(db),
        balances=SqlBalanceStore(db),
        prices=SqlPriceHistoryStore(db),
        events=SqlEventStore(db),
    )


def apply_settlement(
    event_id: str,
    result: SettlementResult,
    balances: BalanceStore,
    prices: PriceHistoryStore,
    events: EventStore,
) -> None:
    """Write a SettlementResult through the stores.

    Does not commit; the caller's transaction makes it all-or-nothing.
    """
    for delta in result.balance_deltas:
        if delta.amount > 0:
            balances.credit(delta.member_id, delta.amount)
        elif delta.amount < 0:
            balances.debit(delta.member_id, -delta.amount)

    if result.remove_terminal_prices:
        removed = prices.remove_terminal(event_id)
        logger.debug("removed %d terminal price points for event %s", removed, event_id)
    if result.price_points:
        prices.append(event_id, result.price_points)

    events.set_state(event_id, result.state, result.final_outcome)
