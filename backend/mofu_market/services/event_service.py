"""Event service — event creation, bet placement, prices and price history."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from mofu_market import calls, pricing
from mofu_market.config import settings
from mofu_market.database import atomic
from mofu_market.errors import EmptyOutcomeSet, EventNotFound, MemberNotFound, PartyNotFound
from mofu_market.models.bet import Bet
from mofu_market.models.event import Event
from mofu_market.models.event_outcome import EventOutcome
from mofu_market.models.party import Party
from mofu_market.models.party_member import PartyMember
from mofu_market.schemas.settlement import ResolutionState
from mofu_market.stores import sql_stores

logger = logging.getLogger(__name__)


def _normalize_outcomes(outcomes: Optional[list[dict]]) -> list[dict]:
    """Fall back to the default outcome set and reject duplicate names."""
    if not outcomes:
        outcomes = settings.DEFAULT_OUTCOMES

    normalized = []
    seen = set()
    for o in outcomes:
        name = (o.get("name") or "").strip()
        if not name:
            raise ValueError("Outcome name must not be blank")
        if name in seen:
            raise ValueError(f"Duplicate outcome name '{name}'")
        seen.add(name)
        normalized.append({"name": name, "color": o.get("color") or "#64748b"})
    return normalized


def add_event(
    db: Session,
    party_id: str,
    title: str,
    description: Optional[str] = None,
    outcomes: Optional[list[dict]] = None,
) -> Event:
    """Stage an event, its outcomes and the opening price snapshot. No commit."""
    normalized = _normalize_outcomes(outcomes)

    event = Event(
        party_id=party_id,
        title=title.strip(),
        description=description or None,
        status=ResolutionState.OPEN.value,
    )
    db.add(event)
    db.flush()

    for i, o in enumerate(normalized):
        db.add(EventOutcome(event_id=event.id, name=o["name"], color=o["color"], display_order=i))

    opening = pricing.price({o["name"]: 0 for o in normalized})
    sql_stores(db).prices.append(event.id, pricing.snapshot(opening))
    return event


def create_event(
    db: Session,
    party_id: str,
    title: str,
    description: Optional[str] = None,
    outcomes: Optional[list[dict]] = None,
) -> Event:
    """Create an open event. Defaults to a yes/no outcome set."""
    if not db.query(Party.id).filter(Party.id == party_id).first():
        raise PartyNotFound(f"Party {party_id} not found")

    with atomic(db):
        event = add_event(db, party_id, title, description, outcomes)

    db.refresh(event)
    logger.info("created event %s in party %s", event.id, party_id)
    return event


def get_event(db: Session, event_id: str) -> Event:
    event = db.query(Event).filter(Event.id == event_id).first()
    if not event:
        raise EventNotFound(f"Event {event_id} not found")
    return event


def place_bet(db: Session, event_id: str, member_id: str, outcome_name: str, stake: int) -> Bet:
    """Place a bet with all validation and transactional safety.

    Steps:
    1. Lock the event row
    2. Reject if the event is resolved or called
    3. Price the bet against the current pool
    4. Debit the stake atomically
    5. Insert the immutable bet record
    6. Append a fresh price snapshot
    All within a single DB transaction.
    """
    stores = sql_stores(db)
    with atomic(db):
        event = stores.events.lock(event_id)
        calls.ensure_betting_allowed(ResolutionState(event.status), stores.events.calls(event_id))

        member = (
            db.query(PartyMember)
            .filter(PartyMember.id == member_id, PartyMember.party_id == event.party_id)
            .first()
        )
        if not member:
            raise MemberNotFound("Member not found in this party")

        names = stores.events.outcome_names(event_id)
        if not names:
            raise EmptyOutcomeSet("Event has no outcomes")

        pool = pricing.stake_pool(names, stores.bets.bets_for_event(event_id))
        price_at_bet, _, new_prices = pricing.quote_bet(pool, outcome_name, stake)

        stores.balances.debit(member_id, stake)
        bet = stores.bets.add_bet(event_id, member_id, outcome_name, stake, price_at_bet)
        stores.prices.append(event_id, pricing.snapshot(new_prices))

    db.refresh(bet)
    logger.info(
        "bet %s: member %s staked %d on '%s' at %.4f", bet.id, member_id, stake, outcome_name, price_at_bet
    )
    return bet


def get_prices(db: Session, event_id: str) -> dict:
    """Current stake pool and prices for an event.

    Resolved events report the terminal 1/0 prices.
    """
    event = get_event(db, event_id)
    stores = sql_stores(db)
    names = stores.events.outcome_names(event_id)
    pool = pricing.stake_pool(names, stores.bets.bets_for_event(event_id))

    if event.status == ResolutionState.RESOLVED.value and event.final_outcome in pool:
        current = pricing.terminal_prices(names, event.final_outcome)
    else:
        current = pricing.price(pool)

    colors = {o.name: o.color for o in event.outcomes}
    return {
        "event_id": event.id,
        "status": event.status,
        "final_outcome": event.final_outcome,
        "total_stake": sum(pool.values()),
        "outcomes": [
            {
                "name": name,
                "color": colors.get(name),
                "stake": pool[name],
                "price": current[name],
                "percentage": round(current[name] * 100, 1),
            }
            for name in names
        ],
    }


def get_price_history(db: Session, event_id: str) -> list[dict]:
    """Price history grouped by snapshot, oldest first, for charting."""
    get_event(db, event_id)
    history = []
    for row in sql_stores(db).prices.history(event_id):
        if history and history[-1]["timestamp"] == row.created_at.isoformat():
            history[-1]["prices"][row.outcome_name] = row.price
        else:
            history.append({
                "timestamp": row.created_at.isoformat(),
                "prices": {row.outcome_name: row.price},
            })
    return history


def update_event_title(db: Session, event_id: str, title: str) -> Event:
    title = title.strip()
    if not title:
        raise ValueError("Title must not be blank")

    with atomic(db):
        event = get_event(db, event_id)
        event.title = title

    db.refresh(event)
    return event
