"""Call service — proposing and retracting outcome calls."""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from mofu_market import calls
from mofu_market.database import atomic
from mofu_market.errors import MemberNotFound
from mofu_market.models.party_member import PartyMember
from mofu_market.schemas.call import CallRecord
from mofu_market.schemas.settlement import ResolutionState
from mofu_market.stores import sql_stores

logger = logging.getLogger(__name__)


def call_event(
    db: Session,
    event_id: str,
    member_id: str,
    proposed_outcome: str,
    justification: Optional[str] = None,
) -> CallRecord:
    """Propose an outcome. Freezes betting until the call is reversed."""
    stores = sql_stores(db)
    with atomic(db):
        event = stores.events.lock(event_id)
        member = (
            db.query(PartyMember.id)
            .filter(PartyMember.id == member_id, PartyMember.party_id == event.party_id)
            .first()
        )
        if not member:
            raise MemberNotFound("Member not found in this party")

        record = calls.make_call(
            ResolutionState(event.status),
            event_id,
            member_id,
            proposed_outcome,
            stores.events.outcome_names(event_id),
            justification,
        )
        stores.events.add_call(record)

    logger.info("event %s called '%s' by member %s", event_id, proposed_outcome, member_id)
    return record


def reverse_call(db: Session, call_id: str) -> CallRecord:
    """Retract a call. No balance effect."""
    stores = sql_stores(db)
    with atomic(db):
        record = stores.events.get_call(call_id)
        event = stores.events.lock(record.event_id)
        reversed_record = calls.reverse_call(ResolutionState(event.status), record)
        stores.events.mark_call_reversed(call_id)

    logger.info("call %s on event %s reversed", call_id, record.event_id)
    return reversed_record


def list_calls(db: Session, event_id: str) -> list[CallRecord]:
    return sql_stores(db).events.calls(event_id)


def get_call_status(db: Session, event_id: str) -> dict:
    """Active call (if any), its lifecycle state and whether betting is frozen."""
    stores = sql_stores(db)
    state, final_outcome = stores.events.get_state(event_id)
    history = stores.events.calls(event_id)
    active = calls.active_call(history)
    return {
        "event_id": event_id,
        "active_call": active,
        "state": calls.call_state(active, state, final_outcome),
        "frozen": active is not None,
        "calls": history,
    }

