"""
Call lifecycle.

A call is a member's proposed outcome for an open event. While any
non-reversed call exists the market is frozen: no new bets are accepted.
Reversing a call only flips its flag and never touches balances; undoing a
confirmed outcome is settlement.reverse().

Calls are append-only. Confirmation is independent of calls and may pick any
outcome, not just the one most recently called.
"""

import uuid
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from mofu_market.errors import CallAlreadyReversed, EventNotOpen, MarketFrozen, UnknownOutcome
from mofu_market.schemas.call import CallRecord, CallState
from mofu_market.schemas.settlement import ResolutionState


def make_call(
    state: ResolutionState,
    event_id: str,
    proposer_id: str,
    proposed_outcome: str,
    outcome_names: Sequence[str],
    justification: Optional[str] = None,
    at: Optional[datetime] = None,
) -> CallRecord:
    """Create a call record for an open event."""
    if state != ResolutionState.OPEN:
        raise EventNotOpen("Event is already resolved")
    if proposed_outcome not in outcome_names:
        raise UnknownOutcome(f"Outcome '{proposed_outcome}' not found in event")

    justification = (justification or "").strip() or None
    return CallRecord(
        id=str(uuid.uuid4()),
        event_id=event_id,
        proposer_id=proposer_id,
        proposed_outcome=proposed_outcome,
        justification=justification,
        created_at=at or datetime.now(timezone.utc),
    )


def reverse_call(state: ResolutionState, call: CallRecord) -> CallRecord:
    """Retract a call, re-enabling betting if it was the only active one."""
    if state != ResolutionState.OPEN:
        raise EventNotOpen("Cannot reverse a call on a resolved event")
    if call.is_reversed:
        raise CallAlreadyReversed(f"Call {call.id} is already reversed")
    return call.model_copy(update={"is_reversed": True})


def active_call(calls: Iterable[CallRecord]) -> Optional[CallRecord]:
    """Most recent non-reversed call, if any."""
    live = [(c.created_at, i, c) for i, c in enumerate(calls) if not c.is_reversed]
    if not live:
        return None
    # Later position wins a timestamp tie.
    return max(live, key=lambda entry: entry[:2])[2]


def is_frozen(calls: Iterable[CallRecord]) -> bool:
    return active_call(calls) is not None


def ensure_betting_allowed(state: ResolutionState, calls: Iterable[CallRecord]) -> None:
    """Raise unless a new bet may be placed right now."""
    if state != ResolutionState.OPEN:
        raise EventNotOpen("Event is not open for betting")
    if is_frozen(calls):
        raise MarketFrozen("Event has been called - betting is disabled")


def call_state(
    call: Optional[CallRecord],
    state: ResolutionState,
    final_outcome: Optional[str] = None,
) -> CallState:
    """Where a single call sits in its lifecycle."""
    if call is None:
        return CallState.NO_ACTIVE_CALL
    if call.is_reversed:
        return CallState.REVERSED
    if state == ResolutionState.RESOLVED and final_outcome == call.proposed_outcome:
        return CallState.CONFIRMED
    return CallState.CALLED
