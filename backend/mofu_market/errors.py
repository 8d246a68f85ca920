"""Error kinds raised by the engine and services.

Every error carries a stable ``code`` so callers can map it to a user-facing
message without parsing text.
"""


class MarketError(ValueError):
    code = "market_error"

    def __init__(self, message: str = ""):
        super().__init__(message or self.__class__.__name__)


class EmptyOutcomeSet(MarketError):
    code = "empty_outcome_set"


class UnknownOutcome(MarketError):
    code = "unknown_outcome"


class InvalidStake(MarketError):
    code = "invalid_stake"


class EventNotOpen(MarketError):
    code = "event_not_open"


class EventNotResolved(MarketError):
    code = "event_not_resolved"


class MarketFrozen(MarketError):
    """Betting attempted while a non-reversed call exists."""

    code = "market_frozen"


EventCalled = MarketFrozen


class InsufficientBalance(MarketError):
    code = "insufficient_balance"


class CallAlreadyReversed(MarketError):
    code = "call_already_reversed"


class NotFound(MarketError):
    code = "not_found"


class PartyNotFound(NotFound):
    code = "party_not_found"


class MemberNotFound(NotFound):
    code = "member_not_found"


class EventNotFound(NotFound):
    code = "event_not_found"


class CallNotFound(NotFound):
    code = "call_not_found"


class InvariantViolation(MarketError):
    """Payouts do not add up to the pool. Settlement must abort."""

    code = "invariant_violation"
