"""SQLAlchemy ORM models."""

from mofu_market.models.party import Party
from mofu_market.models.party_member import PartyMember
from mofu_market.models.event import Event
from mofu_market.models.event_outcome import EventOutcome
from mofu_market.models.bet import Bet
from mofu_market.models.event_call import EventCall
from mofu_market.models.price_history import OutcomePriceHistory

__all__ = [
    "Party",
    "PartyMember",
    "Event",
    "EventOutcome",
    "Bet",
    "EventCall",
    "OutcomePriceHistory",
]
