"""Call model — append-only; reversal sets a flag instead of deleting."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship

from mofu_market.database import Base


class EventCall(Base):
    __tablename__ = "event_calls"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    party_member_id = Column(String(36), ForeignKey("party_members.id"), nullable=False)
    proposed_outcome = Column(String(255), nullable=False)
    justification = Column(Text, nullable=True)
    is_reversed = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    event = relationship("Event", back_populates="calls")
    member = relationship("PartyMember")
