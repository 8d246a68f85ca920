"""Outcome model. Names are unique within an event; color is cosmetic."""

import uuid

from sqlalchemy import Column, String, Integer, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship

from mofu_market.database import Base


class EventOutcome(Base):
    __tablename__ = "event_outcomes"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    color = Column(String(16), nullable=False, default="#64748b")
    display_order = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        UniqueConstraint("event_id", "name", name="uq_event_outcome_name"),
    )

    # Relationships
    event = relationship("Event", back_populates="outcomes")
