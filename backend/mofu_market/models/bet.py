"""Bet model — immutable record of a stake. Never updated or deleted."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Float, Integer, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from mofu_market.database import Base


class Bet(Base):
    __tablename__ = "bets"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    event_id = Column(String(36), ForeignKey("events.id"), nullable=False, index=True)
    party_member_id = Column(String(36), ForeignKey("party_members.id"), nullable=False)
    outcome_name = Column(String(255), nullable=False)
    stake_mofus = Column(Integer, nullable=False)
    price_at_bet = Column(Float, nullable=False)
    placement_order = Column(Integer, nullable=False)  # 1-based, per event
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("event_id", "placement_order", name="uq_bet_placement_order"),
        CheckConstraint("stake_mofus > 0", name="ck_stake_positive"),
    )

    # Relationships
    event = relationship("Event", back_populates="bets")
    member = relationship("PartyMember", back_populates="bets")
