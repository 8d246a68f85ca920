"""Party member model. The balance is only changed through engine operations."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, Boolean, DateTime, ForeignKey, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship

from mofu_market.database import Base


class PartyMember(Base):
    __tablename__ = "party_members"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    party_id = Column(String(36), ForeignKey("parties.id"), nullable=False, index=True)
    display_name = Column(String(255), nullable=False)
    is_creator = Column(Boolean, nullable=False, default=False)
    balance_mofus = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    __table_args__ = (
        UniqueConstraint("party_id", "display_name", name="uq_party_display_name"),
        CheckConstraint("balance_mofus >= 0", name="ck_balance_non_negative"),
    )

    # Relationships
    party = relationship("Party", back_populates="members")
    bets = relationship("Bet", back_populates="member")
