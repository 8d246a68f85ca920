"""Party model — a closed group of members sharing a mofu economy."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, String, Integer, DateTime
from sqlalchemy.orm import relationship

from mofu_market.database import Base


class Party(Base):
    __tablename__ = "parties"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    slug = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(255), nullable=False)
    party_code = Column(String(16), unique=True, nullable=False, index=True)
    starting_mofus = Column(Integer, nullable=False, default=1000)
    created_by_display_name = Column(String(255), nullable=False)
    created_at = Column(DateTime, nullable=False, default=lambda: datetime.now(timezone.utc))

    # Relationships
    members = relationship("PartyMember", back_populates="party")
    events = relationship("Event", back_populates="party")
