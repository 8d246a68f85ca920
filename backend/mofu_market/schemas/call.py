"""Call records."""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class CallState(str, Enum):
    NO_ACTIVE_CALL = "no_active_call"
    CALLED = "called"
    REVERSED = "reversed"
    CONFIRMED = "confirmed"


class CallRecord(BaseModel):
    id: str
    event_id: str
    proposer_id: str
    proposed_outcome: str
    justification: Optional[str] = None
    is_reversed: bool = False
    created_at: datetime

    class Config:
        frozen = True
        from_attributes = True
