"""Party service — party creation, joining, and the mofu ledger."""

import logging
import re
import secrets
from typing import Iterable, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from mofu_market.config import settings
from mofu_market.database import atomic
from mofu_market.errors import MemberNotFound, PartyNotFound
from mofu_market.models.bet import Bet
from mofu_market.models.event import Event
from mofu_market.models.party import Party
from mofu_market.models.party_member import PartyMember
from mofu_market.services.event_service import add_event

logger = logging.getLogger(__name__)

_SLUG_SUFFIX_CHARS = "abcdefghijklmnopqrstuvwxyz0123456789"


def generate_slug(name: str) -> str:
    """URL slug from a party name plus a random suffix."""
    base = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    suffix = "".join(secrets.choice(_SLUG_SUFFIX_CHARS) for _ in range(6))
    return f"{base}-{suffix}" if base else suffix


def generate_party_code() -> str:
    return "".join(
        secrets.choice(settings.PARTY_CODE_ALPHABET) for _ in range(settings.PARTY_CODE_LENGTH)
    )


def _unique_party_code(db: Session, attempts: int = 10) -> str:
    code = generate_party_code()
    for _ in range(attempts):
        if not db.query(Party.id).filter(Party.party_code == code).first():
            break
        code = generate_party_code()
    return code


def create_party(
    db: Session,
    name: str,
    display_name: str,
    starting_mofus: Optional[int] = None,
    events: Iterable[dict] = (),
) -> tuple[Party, PartyMember]:
    """Create a party, its creator member, and any initial events.

    The creator is minted starting_mofus. Each entry in events is a dict
    with title and optional description / outcomes.
    """
    if starting_mofus is None:
        starting_mofus = settings.DEFAULT_STARTING_MOFUS
    if starting_mofus < 0:
        raise ValueError("starting_mofus must be non-negative")

    with atomic(db):
        party = Party(
            slug=generate_slug(name),
            name=name,
            party_code=_unique_party_code(db),
            starting_mofus=starting_mofus,
            created_by_display_name=display_name,
        )
        db.add(party)
        db.flush()

        creator = PartyMember(
            party_id=party.id,
            display_name=display_name,
            is_creator=True,
            balance_mofus=starting_mofus,
        )
        db.add(creator)

        for event_data in events:
            add_event(
                db,
                party_id=party.id,
                title=event_data["title"],
                description=event_data.get("description"),
                outcomes=event_data.get("outcomes"),
            )

    db.refresh(party)
    db.refresh(creator)
    logger.info("created party %s (%s) with %d mofus each", party.slug, party.party_code, starting_mofus)
    return party, creator


def get_party_by_code(db: Session, party_code: str) -> Party:
    party = db.query(Party).filter(Party.party_code == party_code.strip().upper()).first()
    if not party:
        raise PartyNotFound("Invalid party code")
    return party


def join_party(db: Session, party_code: str, display_name: str) -> PartyMember:
    """Join by code. Rejoining with the same display name returns the existing member."""
    party = get_party_by_code(db, party_code)

    existing = (
        db.query(PartyMember)
        .filter(PartyMember.party_id == party.id, PartyMember.display_name == display_name)
        .first()
    )
    if existing:
        return existing

    with atomic(db):
        member = PartyMember(
            party_id=party.id,
            display_name=display_name,
            balance_mofus=party.starting_mofus,
        )
        db.add(member)

    db.refresh(member)
    logger.info("member %s joined party %s", member.id, party.slug)
    return member


def get_member(db: Session, member_id: str) -> PartyMember:
    member = db.query(PartyMember).filter(PartyMember.id == member_id).first()
    if not member:
        raise MemberNotFound(f"Member {member_id} not found")
    return member


def get_ledger(db: Session, party_id: str) -> dict:
    """Balances plus stakes still riding on open events.

    ``total`` must always equal ``minted`` (starting_mofus per member).
    """
    party = db.query(Party).filter(Party.id == party_id).first()
    if not party:
        raise PartyNotFound(f"Party {party_id} not found")

    members = db.query(PartyMember).filter(PartyMember.party_id == party_id).all()
    balances = {m.id: m.balance_mofus for m in members}
    open_stakes = (
        db.query(func.coalesce(func.sum(Bet.stake_mofus), 0))
        .join(Event, Bet.event_id == Event.id)
        .filter(Event.party_id == party_id, Event.status == "open")
        .scalar()
    )

    total_balances = sum(balances.values())
    return {
        "party_id": party_id,
        "balances": balances,
        "total_balances": total_balances,
        "open_stakes": open_stakes,
        "total": total_balances + open_stakes,
        "minted": party.starting_mofus * len(members),
    }
