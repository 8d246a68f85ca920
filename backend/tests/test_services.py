"""Service-level tests against an in-memory SQLite database.

Covers full bet -> call -> confirm -> reverse flows and checks that the party
ledger (balances plus open stakes) never drifts from what was minted, except
for the losing stakes a default reversal hands back.
"""

import logging
import sys
import os

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from mofu_market import settlement
from mofu_market.config import configure_logging, settings
from mofu_market.database import _engine_options
from mofu_market.errors import (
    CallAlreadyReversed,
    EventNotOpen,
    EventNotResolved,
    InsufficientBalance,
    InvalidStake,
    InvariantViolation,
    MarketFrozen,
    MemberNotFound,
    PartyNotFound,
    UnknownOutcome,
)
from mofu_market.models.bet import Bet
from mofu_market.models.party_member import PartyMember
from mofu_market.models.price_history import OutcomePriceHistory
from mofu_market.schemas.call import CallState
from mofu_market.services import call_service, event_service, party_service, settlement_service


def _balance(db, member_id):
    return db.query(PartyMember.balance_mofus).filter(PartyMember.id == member_id).scalar()


def _price_rows(db, event_id):
    return [
        (r.outcome_name, r.price)
        for r in db.query(OutcomePriceHistory)
        .filter(OutcomePriceHistory.event_id == event_id)
        .order_by(OutcomePriceHistory.created_at.asc(), OutcomePriceHistory.outcome_name.asc())
        .all()
    ]


def _assert_conserved(db, party_id):
    ledger = party_service.get_ledger(db, party_id)
    assert ledger["total"] == ledger["minted"]


@pytest.fixture
def party(db):
    party, host = party_service.create_party(db, "Friday Night", "Host", starting_mofus=1000)
    alice = party_service.join_party(db, party.party_code, "Alice")
    bob = party_service.join_party(db, party.party_code, "Bob")
    carol = party_service.join_party(db, party.party_code, "Carol")
    return {"party": party, "host": host, "A": alice, "B": bob, "C": carol}


@pytest.fixture
def event(db, party):
    return event_service.create_event(db, party["party"].id, "Will it rain?")


class TestParties:

    def test_create_party(self, db, party):
        p = party["party"]
        assert p.slug.startswith("friday-night-")
        assert len(p.party_code) == 6
        assert party["host"].is_creator
        assert party["host"].balance_mofus == 1000

    def test_join_is_idempotent_per_name(self, db, party):
        again = party_service.join_party(db, party["party"].party_code.lower(), "Alice")
        assert again.id == party["A"].id
        _assert_conserved(db, party["party"].id)

    def test_invalid_code(self, db, party):
        with pytest.raises(PartyNotFound):
            party_service.join_party(db, "ZZZZZZ0", "Mallory")

    def test_initial_events(self, db):
        p, _ = party_service.create_party(
            db, "Derby", "Host", starting_mofus=50,
            events=[
                {"title": "Winner?", "outcomes": [{"name": "red", "color": "#f00"}, {"name": "blue"}, {"name": "green"}]},
                {"title": "Photo finish?"},
            ],
        )
        names = sorted(e.title for e in p.events)
        assert names == ["Photo finish?", "Winner?"]
        winner = next(e for e in p.events if e.title == "Winner?")
        assert [o.name for o in winner.outcomes] == ["red", "blue", "green"]

    def test_get_member(self, db, party):
        assert party_service.get_member(db, party["A"].id).display_name == "Alice"
        with pytest.raises(MemberNotFound):
            party_service.get_member(db, "missing")

    def test_slug_and_code_helpers(self):
        assert party_service.generate_slug("  Hello, World!! ").startswith("hello-world-")
        code = party_service.generate_party_code()
        assert len(code) == 6
        assert not set(code) & set("01IO")


class TestEvents:

    def test_default_outcomes_and_opening_prices(self, db, event):
        prices = event_service.get_prices(db, event.id)
        assert [o["name"] for o in prices["outcomes"]] == ["yes", "no"]
        assert [o["price"] for o in prices["outcomes"]] == [0.5, 0.5]
        history = event_service.get_price_history(db, event.id)
        assert len(history) == 1
        assert history[0]["prices"] == {"yes": 0.5, "no": 0.5}

    def test_duplicate_outcomes_rejected(self, db, party):
        with pytest.raises(ValueError):
            event_service.create_event(db, party["party"].id, "Dup", outcomes=[{"name": "x"}, {"name": "x"}])

    def test_unknown_party(self, db):
        with pytest.raises(PartyNotFound):
            event_service.create_event(db, "missing", "Nope")

    def test_update_title(self, db, event):
        assert event_service.update_event_title(db, event.id, "  Will it pour?  ").title == "Will it pour?"


class TestPlaceBet:

    def test_debits_and_records_price(self, db, party, event):
        bet = event_service.place_bet(db, event.id, party["A"].id, "yes", 100)
        assert bet.price_at_bet == 0.5
        assert bet.placement_order == 1
        assert _balance(db, party["A"].id) == 900

        second = event_service.place_bet(db, event.id, party["B"].id, "no", 50)
        assert second.price_at_bet == 1 / 102
        assert second.placement_order == 2

        prices = {o["name"]: o["price"] for o in event_service.get_prices(db, event.id)["outcomes"]}
        assert prices == {"yes": 101 / 152, "no": 51 / 152}
        assert len(event_service.get_price_history(db, event.id)) == 3
        _assert_conserved(db, party["party"].id)

    def test_insufficient_balance_leaves_nothing_behind(self, db, party, event):
        with pytest.raises(InsufficientBalance):
            event_service.place_bet(db, event.id, party["A"].id, "yes", 1001)
        assert _balance(db, party["A"].id) == 1000
        assert db.query(Bet).count() == 0
        assert len(event_service.get_price_history(db, event.id)) == 1

    def test_invalid_stake(self, db, party, event):
        with pytest.raises(InvalidStake):
            event_service.place_bet(db, event.id, party["A"].id, "yes", 0)

    def test_unknown_outcome(self, db, party, event):
        with pytest.raises(UnknownOutcome):
            event_service.place_bet(db, event.id, party["A"].id, "maybe", 10)

    def test_member_from_other_party(self, db, event):
        _, outsider = party_service.create_party(db, "Elsewhere", "Stranger")
        with pytest.raises(MemberNotFound):
            event_service.place_bet(db, event.id, outsider.id, "yes", 10)


class TestCalls:

    def test_call_freezes_and_reverse_reopens(self, db, party, event):
        record = call_service.call_event(db, event.id, party["B"].id, "yes", "it is pouring")
        with pytest.raises(MarketFrozen):
            event_service.place_bet(db, event.id, party["A"].id, "yes", 10)

        status = call_service.get_call_status(db, event.id)
        assert status["frozen"]
        assert status["state"] == CallState.CALLED

        balances_before = {k: _balance(db, party[k].id) for k in "ABC"}
        reversed_ = call_service.reverse_call(db, record.id)
        assert reversed_.is_reversed
        assert {k: _balance(db, party[k].id) for k in "ABC"} == balances_before

        event_service.place_bet(db, event.id, party["A"].id, "yes", 10)
        history = call_service.list_calls(db, event.id)
        assert len(history) == 1 and history[0].is_reversed

    def test_cannot_call_resolved_event(self, db, party, event):
        settlement_service.confirm_outcome(db, event.id, "yes")
        with pytest.raises(EventNotOpen):
            call_service.call_event(db, event.id, party["A"].id, "no")

    def test_reverse_call_twice(self, db, party, event):
        record = call_service.call_event(db, event.id, party["B"].id, "no")
        call_service.reverse_call(db, record.id)
        with pytest.raises(CallAlreadyReversed):
            call_service.reverse_call(db, record.id)


class TestSettlement:

    @pytest.fixture
    def staked(self, db, party, event):
        event_service.place_bet(db, event.id, party["A"].id, "yes", 100)
        event_service.place_bet(db, event.id, party["B"].id, "yes", 50)
        event_service.place_bet(db, event.id, party["C"].id, "no", 150)
        return event

    def test_strict_reverse_round_trip(self, db, party, staked):
        ids = {k: party[k].id for k in "ABC"}
        before = {k: _balance(db, ids[k]) for k in "ABC"}
        prices_before = _price_rows(db, staked.id)
        assert before == {"A": 900, "B": 950, "C": 850}

        result = settlement_service.confirm_outcome(db, staked.id, "yes")
        assert result.total_pool == 300
        assert {k: _balance(db, ids[k]) for k in "ABC"} == {"A": 1100, "B": 1050, "C": 850}
        assert event_service.get_event(db, staked.id).status == "resolved"
        assert len(_price_rows(db, staked.id)) == len(prices_before) + 2
        current = {o["name"]: o["price"] for o in event_service.get_prices(db, staked.id)["outcomes"]}
        assert current == {"yes": 1.0, "no": 0.0}
        _assert_conserved(db, party["party"].id)

        settlement_service.reverse_confirmed_outcome(db, staked.id, refund_losers=False)
        assert {k: _balance(db, ids[k]) for k in "ABC"} == before
        assert _price_rows(db, staked.id) == prices_before
        reopened = event_service.get_event(db, staked.id)
        assert reopened.status == "open"
        assert reopened.final_outcome is None
        assert db.query(Bet).filter(Bet.event_id == staked.id).count() == 3
        _assert_conserved(db, party["party"].id)

    def test_reversal_returns_losing_stakes(self, db, party, staked):
        settlement_service.confirm_outcome(db, staked.id, "yes")
        settlement_service.reverse_confirmed_outcome(db, staked.id)
        assert _balance(db, party["A"].id) == 900
        assert _balance(db, party["B"].id) == 950
        assert _balance(db, party["C"].id) == 1000
        ledger = party_service.get_ledger(db, party["party"].id)
        assert ledger["total"] == ledger["minted"] + 150
        assert event_service.get_event(db, staked.id).status == "open"

    def test_confirm_other_outcome_than_called(self, db, party, staked):
        call_service.call_event(db, staked.id, party["A"].id, "yes")
        settlement_service.confirm_outcome(db, staked.id, "no")
        assert _balance(db, party["C"].id) == 1150
        status = call_service.get_call_status(db, staked.id)
        assert status["state"] == CallState.CALLED

    def test_confirm_twice(self, db, staked):
        settlement_service.confirm_outcome(db, staked.id, "yes")
        with pytest.raises(EventNotOpen):
            settlement_service.confirm_outcome(db, staked.id, "no")

    def test_reverse_open_event(self, db, staked):
        with pytest.raises(EventNotResolved):
            settlement_service.reverse_confirmed_outcome(db, staked.id)

    def test_no_betting_after_resolution(self, db, party, staked):
        settlement_service.confirm_outcome(db, staked.id, "yes")
        with pytest.raises(EventNotOpen):
            event_service.place_bet(db, staked.id, party["A"].id, "yes", 1)

    def test_no_bets_round_trip(self, db, event):
        prices_before = _price_rows(db, event.id)
        result = settlement_service.confirm_outcome(db, event.id, "no")
        assert result.payouts == []
        assert len(_price_rows(db, event.id)) == len(prices_before) + 2

        settlement_service.reverse_confirmed_outcome(db, event.id)
        assert _price_rows(db, event.id) == prices_before

    def test_single_outcome_reversal_keeps_history(self, db, party):
        solo = event_service.create_event(
            db, party["party"].id, "Will the host show up?", outcomes=[{"name": "yes"}]
        )
        event_service.place_bet(db, solo.id, party["A"].id, "yes", 10)
        prices_before = _price_rows(db, solo.id)
        assert prices_before == [("yes", 1.0), ("yes", 1.0)]

        settlement_service.confirm_outcome(db, solo.id, "yes")
        assert len(_price_rows(db, solo.id)) == 3

        settlement_service.reverse_confirmed_outcome(db, solo.id)
        assert _price_rows(db, solo.id) == prices_before
        assert len(event_service.get_price_history(db, solo.id)) == 2
        assert _balance(db, party["A"].id) == 990

    def test_void_when_nobody_backed_winner(self, db, party, event):
        event_service.place_bet(db, event.id, party["A"].id, "no", 30)
        result = settlement_service.confirm_outcome(db, event.id, "yes")
        assert result.voided
        assert _balance(db, party["A"].id) == 1000
        _assert_conserved(db, party["party"].id)

        settlement_service.reverse_confirmed_outcome(db, event.id)
        assert _balance(db, party["A"].id) == 970
        _assert_conserved(db, party["party"].id)

    def test_failed_settlement_commits_nothing(self, db, party, staked, monkeypatch):
        monkeypatch.setattr(settlement, "distribute", lambda stakes, w, l: list(stakes))
        with pytest.raises(InvariantViolation):
            settlement_service.confirm_outcome(db, staked.id, "yes")

        assert event_service.get_event(db, staked.id).status == "open"
        assert _balance(db, party["A"].id) == 900
        assert _balance(db, party["B"].id) == 950

    def test_reversal_debit_cannot_go_negative(self, db, party, staked):
        settlement_service.confirm_outcome(db, staked.id, "yes")
        other = event_service.create_event(db, party["party"].id, "Second event")
        event_service.place_bet(db, other.id, party["A"].id, "yes", 1100)
        assert _balance(db, party["A"].id) == 0

        with pytest.raises(InsufficientBalance):
            settlement_service.reverse_confirmed_outcome(db, staked.id)
        assert event_service.get_event(db, staked.id).status == "resolved"
        assert _balance(db, party["B"].id) == 1050

    def test_repeated_cycles_stay_conserved(self, db, party, staked):
        for outcome in ["yes", "no", "yes"]:
            settlement_service.confirm_outcome(db, staked.id, outcome)
            _assert_conserved(db, party["party"].id)
            settlement_service.reverse_confirmed_outcome(db, staked.id, refund_losers=False)
            _assert_conserved(db, party["party"].id)
        assert _balance(db, party["C"].id) == 850


class TestConfig:

    def test_defaults(self):
        assert settings.DEFAULT_STARTING_MOFUS == 1000
        assert [o["name"] for o in settings.DEFAULT_OUTCOMES] == ["yes", "no"]
        assert settings.REFUND_LOSERS_ON_REVERSAL is True

    def test_engine_options(self):
        assert _engine_options("sqlite:///./x.db") == {"connect_args": {"check_same_thread": False}}
        assert _engine_options("postgresql://host/mofu")["pool_pre_ping"] is True

    def test_configure_logging(self):
        configure_logging("debug")
        assert logging.getLogger("mofu_market").level == logging.DEBUG
        configure_logging("info")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
