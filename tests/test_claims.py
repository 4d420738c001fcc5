"""
Unit tests for the claim store.
"""
import json
import pathlib

import pytest

from splitsmart.cache import claimed_names_key
from splitsmart.errors import ConflictError, NotFoundError
from splitsmart.models import ClaimModel
from splitsmart.pipeline import apply_receipt
from splitsmart.pipeline.claims import ADDED, REMOVED, ensure_claims, list_claims, toggle_claim
from splitsmart.pipeline.sessions import create_session, join_session, list_items
from splitsmart.schemas import ParsedReceipt

FIXTURES = pathlib.Path(__file__).resolve().parent.parent / "fixtures"
TWO_ITEM_RECEIPT = json.loads((FIXTURES / "two_item_receipt.json").read_text())


@pytest.fixture()
def items(db, session):
    return list_items(db, session)


class TestToggle:
    def test_add_then_remove(self, db, session, items, alice):
        assert toggle_claim(db, session, items[0].id, alice.id) == ADDED
        assert len(list_claims(db, session)) == 1
        assert toggle_claim(db, session, items[0].id, alice.id) == REMOVED
        assert list_claims(db, session) == []

    def test_two_participants_same_item(self, db, session, items, alice, bob):
        assert toggle_claim(db, session, items[0].id, alice.id) == ADDED
        assert toggle_claim(db, session, items[0].id, bob.id) == ADDED
        claims = list_claims(db, session)
        assert {c.participant_id for c in claims} == {alice.id, bob.id}

    def test_custom_share(self, db, session, items, alice):
        toggle_claim(db, session, items[1].id, alice.id, share=2.5)
        assert list_claims(db, session)[0].share == 2.5

    def test_cross_session_item_rejected(self, db, session, alice):
        other = create_session(db)
        apply_receipt(db, other.code, ParsedReceipt.model_validate(TWO_ITEM_RECEIPT))
        foreign = list_items(db, other)[0]
        with pytest.raises(NotFoundError):
            toggle_claim(db, session, foreign.id, alice.id)
        assert db.query(ClaimModel).count() == 0

    def test_unknown_participant_rejected(self, db, session, items):
        with pytest.raises(NotFoundError):
            toggle_claim(db, session, items[0].id, "nobody")

    def test_claim_stores_session_id(self, db, session, items, alice):
        toggle_claim(db, session, items[0].id, alice.id)
        assert list_claims(db, session)[0].session_id == session.id

    def test_ledger_replacement_removes_claims(self, db, session, items, alice):
        toggle_claim(db, session, items[0].id, alice.id)
        apply_receipt(db, session.code, ParsedReceipt.model_validate(TWO_ITEM_RECEIPT))
        assert list_claims(db, session) == []
        assert db.query(ClaimModel).count() == 0


class TestSequence:
    def test_increasing_sequence_accepted(self, db, session, items, alice):
        assert toggle_claim(db, session, items[0].id, alice.id, seq=1) == ADDED
        assert toggle_claim(db, session, items[0].id, alice.id, seq=2) == REMOVED

    def test_duplicate_sequence_rejected(self, db, session, items, alice):
        toggle_claim(db, session, items[0].id, alice.id, seq=5)
        with pytest.raises(ConflictError) as exc:
            toggle_claim(db, session, items[0].id, alice.id, seq=5)
        assert exc.value.extra["last_seq"] == 5
        # the rejected toggle changed nothing
        assert len(list_claims(db, session)) == 1

    def test_stale_sequence_rejected(self, db, session, items, alice):
        toggle_claim(db, session, items[0].id, alice.id, seq=3)
        with pytest.raises(ConflictError):
            toggle_claim(db, session, items[0].id, alice.id, seq=2)

    def test_sequence_is_per_participant(self, db, session, items, alice, bob):
        toggle_claim(db, session, items[0].id, alice.id, seq=1)
        assert toggle_claim(db, session, items[0].id, bob.id, seq=1) == ADDED


class TestEnsure:
    def test_never_removes(self, db, session, items, alice):
        toggle_claim(db, session, items[0].id, alice.id)
        added, already = ensure_claims(db, session, [items[0].id, items[1].id], alice.id)
        assert added == [items[1].id]
        assert already == [items[0].id]
        assert len(list_claims(db, session)) == 2

    def test_repeat_is_noop(self, db, session, items, alice):
        ensure_claims(db, session, [items[0].id], alice.id)
        added, already = ensure_claims(db, session, [items[0].id, items[0].id], alice.id)
        assert added == []
        assert already == [items[0].id]

    def test_unknown_item_adds_nothing(self, db, session, items, alice):
        with pytest.raises(NotFoundError):
            ensure_claims(db, session, [items[0].id, "missing"], alice.id)
        assert list_claims(db, session) == []


class TestMemory:
    def test_claimed_names_remembered(self, db, session, items, alice, memory):
        toggle_claim(db, session, items[1].id, alice.id, memory=memory)
        assert memory.get(claimed_names_key(session.code, alice.id)) == ["B"]
        toggle_claim(db, session, items[1].id, alice.id, memory=memory)
        assert memory.get(claimed_names_key(session.code, alice.id)) == []

    def test_memory_survives_replacement(self, db, session, items, alice, memory):
        toggle_claim(db, session, items[0].id, alice.id, memory=memory)
        apply_receipt(db, session.code, ParsedReceipt.model_validate(TWO_ITEM_RECEIPT))
        assert memory.get(claimed_names_key(session.code, alice.id)) == ["A"]

    def test_other_session_participant(self, db, session, items):
        other = create_session(db)
        stranger = join_session(db, other, "Eve")
        with pytest.raises(NotFoundError):
            toggle_claim(db, session, items[0].id, stranger.id)
