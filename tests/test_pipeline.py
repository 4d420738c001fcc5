"""
Unit tests for the splitsmart pipeline — ledger normalizer, join codes, staged fallback.
"""
import json
import pathlib

import pytest
from sqlalchemy.exc import OperationalError

from splitsmart.errors import CodeGenerationError, StoreError, UpstreamError
from splitsmart.models import ItemModel
from splitsmart.pipeline import apply_receipt
from splitsmart.pipeline.codes import CODE_ALPHABET, generate_code, normalize_code, random_code
from splitsmart.pipeline.fallback import Stage, run_with_fallback
from splitsmart.pipeline.ledger import (
    format_cents,
    normalize,
    normalize_currency,
    replace_ledger,
    to_cents,
)
from splitsmart.pipeline.sessions import create_session, list_items
from splitsmart.schemas import LedgerItem, ParsedReceipt, SessionTotals

FIXTURES = pathlib.Path(__file__).resolve().parent.parent / "fixtures"
TWO_ITEM_RECEIPT = json.loads((FIXTURES / "two_item_receipt.json").read_text())


# =====================================================================
# Ledger normalizer
# =====================================================================
class TestToCents:
    def test_exact(self):
        assert to_cents(9.99) == 999
        assert to_cents("15.98") == 1598

    def test_half_up(self):
        assert to_cents(0.005) == 1
        assert to_cents(1.005) == 101
        assert to_cents(2.675) == 268

    def test_missing_is_zero(self):
        assert to_cents(None) == 0


class TestCurrency:
    @pytest.mark.parametrize("raw, expected", [
        ("usd", "USD"),
        (" eur ", "EUR"),
        ("$", "USD"),
        ("€", "EUR"),
        ("£", "GBP"),
        ("JPY", "JPY"),
        ("dollars", "USD"),
        ("", "USD"),
        (None, "USD"),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_currency(raw) == expected

    def test_format_symbols(self):
        assert format_cents(1267, "USD") == "$12.67"
        assert format_cents(500, "eur") == "€5.00"
        assert format_cents(123456, "GBP") == "£1,234.56"

    def test_format_code_without_symbol(self):
        assert format_cents(1000, "JPY") == "JPY 10.00"

    def test_format_floors_negative_display(self):
        assert format_cents(-250, "USD") == "$0.00"


class TestNormalize:
    def test_fields_converted_independently(self):
        items, totals = normalize(ParsedReceipt.model_validate(TWO_ITEM_RECEIPT))
        assert [i.total_cents for i in items] == [1000, 2000]
        assert totals.subtotal_cents == 3000
        assert totals.tax_cents == 300
        assert totals.tip_cents == 500
        assert totals.total_cents == 3800
        assert totals.currency == "USD"

    def test_missing_total_uses_quantity_times_price(self):
        parsed = ParsedReceipt.model_validate({
            "items": [{"name": "Tacos", "quantity": 3, "unitPrice": 2.335}],
        })
        items, totals = normalize(parsed)
        assert items[0].total_cents == 701
        assert items[0].unit_price_cents == 234
        assert totals.subtotal_cents == 0
        assert totals.tax_cents == 0

    def test_blank_name_and_bad_quantity(self):
        parsed = ParsedReceipt.model_validate({
            "items": [{"name": "  ", "quantity": 0, "unitPrice": 1, "total": 1}],
        })
        items, _ = normalize(parsed)
        assert items[0].name == "Item 1"
        assert items[0].quantity == 1.0

    def test_string_amounts(self):
        parsed = ParsedReceipt.model_validate({
            "items": [{"name": "Wine", "total": "$1,012.50"}],
            "subtotal": "1,012.50",
            "currency": "$",
        })
        items, totals = normalize(parsed)
        assert items[0].total_cents == 101250
        assert totals.subtotal_cents == 101250

    def test_deterministic(self):
        parsed = ParsedReceipt.model_validate(TWO_ITEM_RECEIPT)
        first = normalize(parsed)
        second = normalize(parsed)
        assert [i.model_dump_json() for i in first[0]] == [i.model_dump_json() for i in second[0]]
        assert first[1].model_dump_json() == second[1].model_dump_json()


class TestReplaceLedger:
    def test_replaces_items_and_totals(self, db, session):
        assert [i.name for i in list_items(db, session)] == ["A", "B"]

        apply_receipt(db, session.code, ParsedReceipt.model_validate({
            "items": [{"name": "C", "total": 10}],
            "subtotal": 10, "tax": 1, "tip": 0, "total": 11, "currency": "eur",
        }))
        items = list_items(db, session)
        assert [i.name for i in items] == ["C"]
        assert session.subtotal_cents == 1000
        assert session.tax_cents == 100
        assert session.tip_cents == 0
        assert session.currency == "EUR"
        assert db.query(ItemModel).count() == 1

    def test_creates_unknown_session(self, db):
        s = apply_receipt(db, "newcode", ParsedReceipt.model_validate(TWO_ITEM_RECEIPT))
        assert s.code == "NEWCODE"
        assert len(list_items(db, s)) == 2

    def test_failure_rolls_back(self, db, session, monkeypatch):
        before = [i.id for i in list_items(db, session)]

        items = [LedgerItem(name="X", total_cents=100)]
        totals = SessionTotals(subtotal_cents=100)
        calls = {"n": 0}
        real_flush = db.flush

        def flaky_flush(*args, **kwargs):
            calls["n"] += 1
            if calls["n"] == 2:
                raise OperationalError("INSERT", {}, Exception("disk full"))
            return real_flush(*args, **kwargs)

        monkeypatch.setattr(db, "flush", flaky_flush)
        with pytest.raises(StoreError) as exc:
            replace_ledger(db, session, items, totals)
        assert exc.value.retryable is True
        monkeypatch.undo()

        assert [i.id for i in list_items(db, session)] == before
        db.refresh(session)
        assert session.subtotal_cents == 3000


# =====================================================================
# Join codes
# =====================================================================
class TestCodes:
    def test_alphabet_has_no_ambiguous_characters(self):
        for ch in "0O1I":
            assert ch not in CODE_ALPHABET

    def test_random_code_shape(self):
        code = random_code(6)
        assert len(code) == 6
        assert all(ch in CODE_ALPHABET for ch in code)

    def test_normalize(self):
        assert normalize_code(" abc234 ") == "ABC234"

    def test_retries_collisions(self):
        codes = iter(["AAAAAA", "BBBBBB", "CCCCCC"])
        taken = {"AAAAAA", "BBBBBB"}
        assert generate_code(lambda c: c in taken, make=lambda: next(codes)) == "CCCCCC"

    def test_five_collisions_fail(self):
        made = []

        def make():
            made.append("AAAAAA")
            return "AAAAAA"

        with pytest.raises(CodeGenerationError):
            generate_code(lambda c: True, max_attempts=5, make=make)
        assert len(made) == 5

    def test_create_session_generates_unique_code(self, db):
        a = create_session(db)
        b = create_session(db)
        assert a.code != b.code
        assert len(a.code) == 6


# =====================================================================
# Staged fallback
# =====================================================================
class TestFallback:
    def test_first_success_wins(self):
        result = run_with_fallback([Stage("a", lambda: 1), Stage("b", lambda: 2)])
        assert result.ok
        assert result.stage == "a"
        assert result.unwrap() == 1

    def test_falls_back_on_upstream_error(self):
        def boom():
            raise UpstreamError("down")

        result = run_with_fallback([Stage("a", boom), Stage("b", lambda: 2)])
        assert result.stage == "b"
        assert result.unwrap() == 2

    def test_last_failure_returned(self):
        def boom():
            raise UpstreamError("down")

        result = run_with_fallback([Stage("a", boom), Stage("b", boom)])
        assert not result.ok
        assert result.stage == "b"
        with pytest.raises(UpstreamError):
            result.unwrap()

    def test_other_exceptions_propagate(self):
        def bug():
            raise KeyError("x")

        with pytest.raises(KeyError):
            run_with_fallback([Stage("a", bug), Stage("b", lambda: 2)])
