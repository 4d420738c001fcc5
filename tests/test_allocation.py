"""
Unit tests for the allocation engine.
"""
from types import SimpleNamespace

from splitsmart.pipeline.allocation import compute_share, item_portion, proportional, summarize


def _item(id, total_cents):
    return SimpleNamespace(id=id, total_cents=total_cents)


def _claim(item_id, participant_id, share=1.0):
    return SimpleNamespace(item_id=item_id, participant_id=participant_id, share=share)


TOTALS = SimpleNamespace(subtotal_cents=3000, tax_cents=300, tip_cents=500)
ITEMS = [_item("a", 1000), _item("b", 2000)]


class TestComputeShare:
    def test_single_claim_scenario(self):
        share = compute_share("x", ITEMS, [_claim("a", "x")], TOTALS)
        assert share.items_cents == 1000
        assert share.tax_cents == 100
        assert share.tip_cents == 167
        assert share.total_cents == 1267

    def test_even_split(self):
        items = [_item("c", 1000)]
        claims = [_claim("c", "x"), _claim("c", "y")]
        totals = SimpleNamespace(subtotal_cents=1000, tax_cents=0, tip_cents=0)
        assert compute_share("x", items, claims, totals).items_cents == 500
        assert compute_share("y", items, claims, totals).items_cents == 500

    def test_weighted_split(self):
        items = [_item("c", 900)]
        claims = [_claim("c", "x", 2.0), _claim("c", "y", 1.0)]
        totals = SimpleNamespace(subtotal_cents=900, tax_cents=0, tip_cents=0)
        assert compute_share("x", items, claims, totals).items_cents == 600
        assert compute_share("y", items, claims, totals).items_cents == 300

    def test_no_claims_owes_nothing(self):
        share = compute_share("z", ITEMS, [_claim("a", "x")], TOTALS)
        assert share.model_dump() == {
            "items_cents": 0, "tax_cents": 0, "tip_cents": 0, "total_cents": 0,
        }

    def test_zero_subtotal_guards_tax_and_tip(self):
        totals = SimpleNamespace(subtotal_cents=0, tax_cents=300, tip_cents=500)
        share = compute_share("x", ITEMS, [_claim("a", "x")], totals)
        assert share.items_cents == 1000
        assert share.tax_cents == 0
        assert share.tip_cents == 0

    def test_degenerate_shares_are_unclaimed(self):
        share = compute_share("x", ITEMS, [_claim("a", "x", 0.0)], TOTALS)
        assert share.items_cents == 0

    def test_negative_totals_not_clamped(self):
        items = [_item("d", -500)]
        totals = SimpleNamespace(subtotal_cents=-500, tax_cents=0, tip_cents=0)
        share = compute_share("x", items, [_claim("d", "x")], totals)
        assert share.items_cents == -500
        assert share.total_cents == -500

    def test_deterministic(self):
        claims = [_claim("a", "x"), _claim("b", "x"), _claim("b", "y")]
        assert compute_share("x", ITEMS, claims, TOTALS) == compute_share("x", ITEMS, claims, TOTALS)


class TestConservation:
    def test_fully_claimed_item_sums_within_rounding(self):
        items = [_item("c", 1000)]
        claims = [_claim("c", p) for p in ("x", "y", "z")]
        totals = SimpleNamespace(subtotal_cents=1000, tax_cents=0, tip_cents=0)
        portions = [compute_share(p, items, claims, totals).items_cents for p in ("x", "y", "z")]
        assert portions == [333, 333, 333]
        assert abs(sum(portions) - 1000) <= len(claims)

    def test_helpers(self):
        claims = [_claim("c", "x"), _claim("c", "y")]
        assert item_portion(1001, claims[0], claims) == 501
        assert proportional(1000, 3000, 500) == 167
        assert proportional(1000, None, 500) == 0


class TestSummarize:
    def test_shares_and_unclaimed(self):
        claims = [_claim("a", "x")]
        shares, unclaimed = summarize(["x", "y"], ITEMS, claims, TOTALS)
        assert shares["x"].total_cents == 1267
        assert shares["y"].total_cents == 0
        assert unclaimed == 2000
