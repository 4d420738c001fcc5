"""
Allocation engine.

Pure functions over items, claims and session totals; nothing here
touches the store, so repeated calls on the same inputs give the same
cents.  Items, claims and totals are duck-typed (schemas or ORM rows).
"""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Any, Iterable, Optional

from splitsmart.pipeline.ledger import round_half_up
from splitsmart.schemas import Share


def _share_weight(claim: Any) -> Decimal:
    share = getattr(claim, "share", None)
    if share is None:
        share = 1.0
    return Decimal(str(share))


def claims_by_item(claims: Iterable[Any]) -> dict[str, list[Any]]:
    grouped: dict[str, list[Any]] = defaultdict(list)
    for claim in claims:
        grouped[claim.item_id].append(claim)
    return grouped


def item_portion(total_cents: int, claim: Any, item_claims: list[Any]) -> int:
    """``round(total * share / total_shares)``; 0 for degenerate share sums."""
    total_shares = sum((_share_weight(c) for c in item_claims), Decimal(0))
    if total_shares <= 0:
        return 0
    return round_half_up(Decimal(total_cents or 0) * _share_weight(claim) / total_shares)


def proportional(items_cents: int, subtotal_cents: Optional[int], amount_cents: Optional[int]) -> int:
    """Allocate *amount_cents* by ``items_cents / subtotal_cents``."""
    base = subtotal_cents or 0
    if base <= 0:
        return 0
    return round_half_up(Decimal(items_cents) * Decimal(amount_cents or 0) / Decimal(base))


def compute_share(
    participant_id: str,
    items: Iterable[Any],
    claims: Iterable[Any],
    totals: Any,
    grouped: Optional[dict[str, list[Any]]] = None,
) -> Share:
    """What *participant_id* owes.

    Tax and tip are allocated against the session subtotal, not against
    the claimed amount, so unclaimed items keep their share of tax/tip
    unassigned rather than pushing it onto claimants.
    """
    if grouped is None:
        grouped = claims_by_item(claims)

    items_cents = 0
    for item in items:
        item_claims = grouped.get(item.id)
        if not item_claims:
            continue
        mine = next((c for c in item_claims if c.participant_id == participant_id), None)
        if mine is None:
            continue
        items_cents += item_portion(item.total_cents, mine, item_claims)

    tax_cents = proportional(items_cents, totals.subtotal_cents, totals.tax_cents)
    tip_cents = proportional(items_cents, totals.subtotal_cents, totals.tip_cents)
    return Share(
        items_cents=items_cents,
        tax_cents=tax_cents,
        tip_cents=tip_cents,
        total_cents=items_cents + tax_cents + tip_cents,
    )


def summarize(
    participant_ids: Iterable[str],
    items: Iterable[Any],
    claims: Iterable[Any],
    totals: Any,
) -> tuple[dict[str, Share], int]:
    """Shares for every participant, plus the cents nobody has claimed."""
    items = list(items)
    grouped = claims_by_item(claims)
    shares = {
        pid: compute_share(pid, items, (), totals, grouped=grouped)
        for pid in participant_ids
    }
    unclaimed = sum(
        (item.total_cents or 0)
        for item in items
        if sum((_share_weight(c) for c in grouped.get(item.id, ())), Decimal(0)) <= 0
    )
    return shares, unclaimed
