"""
Ledger normalizer.

Single owner of decimal → integer-cents conversion.  Every monetary field
is converted on its own (never derived from another field by
subtraction), so rounding error cannot compound across fields.
"""
from __future__ import annotations

import logging
import re
import uuid
from decimal import ROUND_HALF_UP, Decimal
from typing import Optional, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from splitsmart.errors import StoreError
from splitsmart.models import ItemModel, SessionModel
from splitsmart.schemas import LedgerItem, ParsedReceipt, SessionTotals

logger = logging.getLogger(__name__)

Number = Union[int, float, Decimal, str]

DEFAULT_CURRENCY = "USD"
CURRENCY_SYMBOLS = {"$": "USD", "€": "EUR", "£": "GBP"}
DISPLAY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}
_ISO_CODE = re.compile(r"^[A-Z]{3}$")

_HUNDRED = Decimal(100)
_ONE = Decimal(1)


def _decimal(value: Optional[Number]) -> Decimal:
    if value is None:
        return Decimal(0)
    if isinstance(value, Decimal):
        return value
    # str() keeps 9.99 as 9.99 instead of its binary expansion
    return Decimal(str(value))


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(_ONE, rounding=ROUND_HALF_UP))


def to_cents(amount: Optional[Number]) -> int:
    """``round(amount * 100)``, half-up; missing amounts are 0."""
    return round_half_up(_decimal(amount) * _HUNDRED)


def normalize_currency(code: Optional[str]) -> str:
    if not code:
        return DEFAULT_CURRENCY
    token = code.strip().upper()
    if token in CURRENCY_SYMBOLS:
        return CURRENCY_SYMBOLS[token]
    if _ISO_CODE.match(token):
        return token
    return DEFAULT_CURRENCY


def format_cents(cents: Optional[int], currency: Optional[str] = None) -> str:
    """Display string; negative amounts are shown as zero."""
    code = normalize_currency(currency)
    value = Decimal(max(0, cents or 0)) / _HUNDRED
    amount = f"{value:,.2f}"
    symbol = DISPLAY_SYMBOLS.get(code)
    return f"{symbol}{amount}" if symbol else f"{code} {amount}"


def normalize(parsed: ParsedReceipt) -> tuple[list[LedgerItem], SessionTotals]:
    """Convert a parsed receipt into cents-denominated items and totals."""
    items: list[LedgerItem] = []
    for idx, it in enumerate(parsed.items, 1):
        quantity = it.quantity if it.quantity and it.quantity > 0 else 1.0
        if it.total is not None:
            total_cents = to_cents(it.total)
        else:
            total_cents = to_cents(_decimal(quantity) * _decimal(it.unit_price))
        items.append(
            LedgerItem(
                name=it.name or f"Item {idx}",
                quantity=quantity,
                unit_price_cents=to_cents(it.unit_price),
                total_cents=total_cents,
                tax_included=bool(it.tax_included),
            )
        )

    totals = SessionTotals(
        subtotal_cents=to_cents(parsed.subtotal),
        tax_cents=to_cents(parsed.tax),
        tip_cents=to_cents(parsed.tip),
        total_cents=to_cents(parsed.total),
        currency=normalize_currency(parsed.currency),
    )
    drift = totals.subtotal_cents + totals.tax_cents + totals.tip_cents - totals.total_cents
    if drift:
        # advisory only; allocation uses subtotal/tax/tip, never total
        logger.info("Receipt totals drift by %d cents", drift)
    return items, totals


def replace_ledger(
    db: Session,
    session: SessionModel,
    items: list[LedgerItem],
    totals: SessionTotals,
) -> SessionModel:
    """Replace the session's items and totals in one transaction.

    Order is delete → insert → update, flushed step by step; readers may
    see an empty item list mid-way but never old and new items together.
    Any failure rolls everything back and surfaces as a retryable
    :class:`StoreError`.
    """
    try:
        old = db.query(ItemModel).filter(ItemModel.session_id == session.id).all()
        for row in old:
            db.delete(row)
        db.flush()

        for position, item in enumerate(items):
            db.add(
                ItemModel(
                    id=str(uuid.uuid4()),
                    session_id=session.id,
                    position=position,
                    name=item.name,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    total_cents=item.total_cents,
                    tax_included=item.tax_included,
                )
            )
        db.flush()

        session.subtotal_cents = totals.subtotal_cents
        session.tax_cents = totals.tax_cents
        session.tip_cents = totals.tip_cents
        session.total_cents = totals.total_cents
        session.currency = totals.currency
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Ledger replacement failed for session %s: %s", session.id, exc)
        raise StoreError(
            "Receipt replacement failed; no changes were committed. Retry the upload."
        ) from exc

    db.refresh(session)
    logger.info(
        "Replaced ledger for session %s: %d items (was %d), subtotal=%d",
        session.code, len(items), len(old), totals.subtotal_cents,
    )
    return session
