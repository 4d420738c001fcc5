"""
Payment endpoints.

POST /api/sessions/{code}/checkout — start hosted checkout for what a participant owes
GET  /api/payments/success         — provider success redirect (idempotent)
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from splitsmart.config import settings
from splitsmart.database import get_db
from splitsmart.pipeline.payments import PaymentProvider, handle_payment_success, start_checkout
from splitsmart.schemas import CheckoutRequest, CheckoutResponse
from splitsmart.services import get_payment_provider

logger = logging.getLogger(__name__)
router = APIRouter()


# ── POST /api/sessions/{code}/checkout ───────────────────────────────────
@router.post("/sessions/{code}/checkout", response_model=CheckoutResponse)
def checkout(
    code: str,
    request: Request,
    req: Optional[CheckoutRequest] = None,
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
):
    payment, session = start_checkout(
        db,
        code,
        req.participant_id if req else None,
        provider,
        price_id=settings.FLOWGLAD_PRICE_ID,
        callback_base=str(request.base_url),
        public_base=settings.PUBLIC_BASE_URL,
    )
    return CheckoutResponse(url=session.url, payment_id=payment.id, amount_cents=payment.amount_cents)


# ── GET /api/payments/success ────────────────────────────────────────────
@router.get("/payments/success")
def payment_success(
    code: str = Query(""),
    payment_id: str = Query(""),
    db: Session = Depends(get_db),
):
    payment = handle_payment_success(db, code, payment_id)
    logger.info("Payment success callback handled: %s", payment.id)
    dest = f"{settings.PUBLIC_BASE_URL.rstrip('/')}/s/{quote(code.strip().upper())}?paid=1"
    return RedirectResponse(dest, status_code=303)
