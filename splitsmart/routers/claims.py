"""
Claim and allocation endpoints.

GET  /api/sessions/{code}/claims                  — all claims on the session's items
POST /api/sessions/{code}/claims                  — toggle one claim
POST /api/sessions/{code}/claims/ensure           — claim items without un-claiming any
GET  /api/sessions/{code}/shares/{participant_id} — what one participant owes
GET  /api/sessions/{code}/summary                 — every participant's share
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from splitsmart.cache import Memory
from splitsmart.database import get_db
from splitsmart.pipeline.allocation import compute_share, summarize
from splitsmart.pipeline.claims import ensure_claims, list_claims, toggle_claim
from splitsmart.pipeline.ledger import format_cents, normalize_currency
from splitsmart.pipeline.sessions import get_participant, get_session, list_items, list_participants
from splitsmart.schemas import (
    Claim,
    EnsureClaimsRequest,
    EnsureClaimsResponse,
    SessionTotals,
    Share,
    ShareResponse,
    SummaryResponse,
    ToggleClaimRequest,
    ToggleClaimResponse,
)
from splitsmart.services import get_memory

logger = logging.getLogger(__name__)
router = APIRouter()


def transform_share(participant_id: str, share: Share, currency: str) -> ShareResponse:
    return ShareResponse(
        participant_id=participant_id,
        currency=currency,
        share=share,
        display={
            "items": format_cents(share.items_cents, currency),
            "tax": format_cents(share.tax_cents, currency),
            "tip": format_cents(share.tip_cents, currency),
            "total": format_cents(share.total_cents, currency),
        },
    )


# ── GET /api/sessions/{code}/claims ──────────────────────────────────────
@router.get("/sessions/{code}/claims")
def get_claims(code: str, db: Session = Depends(get_db)):
    session = get_session(db, code)
    rows = list_claims(db, session)
    return {"ok": True, "claims": [Claim.model_validate(c) for c in rows]}


# ── POST /api/sessions/{code}/claims ─────────────────────────────────────
@router.post("/sessions/{code}/claims", response_model=ToggleClaimResponse)
def toggle(
    code: str,
    req: ToggleClaimRequest,
    db: Session = Depends(get_db),
    memory: Memory = Depends(get_memory),
):
    session = get_session(db, code)
    toggled = toggle_claim(
        db, session, req.item_id, req.participant_id,
        share=req.share, seq=req.seq, memory=memory,
    )
    return ToggleClaimResponse(toggled=toggled)


# ── POST /api/sessions/{code}/claims/ensure ──────────────────────────────
@router.post("/sessions/{code}/claims/ensure", response_model=EnsureClaimsResponse)
def ensure(
    code: str,
    req: EnsureClaimsRequest,
    db: Session = Depends(get_db),
    memory: Memory = Depends(get_memory),
):
    session = get_session(db, code)
    added, already = ensure_claims(db, session, req.item_ids, req.participant_id, memory=memory)
    return EnsureClaimsResponse(added=added, already_claimed=already)


# ── GET /api/sessions/{code}/shares/{participant_id} ─────────────────────
@router.get("/sessions/{code}/shares/{participant_id}", response_model=ShareResponse)
def participant_share(code: str, participant_id: str, db: Session = Depends(get_db)):
    session = get_session(db, code)
    get_participant(db, session, participant_id)
    share = compute_share(participant_id, list_items(db, session), list_claims(db, session), session)
    return transform_share(participant_id, share, normalize_currency(session.currency))


# ── GET /api/sessions/{code}/summary ─────────────────────────────────────
@router.get("/sessions/{code}/summary", response_model=SummaryResponse)
def summary(code: str, db: Session = Depends(get_db)):
    session = get_session(db, code)
    currency = normalize_currency(session.currency)
    pids = [p.id for p in list_participants(db, session)]
    shares, unclaimed = summarize(pids, list_items(db, session), list_claims(db, session), session)
    return SummaryResponse(
        currency=currency,
        totals=SessionTotals(
            subtotal_cents=session.subtotal_cents,
            tax_cents=session.tax_cents,
            tip_cents=session.tip_cents,
            total_cents=session.total_cents,
            currency=currency,
        ),
        shares=[transform_share(pid, shares[pid], currency) for pid in pids],
        allocated_cents=sum(s.total_cents for s in shares.values()),
        unclaimed_cents=unclaimed,
    )
