"""
Session lifecycle endpoints.

POST /api/sessions                        — create session + host with a join code
GET  /api/sessions                        — recent sessions (dev helper)
GET  /api/sessions/{code}/items           — session totals + items
POST /api/sessions/{code}/items           — replace ledger from a parsed receipt
POST /api/sessions/{code}/receipt         — upload image → parse → replace ledger
POST /api/sessions/{code}/participants    — join (creates the session if unknown)
GET  /api/sessions/{code}/participants    — list participants
GET  /api/sessions/{code}/host            — host info
POST /api/sessions/{code}/host            — set host name / email
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from splitsmart.database import get_db
from splitsmart.models import SessionModel
from splitsmart.pipeline import apply_receipt
from splitsmart.pipeline.ledger import normalize_currency
from splitsmart.pipeline.receipt_parser import ReceiptParser
from splitsmart.pipeline.sessions import (
    create_session,
    find_session,
    get_host,
    get_or_create_session,
    get_session,
    join_session,
    list_items,
    list_participants,
    set_host,
)
from splitsmart.schemas import (
    CreateSessionRequest,
    Host,
    HostRequest,
    Item,
    JoinRequest,
    ParsedReceipt,
    Participant,
    ParticipantResponse,
    SessionInfo,
    SessionItemsResponse,
    SessionResponse,
)
from splitsmart.services import get_receipt_parser

logger = logging.getLogger(__name__)
router = APIRouter()


def transform_session_items(db: Session, session: SessionModel) -> SessionItemsResponse:
    return SessionItemsResponse(
        session=SessionInfo.model_validate(session),
        currency=normalize_currency(session.currency),
        items=[Item.model_validate(i) for i in list_items(db, session)],
    )


# ── POST /api/sessions ───────────────────────────────────────────────────
@router.post("/sessions", response_model=SessionResponse)
def create(req: Optional[CreateSessionRequest] = None, db: Session = Depends(get_db)):
    req = req or CreateSessionRequest()
    session = create_session(db, req.currency, req.host_name, req.host_email)
    return SessionResponse(session=SessionInfo.model_validate(session))


# ── GET /api/sessions ────────────────────────────────────────────────────
@router.get("/sessions")
def list_sessions(db: Session = Depends(get_db)):
    rows = db.query(SessionModel).order_by(SessionModel.created_at.desc()).limit(50).all()
    return {"ok": True, "sessions": [SessionInfo.model_validate(r) for r in rows]}


# ── GET /api/sessions/{code}/items ───────────────────────────────────────
@router.get("/sessions/{code}/items", response_model=SessionItemsResponse)
def get_items(code: str, db: Session = Depends(get_db)):
    session = get_session(db, code)
    return transform_session_items(db, session)


# ── POST /api/sessions/{code}/items ──────────────────────────────────────
@router.post("/sessions/{code}/items", response_model=SessionItemsResponse)
def replace_items(code: str, parsed: ParsedReceipt, db: Session = Depends(get_db)):
    logger.info("Replace items: code=%s  items=%d", code, len(parsed.items))
    session = apply_receipt(db, code, parsed)
    return transform_session_items(db, session)


# ── POST /api/sessions/{code}/receipt ────────────────────────────────────
@router.post("/sessions/{code}/receipt", response_model=SessionItemsResponse)
async def upload_receipt(
    code: str,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    parser: ReceiptParser = Depends(get_receipt_parser),
):
    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="file is empty")
    outcome = await run_in_threadpool(parser.parse, data, file.content_type or "image/jpeg")
    logger.info("Parsed receipt for %s with %s", code, outcome.model_used)
    session = await run_in_threadpool(apply_receipt, db, code, outcome.receipt)
    return await run_in_threadpool(transform_session_items, db, session)


# ── POST /api/sessions/{code}/participants ───────────────────────────────
@router.post("/sessions/{code}/participants", response_model=ParticipantResponse)
def join(code: str, req: Optional[JoinRequest] = None, db: Session = Depends(get_db)):
    session = get_or_create_session(db, code)
    participant = join_session(db, session, req.name if req else None)
    return ParticipantResponse(participant=Participant.model_validate(participant))


# ── GET /api/sessions/{code}/participants ────────────────────────────────
@router.get("/sessions/{code}/participants")
def participants(code: str, db: Session = Depends(get_db)):
    session = find_session(db, code)
    if session is None:
        return {"ok": True, "participants": []}
    rows = list_participants(db, session)
    return {"ok": True, "participants": [Participant.model_validate(p) for p in rows]}


# ── GET /api/sessions/{code}/host ────────────────────────────────────────
@router.get("/sessions/{code}/host")
def host_info(code: str, db: Session = Depends(get_db)):
    session = get_session(db, code)
    host = get_host(db, session)
    return {"ok": True, "host": Host.model_validate(host) if host else None}


# ── POST /api/sessions/{code}/host ───────────────────────────────────────
@router.post("/sessions/{code}/host")
def update_host(code: str, req: Optional[HostRequest] = None, db: Session = Depends(get_db)):
    req = req or HostRequest()
    session = get_session(db, code)
    host = set_host(db, session, req.name, req.email)
    logger.info("Host for %s set to %s", session.code, host.id)
    return {"ok": True, "host": Host.model_validate(host)}
