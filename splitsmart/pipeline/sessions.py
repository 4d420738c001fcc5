"""
Session, participant and host lookups against the session store.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from splitsmart.config import settings
from splitsmart.database import commit
from splitsmart.errors import ConflictError, NotFoundError
from splitsmart.models import HostModel, ItemModel, ParticipantModel, SessionModel
from splitsmart.pipeline.codes import generate_code, normalize_code
from splitsmart.pipeline.ledger import normalize_currency

logger = logging.getLogger(__name__)


def find_session(db: Session, code: str) -> Optional[SessionModel]:
    return db.query(SessionModel).filter(SessionModel.code == normalize_code(code)).first()


def get_session(db: Session, code: str) -> SessionModel:
    session = find_session(db, code)
    if session is None:
        raise NotFoundError("Session not found", code=normalize_code(code))
    return session


def code_exists(db: Session, code: str) -> bool:
    return db.query(SessionModel.id).filter(SessionModel.code == code).first() is not None


def create_session(
    db: Session,
    currency: Optional[str] = None,
    host_name: Optional[str] = None,
    host_email: Optional[str] = None,
) -> SessionModel:
    code = generate_code(
        lambda c: code_exists(db, c),
        length=settings.CODE_LENGTH,
        max_attempts=settings.CODE_MAX_ATTEMPTS,
    )
    host = HostModel(id=str(uuid.uuid4()), name=host_name or None, email=host_email or None)
    session = SessionModel(
        id=str(uuid.uuid4()),
        code=code,
        host_id=host.id,
        currency=normalize_currency(currency) if currency else None,
    )
    db.add(host)
    db.add(session)
    commit(db, "Create session")
    logger.info("Created session %s (host %s)", code, host.id)
    return session


def get_or_create_session(db: Session, code: str, currency: Optional[str] = None) -> SessionModel:
    """Look up a session by code, creating it (with an anonymous host) if unknown."""
    session = find_session(db, code)
    if session is not None:
        return session
    host = HostModel(id=str(uuid.uuid4()))
    session = SessionModel(
        id=str(uuid.uuid4()),
        code=normalize_code(code),
        host_id=host.id,
        currency=normalize_currency(currency) if currency else None,
    )
    db.add(host)
    db.add(session)
    try:
        commit(db, "Create session")
    except ConflictError:
        # lost the race to a concurrent creator; theirs is as good as ours
        existing = find_session(db, code)
        if existing is None:
            raise
        return existing
    logger.info("Auto-created session %s", session.code)
    return session


def list_items(db: Session, session: SessionModel) -> list[ItemModel]:
    return (
        db.query(ItemModel)
        .filter(ItemModel.session_id == session.id)
        .order_by(ItemModel.position, ItemModel.created_at)
        .all()
    )


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

def join_session(db: Session, session: SessionModel, name: Optional[str] = None) -> ParticipantModel:
    display = (name or "").strip() or None
    participant = ParticipantModel(id=str(uuid.uuid4()), session_id=session.id, name=display)
    db.add(participant)
    commit(db, "Join session")
    logger.info("Participant %s joined %s", participant.id, session.code)
    return participant


def list_participants(db: Session, session: SessionModel) -> list[ParticipantModel]:
    return (
        db.query(ParticipantModel)
        .filter(ParticipantModel.session_id == session.id)
        .order_by(ParticipantModel.created_at)
        .all()
    )


def get_participant(db: Session, session: SessionModel, participant_id: str) -> ParticipantModel:
    participant = (
        db.query(ParticipantModel)
        .filter(ParticipantModel.id == participant_id, ParticipantModel.session_id == session.id)
        .first()
    )
    if participant is None:
        raise NotFoundError("Participant not found in session", participant_id=participant_id)
    return participant


# ---------------------------------------------------------------------------
# Host
# ---------------------------------------------------------------------------

def get_host(db: Session, session: SessionModel) -> Optional[HostModel]:
    if not session.host_id:
        return None
    return db.query(HostModel).filter(HostModel.id == session.host_id).first()


def set_host(
    db: Session, session: SessionModel, name: Optional[str], email: Optional[str]
) -> HostModel:
    host = get_host(db, session)
    if host is None:
        host = HostModel(id=str(uuid.uuid4()))
        db.add(host)
        session.host_id = host.id
    host.name = name
    host.email = email
    commit(db, "Update host")
    return host
