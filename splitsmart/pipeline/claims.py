"""
Claim store.

``toggle_claim`` inserts a claim when absent and deletes it when present,
so the (item, participant) pair never has more than one row.  Callers
that need "ensure claimed" semantics use ``ensure_claims`` instead of
calling toggle twice.
"""
from __future__ import annotations

import logging
import uuid
from typing import Optional

from sqlalchemy.orm import Session

from splitsmart.cache import Memory, claimed_names_key
from splitsmart.database import commit
from splitsmart.errors import ConflictError, NotFoundError
from splitsmart.models import ClaimModel, ClaimToggleModel, ItemModel, SessionModel
from splitsmart.pipeline.sessions import get_participant

logger = logging.getLogger(__name__)

ADDED = "added"
REMOVED = "removed"


def _get_item(db: Session, session: SessionModel, item_id: str) -> ItemModel:
    item = (
        db.query(ItemModel)
        .filter(ItemModel.id == item_id, ItemModel.session_id == session.id)
        .first()
    )
    if item is None:
        raise NotFoundError("Item not in session", item_id=item_id)
    return item


def _find_claim(db: Session, item_id: str, participant_id: str) -> Optional[ClaimModel]:
    return (
        db.query(ClaimModel)
        .filter(ClaimModel.item_id == item_id, ClaimModel.participant_id == participant_id)
        .first()
    )


def _check_sequence(db: Session, item_id: str, participant_id: str, seq: int) -> None:
    marker = db.get(ClaimToggleModel, (item_id, participant_id))
    if marker is not None and seq <= marker.last_seq:
        raise ConflictError(
            "Stale or duplicate toggle",
            seq=seq,
            last_seq=marker.last_seq,
        )
    if marker is None:
        db.add(ClaimToggleModel(item_id=item_id, participant_id=participant_id, last_seq=seq))
    else:
        marker.last_seq = seq


def list_claims(db: Session, session: SessionModel) -> list[ClaimModel]:
    """Every claim whose item belongs to *session*."""
    return (
        db.query(ClaimModel)
        .join(ItemModel, ClaimModel.item_id == ItemModel.id)
        .filter(ItemModel.session_id == session.id)
        .order_by(ClaimModel.created_at)
        .all()
    )


def toggle_claim(
    db: Session,
    session: SessionModel,
    item_id: str,
    participant_id: str,
    share: float = 1.0,
    seq: Optional[int] = None,
    memory: Optional[Memory] = None,
) -> str:
    """Flip the claim for (item, participant); returns ``"added"`` or ``"removed"``."""
    _get_item(db, session, item_id)
    get_participant(db, session, participant_id)
    if share <= 0:
        share = 1.0

    if seq is not None:
        _check_sequence(db, item_id, participant_id, seq)

    existing = _find_claim(db, item_id, participant_id)
    if existing is not None:
        db.delete(existing)
        result = REMOVED
    else:
        db.add(
            ClaimModel(
                id=str(uuid.uuid4()),
                item_id=item_id,
                participant_id=participant_id,
                session_id=session.id,
                share=share,
            )
        )
        result = ADDED
    commit(db, "Toggle claim")
    logger.info("Claim %s: item=%s participant=%s", result, item_id, participant_id)

    if memory is not None:
        remember_claimed_names(db, session, participant_id, memory)
    return result


def ensure_claims(
    db: Session,
    session: SessionModel,
    item_ids: list[str],
    participant_id: str,
    memory: Optional[Memory] = None,
) -> tuple[list[str], list[str]]:
    """Claim every item in *item_ids* that is not already claimed.

    Returns ``(added, already_claimed)``.  Never removes a claim.
    """
    get_participant(db, session, participant_id)
    wanted = list(dict.fromkeys(item_ids))
    for item_id in wanted:
        _get_item(db, session, item_id)

    added: list[str] = []
    already: list[str] = []
    for item_id in wanted:
        if _find_claim(db, item_id, participant_id) is not None:
            already.append(item_id)
            continue
        db.add(
            ClaimModel(
                id=str(uuid.uuid4()),
                item_id=item_id,
                participant_id=participant_id,
                session_id=session.id,
                share=1.0,
            )
        )
        added.append(item_id)
    if added:
        commit(db, "Claim items")
        logger.info("Claimed %d items for participant %s", len(added), participant_id)

    if memory is not None:
        remember_claimed_names(db, session, participant_id, memory)
    return added, already


def remember_claimed_names(
    db: Session, session: SessionModel, participant_id: str, memory: Memory
) -> list[str]:
    """Store the names of the participant's current claims as local history.

    Receipt re-uploads wipe claims but not this memory, which is what lets
    the same names be suggested again afterwards.
    """
    rows = (
        db.query(ItemModel.name)
        .join(ClaimModel, ClaimModel.item_id == ItemModel.id)
        .filter(ItemModel.session_id == session.id, ClaimModel.participant_id == participant_id)
        .all()
    )
    names = list(dict.fromkeys(name for (name,) in rows if name))
    memory.set(claimed_names_key(session.code, participant_id), names)
    return names
