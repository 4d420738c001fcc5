"""
Suggestion endpoint.

GET /api/sessions/{code}/suggestions?participant_id=...&limit=...
"""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from splitsmart.cache import Memory
from splitsmart.database import get_db
from splitsmart.pipeline.claims import list_claims
from splitsmart.pipeline.sessions import get_session, list_items
from splitsmart.pipeline.suggestions import (
    SuggestionModel,
    local_suggestions,
    merge_suggestions,
    suggest,
)
from splitsmart.schemas import SuggestionResponse
from splitsmart.services import get_memory, get_suggestion_model

logger = logging.getLogger(__name__)
router = APIRouter()


# ── GET /api/sessions/{code}/suggestions ─────────────────────────────────
@router.get("/sessions/{code}/suggestions", response_model=SuggestionResponse)
def suggestions(
    code: str,
    participant_id: str = Query(..., min_length=1),
    limit: Optional[int] = Query(None),
    db: Session = Depends(get_db),
    memory: Memory = Depends(get_memory),
    model: Optional[SuggestionModel] = Depends(get_suggestion_model),
):
    session = get_session(db, code)
    items = list_items(db, session)
    claims = list_claims(db, session)

    remote = suggest(db, session, participant_id, items, claims, limit=limit, model=model)
    claimed_by_me = {c.item_id for c in claims if c.participant_id == participant_id}
    local = local_suggestions(memory, session.code, participant_id, items, claimed_by_me)

    return SuggestionResponse(
        suggestions=merge_suggestions(local, remote.item_ids, claimed_by_me),
        source=remote.source,
        local=local,
        remote=remote.item_ids,
    )
