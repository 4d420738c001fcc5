"""
Suggestion engine: "claim your usual order".

Pipeline, strictly ordered:

1. the participant's display name becomes an :class:`IdentityKey`
   (blank name → no suggestions);
2. every participant record, in any session, with the same key is
   treated as the same diner;
3. their claims, newest first, are scored per lowercased item name with
   ``max(1, 2 - age_days / 30)``;
4. when a suggestion model is configured, it picks from the current
   items given the top favourites; any failure falls through to
5. the deterministic heuristic: current items with a positive score,
   highest first.

Separately, ``local_suggestions`` matches current items against the names
the participant claimed earlier in the same session (kept in the
process memory), and ``merge_suggestions`` combines both lists.
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from splitsmart.cache import Memory, claimed_names_key
from splitsmart.database import utcnow
from splitsmart.errors import UpstreamError
from splitsmart.llm import GeminiClient, extract_json_array
from splitsmart.models import ClaimModel, ItemModel, ParticipantModel, SessionModel
from splitsmart.pipeline.fallback import Stage, run_with_fallback
from splitsmart.pipeline.sessions import get_participant

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 10
MODEL_FAVORITES = 50
HISTORY_MIN = 25
HISTORY_MAX = 200
HISTORY_DEFAULT = 100

SOURCE_MODEL = "model"
SOURCE_HEURISTIC = "heuristic"
SOURCE_NONE = "none"


@dataclass(frozen=True)
class IdentityKey:
    """Cross-session identity proxy: a trimmed, case-folded display name.

    Names are not authenticated, so anyone can claim to be anyone.  The
    key is only ever used to look up suggestion hints, never to grant
    access to anything.
    """
    value: str

    @classmethod
    def from_name(cls, name: Optional[str]) -> Optional["IdentityKey"]:
        cleaned = (name or "").strip()
        if not cleaned:
            return None
        return cls(cleaned.lower())


@dataclass
class HistoricalClaim:
    item_name: str
    claimed_at: datetime


@dataclass
class SuggestionResult:
    item_ids: list[str] = field(default_factory=list)
    source: str = SOURCE_NONE


class SuggestionModel(Protocol):
    def complete(self, prompt: str) -> str: ...


class GeminiSuggestionModel:
    def __init__(self, client: GeminiClient, model: str):
        self.client = client
        self.model = model

    def complete(self, prompt: str) -> str:
        return self.client.generate_text(self.model, [prompt])


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

def clamp_limit(limit: Optional[int]) -> int:
    if limit is None:
        return HISTORY_DEFAULT
    return min(HISTORY_MAX, max(HISTORY_MIN, int(limit)))


def recency_weight(claimed_at: datetime, now: datetime) -> float:
    """2.0 for a claim made now, sliding to a floor of 1.0 at 30 days."""
    age_days = max(0.0, (now - claimed_at).total_seconds() / 86400)
    return max(1.0, 2.0 - age_days / 30)


def score_history(history: Iterable[HistoricalClaim], now: datetime) -> dict[str, float]:
    scores: dict[str, float] = {}
    for row in history:
        name = (row.item_name or "").strip().lower()
        if not name:
            continue
        scores[name] = scores.get(name, 0.0) + recency_weight(row.claimed_at, now)
    return scores


def top_favorites(scores: dict[str, float], n: int = MODEL_FAVORITES) -> list[dict[str, Any]]:
    ranked = sorted(scores.items(), key=lambda kv: kv[1], reverse=True)[:n]
    return [{"name": name, "score": round(score, 3)} for name, score in ranked]


def _key(name: Optional[str]) -> str:
    return (name or "").lower()


def heuristic_suggestions(
    current_items: Iterable[Any],
    scores: dict[str, float],
    claimed_by_me: set[str],
) -> list[str]:
    scored = []
    for item in current_items:
        if item.id in claimed_by_me:
            continue
        score = scores.get(_key(item.name), 0.0)
        if score > 0:
            scored.append((score, item.id))
    # stable sort: ties keep receipt order
    scored.sort(key=lambda pair: pair[0], reverse=True)
    return [item_id for _, item_id in scored[:MAX_SUGGESTIONS]]


def map_names_to_ids(
    names: Iterable[Any],
    current_items: Iterable[Any],
    claimed_by_me: set[str],
) -> list[str]:
    lower_to_id: dict[str, str] = {}
    for item in current_items:
        lower_to_id[_key(item.name)] = item.id
    ids: list[str] = []
    for name in names:
        item_id = lower_to_id.get(_key(str(name)))
        if item_id and item_id not in claimed_by_me and item_id not in ids:
            ids.append(item_id)
        if len(ids) >= MAX_SUGGESTIONS:
            break
    return ids


def build_prompt(current_names: list[str], favorites: list[dict[str, Any]]) -> str:
    return "\n".join([
        "You are helping match a diner's usual orders to items on the current receipt.",
        "Given the list of current receipt item names and the diner's historical favorites with scores,",
        f"return up to {MAX_SUGGESTIONS} current item names you recommend for this diner, as a JSON array of strings,",
        "with exact matches to receipt item names when possible.",
        "",
        f"Current items: {json.dumps(current_names)}",
        f"Historical favorites: {json.dumps(favorites)}",
        "Output strictly JSON array of strings, nothing else.",
    ])


def _model_suggestions(
    model: SuggestionModel,
    current_items: list[Any],
    scores: dict[str, float],
    claimed_by_me: set[str],
) -> list[str]:
    unclaimed = [it for it in current_items if it.id not in claimed_by_me]
    prompt = build_prompt([it.name for it in unclaimed], top_favorites(scores))
    try:
        text = model.complete(prompt)
    except UpstreamError:
        raise
    except Exception as exc:
        raise UpstreamError(f"suggestion model failed: {exc}") from exc
    names = extract_json_array(text)
    return map_names_to_ids(names, current_items, claimed_by_me)


def suggest_from_history(
    history: Iterable[HistoricalClaim],
    current_items: Iterable[Any],
    claimed_by_me: set[str],
    model: Optional[SuggestionModel] = None,
    now: Optional[datetime] = None,
) -> SuggestionResult:
    current_items = list(current_items)
    scores = score_history(history, now or utcnow())
    # no favorites to offer the model, so it is not asked; the answer is empty either way
    if not scores:
        return SuggestionResult([], SOURCE_NONE)

    stages: list[Stage[list[str]]] = []
    if model is not None and any(it.id not in claimed_by_me for it in current_items):
        stages.append(
            Stage(SOURCE_MODEL, lambda: _model_suggestions(model, current_items, scores, claimed_by_me))
        )
    stages.append(
        Stage(SOURCE_HEURISTIC, lambda: heuristic_suggestions(current_items, scores, claimed_by_me))
    )
    result = run_with_fallback(stages)
    return SuggestionResult(result.unwrap(), result.stage)


# ---------------------------------------------------------------------------
# Store access
# ---------------------------------------------------------------------------

def identity_participant_ids(db: Session, key: IdentityKey) -> list[str]:
    rows = (
        db.query(ParticipantModel.id)
        .filter(func.lower(func.trim(ParticipantModel.name)) == key.value)
        .all()
    )
    return [pid for (pid,) in rows]


def load_history(db: Session, participant_ids: list[str], limit: int) -> list[HistoricalClaim]:
    if not participant_ids:
        return []
    rows = (
        db.query(ItemModel.name, ClaimModel.created_at)
        .join(ItemModel, ClaimModel.item_id == ItemModel.id)
        .filter(ClaimModel.participant_id.in_(participant_ids))
        .order_by(ClaimModel.created_at.desc())
        .limit(limit)
        .all()
    )
    return [HistoricalClaim(item_name=name, claimed_at=created_at) for name, created_at in rows]


def suggest(
    db: Session,
    session: SessionModel,
    participant_id: str,
    current_items: Iterable[Any],
    current_claims: Iterable[Any],
    limit: Optional[int] = None,
    model: Optional[SuggestionModel] = None,
    now: Optional[datetime] = None,
) -> SuggestionResult:
    """Ranked item ids for *participant_id*; empty when there is nothing to go on."""
    participant = get_participant(db, session, participant_id)
    key = IdentityKey.from_name(participant.name)
    if key is None:
        return SuggestionResult([], SOURCE_NONE)

    pids = identity_participant_ids(db, key)
    if not pids:
        return SuggestionResult([], SOURCE_NONE)

    history = load_history(db, pids, clamp_limit(limit))
    claimed_by_me = {c.item_id for c in current_claims if c.participant_id == participant_id}
    result = suggest_from_history(history, current_items, claimed_by_me, model=model, now=now)
    logger.info(
        "Suggestions for %s: %d via %s (history=%d, identities=%d)",
        participant_id, len(result.item_ids), result.source, len(history), len(pids),
    )
    return result


# ---------------------------------------------------------------------------
# Same-session memory
# ---------------------------------------------------------------------------

def local_suggestions(
    memory: Memory,
    session_code: str,
    participant_id: str,
    current_items: Iterable[Any],
    claimed_by_me: set[str],
) -> list[str]:
    remembered = memory.get(claimed_names_key(session_code, participant_id)) or []
    wanted = {_key(n) for n in remembered if n}
    if not wanted:
        return []
    return [
        it.id for it in current_items
        if _key(it.name) in wanted and it.id not in claimed_by_me
    ]


def merge_suggestions(
    local: list[str],
    remote: list[str],
    claimed_by_me: set[str],
    limit: int = MAX_SUGGESTIONS,
) -> list[str]:
    merged = [i for i in dict.fromkeys(local + remote) if i not in claimed_by_me]
    return merged[:limit]
