"""
Row-change notifications for the session store.

SQLAlchemy session events collect the rows touched by each flush and
publish them to subscribers once the surrounding transaction commits.
Rolled-back work is discarded, so a subscriber never hears about a
change that did not land.  Delivery is at-least-once from the reader's
point of view: a notification is only a signal to re-fetch.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from sqlalchemy import event, inspect

logger = logging.getLogger(__name__)

_PENDING_KEY = "splitsmart.pending_changes"


@dataclass(frozen=True)
class ChangeEvent:
    table: str
    op: str  # insert | update | delete
    row: dict[str, Any] = field(default_factory=dict)


@dataclass
class Subscription:
    table: str
    match: dict[str, Any]
    callback: Callable[[ChangeEvent], None]
    feed: "ChangeFeed"

    def matches(self, change: ChangeEvent) -> bool:
        if change.table != self.table:
            return False
        return all(change.row.get(k) == v for k, v in self.match.items())

    def close(self) -> None:
        self.feed.unsubscribe(self)


class ChangeFeed:
    """Fan-out of committed row changes, filtered by table and equality."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subs: list[Subscription] = []

    def subscribe(
        self,
        table: str,
        callback: Callable[[ChangeEvent], None],
        match: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        sub = Subscription(table=table, match=dict(match or {}), callback=callback, feed=self)
        with self._lock:
            self._subs.append(sub)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            if sub in self._subs:
                self._subs.remove(sub)

    def publish(self, change: ChangeEvent) -> int:
        with self._lock:
            targets = [s for s in self._subs if s.matches(change)]
        for sub in targets:
            try:
                sub.callback(change)
            except Exception:
                # a broken listener must not fail the writer that committed
                logger.exception("Change subscriber failed for %s/%s", change.table, change.op)
        return len(targets)

    def __len__(self) -> int:
        with self._lock:
            return len(self._subs)


change_feed = ChangeFeed()


# ---------------------------------------------------------------------------
# SQLAlchemy wiring
# ---------------------------------------------------------------------------

def _snapshot(obj: Any) -> tuple[str, dict[str, Any]]:
    state = inspect(obj)
    table = state.mapper.local_table.name
    loaded = state.dict
    row = {
        attr.key: loaded.get(attr.key)
        for attr in state.mapper.column_attrs
        if attr.key in loaded
    }
    # expired rows only carry what changed; keep the key so filters on id work
    if state.identity:
        for col, value in zip(state.mapper.primary_key, state.identity):
            row.setdefault(col.key, value)
    return table, row


def _collect(session, flush_context) -> None:
    pending = session.info.setdefault(_PENDING_KEY, [])
    for op, objs in (
        ("insert", session.new),
        ("update", session.dirty),
        ("delete", session.deleted),
    ):
        for obj in objs:
            if op == "update" and not session.is_modified(obj):
                continue
            table, row = _snapshot(obj)
            pending.append(ChangeEvent(table=table, op=op, row=row))


def attach_change_feed(session_factory, feed: ChangeFeed = change_feed) -> None:
    """Publish committed changes made through *session_factory* to *feed*."""

    def _publish(session) -> None:
        changes = session.info.pop(_PENDING_KEY, [])
        for change in changes:
            feed.publish(change)

    def _discard(session, *args) -> None:
        session.info.pop(_PENDING_KEY, None)

    if event.contains(session_factory, "after_flush", _collect):
        return
    event.listen(session_factory, "after_flush", _collect)
    event.listen(session_factory, "after_commit", _publish)
    event.listen(session_factory, "after_rollback", _discard)
