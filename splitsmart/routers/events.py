"""
Realtime change notifications.

WS /api/sessions/{code}/events

The server sends ``{"type": "subscribed"}`` once the subscriptions are
live, then ``{"type": "refresh", "tables": [...]}`` whenever committed
changes touch the session's rows.  Bursts are coalesced into a single
refresh; clients re-fetch what they show.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from splitsmart.database import get_db
from splitsmart.pipeline.sessions import find_session
from splitsmart.realtime import ChangeEvent, change_feed

logger = logging.getLogger(__name__)
router = APIRouter()

# tables scoped by session_id; the sessions row itself is matched on id
SESSION_TABLES = ("items", "participants", "claims", "payments")


async def _drain(websocket: WebSocket, queue: asyncio.Queue) -> None:
    while True:
        first: ChangeEvent = await queue.get()
        tables = {first.table}
        while not queue.empty():
            tables.add(queue.get_nowait().table)
        await websocket.send_json({"type": "refresh", "tables": sorted(tables)})


async def _stop(sender: asyncio.Task) -> None:
    sender.cancel()
    with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
        await sender


# ── WS /api/sessions/{code}/events ───────────────────────────────────────
@router.websocket("/sessions/{code}/events")
async def session_events(websocket: WebSocket, code: str, db: Session = Depends(get_db)):
    session = find_session(db, code)
    if session is None:
        await websocket.close(code=4404)
        return

    session_id = session.id
    # release the pooled connection; the socket may stay open for hours
    db.close()
    await websocket.accept()
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_change(change: ChangeEvent) -> None:
        # called from whichever thread committed
        loop.call_soon_threadsafe(queue.put_nowait, change)

    subs = [change_feed.subscribe("sessions", on_change, match={"id": session_id})]
    subs += [change_feed.subscribe(t, on_change, match={"session_id": session_id}) for t in SESSION_TABLES]
    logger.info("Realtime subscriber joined %s (%d feeds)", code, len(subs))

    sender = asyncio.create_task(_drain(websocket, queue))
    try:
        await websocket.send_json({"type": "subscribed"})
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        await _stop(sender)
        for sub in subs:
            sub.close()
        logger.info("Realtime subscriber left %s", code)
