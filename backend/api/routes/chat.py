# backend/api/routes/chat.py

from __future__ import annotations

import logging
from functools import partial
from typing import Optional

from fastapi import APIRouter, Query, Request, Response
from fastapi.responses import JSONResponse

from api.routes.utils import parse_flag, require_id, require_text, wait_for_disconnect
from core import state
from core.errors import InvalidRequest

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# LONG-POLL ENDPOINT
# ============================================================================

@router.get("/")
async def chat_endpoint(
    request: Request,
    type: Optional[str] = None,
    sender: Optional[str] = None,
    receiver: Optional[str] = None,
    room: Optional[str] = None,
    data: Optional[str] = None,
    user_id: Optional[str] = Query(None, alias="userID"),
    lock: Optional[str] = None,
):
    """
    Single GET endpoint carrying the whole chat protocol.

    Protocol:
    =========

    Send Message:
        GET /?type=send&sender=alice&room=<room>&data=hello
        Response: 200, empty body

    Receive (long poll, stays open until something arrives):
        GET /?type=receive&receiver=bob&room=<room>
        Response: {"type": "message", "room": "<room>",
                   "data": {"datetime": 1700000000000, "sender": "alice", "message": "hello"}}
              or: {"type": "queue", "data": [<message payload>, ...]}

    History:
        GET /?type=history&receiver=bob&room=<room>
        Response: chat log, one JSON record per line

    Stats:
        GET /?type=stats&receiver=bob&room=<room>
        Response: {"alice": "now", "carol": 1700000000000}

    Lock / Unlock (two-member rooms only):
        GET /?type=roomlock&userID=alice&room=<room>&lock=true
        Response: 200, empty body

    Errors:
        406 "invalid request"   missing or malformed parameters
        406 "unauthorized"      unknown room, not a member, room locked, wrong unlocker
        409 "superseded"        a newer receive from the same user took over
        500                     store failure

    Clients re-poll after every receive answer and, after a fixed delay,
    after every error.
    """
    if type == "send":
        message = await state.dispatcher.send(require_id(sender), require_id(room), require_text(data))
        state.message_counter += 1
        logger.debug("%s sent %d chars to %s", message.sender, len(message.message), message.room)
        return Response(status_code=200)

    if type == "receive":
        payload = await state.receiver.receive(
            require_id(receiver), require_id(room), partial(wait_for_disconnect, request)
        )
        if payload is None:
            # Client is gone, nobody reads this
            return Response(status_code=204)
        return JSONResponse(payload)

    if type == "history":
        log = await state.room_manager.history(require_id(receiver), require_id(room))
        return Response(content=log, media_type="application/x-ndjson")

    if type == "stats":
        return await state.room_manager.stats(require_id(receiver), require_id(room))

    if type == "roomlock":
        await state.room_manager.set_lock(require_id(user_id), require_id(room), parse_flag(lock))
        return Response(status_code=200)

    raise InvalidRequest(f"Unknown request type {type!r}")
