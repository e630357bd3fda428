# backend/services/receiver.py

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from core.errors import StoreIOError, Superseded
from models.models import now_ms
from services.presence import PresenceRegistry, Waiter
from services.room_gate import RoomGate
from services.store import Store

logger = logging.getLogger(__name__)

# ============================================================================
# RECEIVE PATH (LONG POLL)
# ============================================================================

class Receiver:
    """
    Parks receive requests until a message arrives for them.

    Lifecycle of one receive:
        1. Gate: receiver must be a member of an unlocked room
        2. The receiver is marked online
        3. A Waiter is attached:
           - queued messages answer it at once ({"type": "queue", ...})
           - otherwise it waits for the next message ({"type": "message", ...})
        4. If the connection closes first, the receiver goes offline and
           their last_seen is stamped

    There is no server-side timeout; clients re-poll after every answer.
    """

    def __init__(self, store: Store, gate: RoomGate, presence: PresenceRegistry) -> None:
        self.store = store
        self.gate = gate
        self.presence = presence

    async def receive(
        self,
        receiver_id: str,
        room_id: str,
        closed: Callable[[], Awaitable[Any]],
    ) -> Optional[Dict[str, Any]]:
        """
        Wait for the next message(s) addressed to ``receiver_id``.

        Args:
            receiver_id: The polling user
            room_id: Room the poll is authorized against
            closed: Returns an awaitable that completes when the client
                connection goes away

        Returns:
            The payload to answer with, or None if the connection closed
            before anything arrived.

        Raises:
            RoomNotFound, NotMember, RoomLocked: receiver may not poll here
            Superseded: a newer poll from the same receiver took over
        """
        await self.gate.authorize(receiver_id, room_id, require_unlocked=True)
        await self.presence.mark_online(receiver_id)

        waiter = Waiter()
        await self.presence.attach_waiter(receiver_id, waiter)
        if waiter.done:
            return waiter.result()

        watcher = asyncio.ensure_future(closed())
        try:
            await asyncio.wait({waiter.future, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            await self._disconnect(receiver_id, waiter)
            raise
        finally:
            watcher.cancel()

        if watcher.done() and not watcher.cancelled() and watcher.exception() is not None:
            # a broken close signal is treated like a closed connection
            logger.warning("Disconnect watcher for %s failed: %s", receiver_id, watcher.exception())

        if waiter.done and not waiter.cancelled:
            return waiter.result()
        if waiter.cancelled:
            raise Superseded(f"{receiver_id} opened a newer poll")

        await self._disconnect(receiver_id, waiter)
        # a message may have won the race while teardown waited for the entry
        if waiter.done and not waiter.cancelled:
            return waiter.result()
        return None

    async def _disconnect(self, receiver_id: str, waiter: Waiter) -> None:
        if not await self.presence.remove_if_unresolved(receiver_id, waiter):
            return
        try:
            async with self.store.locked(f"user:{receiver_id}"):
                user = await self.store.get_user(receiver_id)
                if user is None:
                    logger.warning("No user record for %s, last seen not stored", receiver_id)
                    return
                user.last_seen = now_ms()
                await self.store.put_user(user)
        except StoreIOError as e:
            logger.error("Failed storing last seen of %s: %s", receiver_id, e)
