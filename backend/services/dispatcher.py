# backend/services/dispatcher.py

from __future__ import annotations

import logging

from core.errors import StoreIOError
from models.models import Message, now_ms
from services.presence import Delivery, PresenceRegistry
from services.room_gate import RoomGate
from services.store import Store

logger = logging.getLogger(__name__)

# ============================================================================
# SEND PATH
# ============================================================================

class Dispatcher:
    """
    Fans a sent message out to the other members of its room.

    Flow:
        1. Gate: sender must be a member of an unlocked room
        2. Build the Message envelope, stamped now
        3. Append it to the room's chat log
        4. Hand it to every other member who is online (immediate answer
           to their outstanding poll, or their queue)
        5. Report a failed log append only after the fan-out

    Offline members get nothing pushed; they find the message in the
    history. Online peers may therefore see a message that never reached
    the log when the append fails.
    """

    def __init__(self, store: Store, gate: RoomGate, presence: PresenceRegistry) -> None:
        self.store = store
        self.gate = gate
        self.presence = presence

    async def send(self, sender_id: str, room_id: str, text: str) -> Message:
        """
        Send ``text`` from ``sender_id`` to room ``room_id``.

        Returns:
            Message: The envelope that was logged and fanned out

        Raises:
            RoomNotFound, NotMember, RoomLocked: sender may not post here
            StoreIOError: the log append failed (fan-out already happened)
        """
        room = await self.gate.authorize(sender_id, room_id, require_unlocked=True)
        message = Message(datetime=now_ms(), sender=sender_id, room=room_id, message=text)

        append_error = None
        try:
            await self.store.append_log(room_id, message.log_record())
        except StoreIOError as e:
            logger.error("Failed writing to chat room %s: %s", room_id, e)
            append_error = e

        delivered = queued = 0
        for user_id in room.users:
            if user_id == sender_id:
                continue
            outcome = await self.presence.enqueue_or_deliver(user_id, message)
            if outcome is Delivery.DELIVERED:
                delivered += 1
            elif outcome is Delivery.QUEUED:
                queued += 1

        logger.info(
            "📨 %s -> room %s: %d delivered, %d queued, %d offline",
            sender_id, room_id, delivered, queued, len(room.users) - 1 - delivered - queued,
        )

        if append_error is not None:
            raise append_error
        return message
