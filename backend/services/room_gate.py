# backend/services/room_gate.py

from __future__ import annotations

from core.errors import NotMember, RoomLocked, RoomNotFound
from models.models import RoomRecord
from services.store import Store


class RoomGate:
    """
    Membership and lock checks in front of every room operation.

    The room record is read fresh from the store on each call, so a lock
    or membership change made by another request is seen immediately.
    """

    def __init__(self, store: Store) -> None:
        self.store = store

    async def authorize(self, user_id: str, room_id: str, require_unlocked: bool = True) -> RoomRecord:
        """
        Check that ``user_id`` may act on ``room_id``.

        Args:
            user_id: The requesting user
            room_id: Target room
            require_unlocked: Refuse locked rooms. History reads and the
                lock/unlock operation itself pass False.

        Returns:
            RoomRecord: The room as just read. Callers must not assume it
            stays current after they await something else.

        Raises:
            RoomNotFound, NotMember, RoomLocked
        """
        room = await self.store.get_room(room_id)
        if room is None:
            raise RoomNotFound(f"Room {room_id} does not exist")
        if user_id not in room.users:
            raise NotMember(f"User {user_id} has not joined room {room_id}")
        if require_unlocked and room.locked:
            raise RoomLocked(f"Room {room_id} is locked by {room.locked}")
        return room
