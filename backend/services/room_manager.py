# backend/services/room_manager.py

from __future__ import annotations

import base64
import logging
import re
import secrets
from typing import Dict, Union

from core.config import settings
from core.errors import (
    AlreadyMember,
    GroupChatCannotLock,
    NotMember,
    RoomLocked,
    RoomNotFound,
    Unauthorized,
    UserNotFound,
)
from models.models import RoomRecord, UserRecord
from services.presence import PresenceRegistry
from services.room_gate import RoomGate
from services.store import Store

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"\W")

# ============================================================================
# ROOM LIFECYCLE MANAGER
# ============================================================================
class RoomManager:
    """
    Manages users, rooms, membership and room locks on top of the Store.

    Membership is kept on both sides: the room lists its users and every
    user lists their rooms. Both records are updated under the room lock
    followed by the user lock, so concurrent joins/leaves on the same room
    never lose an update.

    Rules:
        - A room whose last member leaves is deleted together with its chat log
        - Only a room with exactly two members can be locked
        - Only the member who locked a room can unlock it
        - Nobody can join a locked room

    Usage:
        room_manager = RoomManager(store, gate, presence)
        await room_manager.create_user("alice")
        room = await room_manager.create_room()
        await room_manager.add_user_to_room("alice", room.id)
    """

    def __init__(self, store: Store, gate: RoomGate, presence: PresenceRegistry) -> None:
        self.store = store
        self.gate = gate
        self.presence = presence

    async def create_user(self, user_id: str) -> UserRecord:
        """
        Create a user record.

        Raises:
            UserExists: a user with that id is already stored
        """
        user = await self.store.create_user(user_id)
        logger.info("✓ Created user: %s", user_id)
        return user

    @staticmethod
    def _new_room_id() -> str:
        raw = base64.b64encode(secrets.token_bytes(settings.ROOM_ID_BYTES)).decode("ascii")
        return _NON_WORD.sub("", raw)

    async def create_room(self) -> RoomRecord:
        """
        Create an empty room under a fresh random id.

        Returns:
            RoomRecord: The new room, with no members yet
        """
        while True:
            room_id = self._new_room_id()
            async with self.store.locked(f"room:{room_id}"):
                if await self.store.get_room(room_id) is not None:
                    continue
                room = RoomRecord(id=room_id)
                await self.store.put_room(room)
            logger.info("✓ Created room: %s", room_id)
            return room

    async def add_user_to_room(self, user_id: str, room_id: str) -> RoomRecord:
        """
        Add ``user_id`` to ``room_id`` (both records are updated).

        Raises:
            RoomNotFound, UserNotFound
            AlreadyMember: the user has already joined
            RoomLocked: the room is locked
        """
        async with self.store.locked(f"room:{room_id}"), self.store.locked(f"user:{user_id}"):
            room = await self.store.get_room(room_id)
            if room is None:
                raise RoomNotFound(f"Room {room_id} does not exist")
            user = await self.store.get_user(user_id)
            if user is None:
                raise UserNotFound(f"User {user_id} does not exist")
            if user_id in room.users:
                raise AlreadyMember(f"User {user_id} already in room {room_id}")
            if room.locked:
                raise RoomLocked(f"Room {room_id} is locked")

            room.users.add(user_id)
            await self.store.put_room(room)
            user.rooms.add(room_id)
            await self.store.put_user(user)

        logger.info("→ %s joined %s (%d members)", user_id, room_id, len(room.users))
        return room

    async def remove_user_from_room(self, user_id: str, room_id: str) -> bool:
        """
        Remove ``user_id`` from ``room_id``.

        Returns:
            True if the room was left empty and has been deleted along with
            its chat log (irreversible), False otherwise.

        Raises:
            RoomNotFound, NotMember
        """
        async with self.store.locked(f"room:{room_id}"), self.store.locked(f"user:{user_id}"):
            room = await self.store.get_room(room_id)
            if room is None:
                raise RoomNotFound(f"Room {room_id} does not exist")
            if user_id not in room.users:
                raise NotMember(f"Couldn't remove user {user_id} from room {room_id}, they haven't joined")

            user = await self.store.get_user(user_id)
            if user is not None:
                user.rooms.discard(room_id)
                await self.store.put_user(user)

            room.users.discard(user_id)
            if not room.users:
                await self.store.delete_room(room_id)
                await self.store.delete_log(room_id)
                logger.info("✓ Deleted orphan room: %s", room_id)
                return True

            # A lock only makes sense between two members
            if len(room.users) < 2:
                room.locked = None
            await self.store.put_room(room)

        logger.info("← %s left %s (%d members)", user_id, room_id, len(room.users))
        return False

    async def set_lock(self, user_id: str, room_id: str, lock: bool) -> RoomRecord:
        """
        Lock or unlock a two-member room.

        Locking stores ``user_id`` as the locker; while locked neither member
        can send, receive or read stats in the room. Unlocking is reserved to
        the locker.

        A lock held by one member is never overwritten by the other: the
        second member's lock request is refused instead of taking the lock
        over, so the locker cannot be locked out of their own unlock.

        Raises:
            RoomNotFound, NotMember
            GroupChatCannotLock: the room has more than two members (lock or
                unlock), or locking a room with fewer than two
            Unauthorized: unlocking a room locked by someone else (or not locked),
                or locking a room the other member already locked
        """
        async with self.store.locked(f"room:{room_id}"):
            room = await self.gate.authorize(user_id, room_id, require_unlocked=False)

            if len(room.users) > 2:
                raise GroupChatCannotLock(f"Room {room_id} has {len(room.users)} members")

            if lock:
                if len(room.users) != 2:
                    raise GroupChatCannotLock(f"Room {room_id} has {len(room.users)} members")
                if room.locked == user_id:
                    return room
                if room.locked:
                    raise Unauthorized(f"Room {room_id} already locked by {room.locked}")
                room.locked = user_id
            elif room.locked == user_id:
                room.locked = None
            else:
                raise Unauthorized(f"{user_id} cannot unlock room {room_id}")

            await self.store.put_room(room)

        logger.info("%s %s room %s", user_id, "locked" if lock else "unlocked", room_id)
        return room

    async def history(self, receiver_id: str, room_id: str) -> bytes:
        """Raw chat log of the room; readable even while the room is locked."""
        await self.gate.authorize(receiver_id, room_id, require_unlocked=False)
        return await self.store.read_log(room_id)

    async def stats(self, receiver_id: str, room_id: str) -> Dict[str, Union[str, int]]:
        """
        Last-seen information about the other members of the room.

        Returns:
            Dict mapping member id -> "now" if online, else their last_seen
            (ms since epoch). Members without a user record are left out.
        """
        room = await self.gate.authorize(receiver_id, room_id, require_unlocked=True)

        last_seen: Dict[str, Union[str, int]] = {}
        for member in sorted(room.users):
            if member == receiver_id:
                continue
            if self.presence.is_online(member):
                last_seen[member] = "now"
                continue
            user = await self.store.get_user(member)
            if user is not None:
                last_seen[member] = user.last_seen
        return last_seen
