# backend/services/store.py

from __future__ import annotations

import asyncio
import weakref
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

from models.models import RoomRecord, UserRecord

# ============================================================================
# STORE INTERFACE
# ============================================================================

class Store(ABC):
    """
    Durable owner of room records, user records and per-room chat logs.

    The chat core never caches what it reads from here: every request
    re-reads the records it authorizes against. Read-modify-write sequences
    (joining, leaving, locking, stamping last_seen) are serialized with the
    per-key locks handed out by ``locked()``.

    Lock keys:
        "room:<id>"  room record mutations
        "user:<id>"  user record mutations
        "log:<id>"   chat log appends

    When both are needed, take the room lock before the user lock.

    Errors:
        Backends raise StoreIOError for I/O failures and UserExists from
        create_user.
    """

    def __init__(self) -> None:
        # Locks disappear once nobody holds or waits on them
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    def locked(self, key: str) -> asyncio.Lock:
        """Return the lock guarding ``key`` (shared by all concurrent callers)."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    async def connect(self) -> None:
        """Prepare the backend. Called once on application startup."""

    async def close(self) -> None:
        """Release backend resources. Called once on application shutdown."""

    @abstractmethod
    async def get_room(self, room_id: str) -> Optional[RoomRecord]: ...

    @abstractmethod
    async def put_room(self, room: RoomRecord) -> None: ...

    @abstractmethod
    async def delete_room(self, room_id: str) -> None: ...

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[UserRecord]: ...

    @abstractmethod
    async def put_user(self, user: UserRecord) -> None: ...

    @abstractmethod
    async def create_user(self, user_id: str) -> UserRecord: ...

    @abstractmethod
    async def append_log(self, room_id: str, entry: Dict[str, Any]) -> None: ...

    @abstractmethod
    async def read_log(self, room_id: str) -> bytes:
        """Raw newline-delimited JSON log of the room, empty if there is none."""

    @abstractmethod
    async def delete_log(self, room_id: str) -> None: ...
