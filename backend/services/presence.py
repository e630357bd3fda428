# backend/services/presence.py

from __future__ import annotations

import asyncio
import logging
from collections import deque
from contextlib import asynccontextmanager
from enum import Enum
from typing import Any, AsyncIterator, Deque, Dict, Optional

from models.models import Message, queue_payload

logger = logging.getLogger(__name__)

# ============================================================================
# LONG-POLL WAITER
# ============================================================================

class Waiter:
    """
    One outstanding receive request, parked until something answers it.

    Wraps a future owned by the request handler. The future settles exactly
    once: with a payload dict (a message or a flushed queue), or by
    cancellation when a newer poll supersedes it or its connection is torn
    down. Later attempts to settle it are no-ops that return False.

    Must be created while an event loop is running.
    """

    def __init__(self) -> None:
        self._future: asyncio.Future = asyncio.get_running_loop().create_future()

    @property
    def future(self) -> asyncio.Future:
        return self._future

    @property
    def done(self) -> bool:
        return self._future.done()

    @property
    def cancelled(self) -> bool:
        return self._future.cancelled()

    def resolve(self, payload: Dict[str, Any]) -> bool:
        if self._future.done():
            return False
        self._future.set_result(payload)
        return True

    def cancel(self) -> bool:
        return self._future.cancel()

    def result(self) -> Dict[str, Any]:
        return self._future.result()


# ============================================================================
# ONLINE ENTRY
# ============================================================================

class EntryState(str, Enum):
    IDLE = "idle"          # no poll outstanding, nothing queued
    WAITING = "waiting"    # a poll is outstanding, queue is empty
    QUEUED = "queued"      # messages pending, no poll outstanding


class Delivery(str, Enum):
    DELIVERED = "delivered"
    QUEUED = "queued"


class OnlineEntry:
    """
    Presence state of one online user.

    Holds either an active waiter or a FIFO queue of pending messages, never
    both. Only PresenceRegistry calls the transition methods, and only while
    holding ``lock``.
    """

    def __init__(self, user_id: str) -> None:
        self.user_id = user_id
        self.lock = asyncio.Lock()
        self.closed = False
        self._waiter: Optional[Waiter] = None
        self._queue: Deque[Message] = deque()

    @property
    def state(self) -> EntryState:
        if self._waiter is not None:
            return EntryState.WAITING
        if self._queue:
            return EntryState.QUEUED
        return EntryState.IDLE

    @property
    def pending(self) -> int:
        return len(self._queue)

    def _deliver(self, message: Message) -> Delivery:
        if self._waiter is not None:
            waiter, self._waiter = self._waiter, None
            if waiter.resolve(message.payload()):
                return Delivery.DELIVERED
        self._queue.append(message)
        return Delivery.QUEUED

    def _attach(self, waiter: Waiter) -> Optional[Waiter]:
        """Flush the queue into ``waiter`` or park it. Returns a superseded waiter."""
        if self._queue:
            if waiter.resolve(queue_payload(self._queue)):
                self._queue.clear()
            return None
        previous, self._waiter = self._waiter, waiter
        if previous is not None and previous is not waiter:
            previous.cancel()
            return previous
        return None

    def _release(self, waiter: Waiter) -> bool:
        if self._waiter is not waiter:
            return False
        self._waiter = None
        self.closed = True
        waiter.cancel()
        return True


# ============================================================================
# PRESENCE REGISTRY
# ============================================================================

class PresenceRegistry:
    """
    Process-wide table of online users: user_id -> OnlineEntry.

    A user is online from their first receive request until a receive
    connection of theirs closes before anything was delivered to it. While
    online, messages sent to them either resolve their outstanding poll
    immediately or wait in their queue for the next poll.

    Data Structures:
        _entries: Maps user_id -> OnlineEntry
                  Example: {"alice": <OnlineEntry waiting>, "bob": <OnlineEntry 2 queued>}

    Concurrency:
        Every transition of an entry runs under that entry's lock, so an
        enqueue, an attach and a teardown on the same user never interleave.
        Different users do not contend. The dict itself is only touched in
        stretches without an await, which the event loop runs atomically.
        Removed entries are flagged closed; an operation holding a stale
        reference notices and looks the user up again.

    Only the four operations below mutate entries. Other components get at
    most read-only views (is_online, state_of, snapshot).
    """

    def __init__(self) -> None:
        self._entries: Dict[str, OnlineEntry] = {}

    @asynccontextmanager
    async def _locked_entry(self, user_id: str, create: bool = False) -> AsyncIterator[Optional[OnlineEntry]]:
        while True:
            entry = self._entries.get(user_id)
            if entry is None:
                if not create:
                    yield None
                    return
                entry = self._entries[user_id] = OnlineEntry(user_id)
                logger.info("✓ %s came online. Online: %d", user_id, len(self._entries))
            async with entry.lock:
                if entry.closed:
                    continue
                yield entry
                return

    async def mark_online(self, user_id: str) -> OnlineEntry:
        """Return the user's entry, creating an idle one if they were offline."""
        async with self._locked_entry(user_id, create=True) as entry:
            return entry

    async def enqueue_or_deliver(self, user_id: str, message: Message) -> Optional[Delivery]:
        """
        Hand ``message`` to an online user.

        Returns:
            Delivery.DELIVERED if an outstanding poll was answered with it,
            Delivery.QUEUED if it waits for the next poll,
            None if the user is offline (nothing happens).
        """
        async with self._locked_entry(user_id) as entry:
            if entry is None:
                return None
            outcome = entry._deliver(message)
        if outcome is Delivery.DELIVERED:
            logger.debug("%s => %s : %s", message.sender, user_id, message.message)
        else:
            logger.debug("%s => %s[busy] : %s", message.sender, user_id, message.message)
        return outcome

    async def attach_waiter(self, user_id: str, waiter: Waiter) -> None:
        """
        Register ``waiter`` as the user's outstanding poll.

        If messages are queued the waiter is resolved on the spot with all of
        them (oldest first) and the queue is emptied. Otherwise it is parked
        until the next message. A poll still parked from before is cancelled.
        """
        async with self._locked_entry(user_id, create=True) as entry:
            superseded = entry._attach(waiter)
        if superseded is not None:
            logger.info("%s replaced an outstanding poll", user_id)

    async def remove_if_unresolved(self, user_id: str, waiter: Waiter) -> bool:
        """
        Tear the user down after ``waiter``'s connection closed.

        Returns:
            True if ``waiter`` was still outstanding: the entry is gone and
            the user is now offline. False if a message (or a newer poll)
            got to the waiter first, in which case nothing changes.
        """
        async with self._locked_entry(user_id) as entry:
            if entry is None or not entry._release(waiter):
                return False
            del self._entries[user_id]
        logger.info("✗ %s went offline. Online: %d", user_id, len(self._entries))
        return True

    def is_online(self, user_id: str) -> bool:
        return user_id in self._entries

    def state_of(self, user_id: str) -> Optional[EntryState]:
        entry = self._entries.get(user_id)
        return entry.state if entry is not None else None

    def snapshot(self) -> Dict[str, int]:
        """Counts used by the /health endpoint."""
        states = [entry.state for entry in self._entries.values()]
        return {
            "online": len(states),
            "waiting": states.count(EntryState.WAITING),
            "queued": states.count(EntryState.QUEUED),
        }
