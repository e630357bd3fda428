import asyncio

import httpx
import pytest

from core import state
from services.dispatcher import Dispatcher
from services.file_store import FileStore
from services.presence import EntryState, PresenceRegistry
from services.receiver import Receiver
from services.room_gate import RoomGate
from services.room_manager import RoomManager


@pytest.fixture
async def store(tmp_path):
    file_store = FileStore(tmp_path / "slimchat")
    await file_store.connect()
    return file_store


@pytest.fixture
def presence():
    return PresenceRegistry()


@pytest.fixture
def gate(store):
    return RoomGate(store)


@pytest.fixture
def dispatcher(store, gate, presence):
    return Dispatcher(store, gate, presence)


@pytest.fixture
def receiver(store, gate, presence):
    return Receiver(store, gate, presence)


@pytest.fixture
def room_manager(store, gate, presence):
    return RoomManager(store, gate, presence)


@pytest.fixture
def make_room(room_manager):
    """Create the given users (if needed) and a room holding all of them."""

    async def _make_room(*user_ids):
        room = await room_manager.create_room()
        for user_id in user_ids:
            if await room_manager.store.get_user(user_id) is None:
                await room_manager.create_user(user_id)
            await room_manager.add_user_to_room(user_id, room.id)
        return room.id

    return _make_room


@pytest.fixture
def app_state(monkeypatch, store, presence, gate, dispatcher, receiver, room_manager):
    """Point the app's global singletons at the per-test components."""
    monkeypatch.setattr(state, "store", store)
    monkeypatch.setattr(state, "presence", presence)
    monkeypatch.setattr(state, "gate", gate)
    monkeypatch.setattr(state, "dispatcher", dispatcher)
    monkeypatch.setattr(state, "receiver", receiver)
    monkeypatch.setattr(state, "room_manager", room_manager)
    monkeypatch.setattr(state, "message_counter", 0)
    return state


@pytest.fixture
async def api(app_state):
    from main import app

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def wait_until_waiting(presence, user_id, timeout=2.0):
    """Block until ``user_id`` has an outstanding poll parked in the registry."""

    async def _poll():
        while presence.state_of(user_id) is not EntryState.WAITING:
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


def never_closes():
    return asyncio.Event().wait()
