# backend/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from core.config import settings
from services.dispatcher import Dispatcher
from services.file_store import FileStore
from services.presence import PresenceRegistry
from services.receiver import Receiver
from services.redis_store import RedisStore
from services.room_gate import RoomGate
from services.room_manager import RoomManager
from services.store import Store


def build_store() -> Store:
    if settings.STORE_BACKEND == "redis":
        return RedisStore(host=settings.REDIS_HOST, port=settings.REDIS_PORT)
    return FileStore(settings.DATA_DIR)


# Global singletons for app state
store = build_store()
presence = PresenceRegistry()
gate = RoomGate(store)
dispatcher = Dispatcher(store, gate, presence)
receiver = Receiver(store, gate, presence)
room_manager = RoomManager(store, gate, presence)

# Metrics
message_counter: int = 0
app_start_time: datetime = datetime.now(timezone.utc)
