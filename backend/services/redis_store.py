# backend/services/redis_store.py
import json
import logging
from contextlib import contextmanager
from typing import Any, Dict, Optional

import redis.asyncio as redis
from redis.exceptions import RedisError
from pydantic import ValidationError

from core.config import settings
from core.errors import StoreIOError, UserExists
from models.models import RoomRecord, UserRecord
from services.store import Store

logger = logging.getLogger(__name__)

KEY_PREFIX = "slimchat"


@contextmanager
def _redis_io(what: str):
    try:
        yield
    except RedisError as e:
        raise StoreIOError(f"Redis {what} failed: {e}") from e
    except ValidationError as e:
        raise StoreIOError(f"Corrupt record during {what}: {e}") from e


class RedisStore(Store):
    """
    Store backed by Redis.

    Keys:
        slimchat:room:<id>   room record as JSON
        slimchat:user:<id>   user record as JSON
        slimchat:log:<id>    list of JSON log records, RPUSH'd in send order

    A pre-built client can be injected (tests, shared pools); otherwise one
    is created on connect() from the REDIS_* settings.
    """

    def __init__(self, host: str = "localhost", port: int = 6379, client=None):
        super().__init__()
        self.host = host
        self.port = port
        self.access_key = settings.REDIS_ACCESS_KEY
        self.client = client

    async def connect(self):
        """Establish async connection to Redis."""
        if self.client is None:
            scheme = "rediss" if settings.REDIS_SSL else "redis"
            self.client = redis.from_url(
                f"{scheme}://:{self.access_key}@{self.host}:{self.port}",
                decode_responses=True,
            )
        with _redis_io("ping"):
            await self.client.ping()
        logger.info("✓ Connected to Redis at %s:%s", self.host, self.port)

    async def close(self):
        """Close connections."""
        if self.client is not None:
            await self.client.aclose()
        logger.info("Redis connection closed")

    @staticmethod
    def _key(kind: str, ident: str) -> str:
        return f"{KEY_PREFIX}:{kind}:{ident}"

    async def get_room(self, room_id: str) -> Optional[RoomRecord]:
        with _redis_io("get_room"):
            raw = await self.client.get(self._key("room", room_id))
            return RoomRecord.model_validate_json(raw) if raw is not None else None

    async def put_room(self, room: RoomRecord) -> None:
        with _redis_io("put_room"):
            await self.client.set(self._key("room", room.id), room.model_dump_json())

    async def delete_room(self, room_id: str) -> None:
        with _redis_io("delete_room"):
            await self.client.delete(self._key("room", room_id))

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        with _redis_io("get_user"):
            raw = await self.client.get(self._key("user", user_id))
            return UserRecord.model_validate_json(raw) if raw is not None else None

    async def put_user(self, user: UserRecord) -> None:
        with _redis_io("put_user"):
            await self.client.set(self._key("user", user.id), user.model_dump_json())

    async def create_user(self, user_id: str) -> UserRecord:
        user = UserRecord(id=user_id)
        with _redis_io("create_user"):
            created = await self.client.set(self._key("user", user_id), user.model_dump_json(), nx=True)
        if not created:
            raise UserExists(f"User {user_id} already exists")
        return user

    async def append_log(self, room_id: str, entry: Dict[str, Any]) -> None:
        with _redis_io("append_log"):
            await self.client.rpush(self._key("log", room_id), json.dumps(entry))

    async def read_log(self, room_id: str) -> bytes:
        with _redis_io("read_log"):
            lines = await self.client.lrange(self._key("log", room_id), 0, -1)
        return "".join(f"{line}\n" for line in lines).encode("utf-8")

    async def delete_log(self, room_id: str) -> None:
        with _redis_io("delete_log"):
            await self.client.delete(self._key("log", room_id))
