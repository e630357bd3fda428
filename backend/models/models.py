# backend/models/models.py
import time
from typing import Any, Dict, Iterable, Optional, Set

from pydantic import BaseModel, ConfigDict, Field


def now_ms() -> int:
    """Milliseconds since the epoch, the timestamp unit of every record."""
    return int(time.time() * 1000)


class RoomRecord(BaseModel):
    id: str
    users: Set[str] = Field(default_factory=set)
    # user id of the member who locked the room
    locked: Optional[str] = None


class UserRecord(BaseModel):
    id: str
    rooms: Set[str] = Field(default_factory=set)
    last_seen: int = Field(default_factory=now_ms)


class Message(BaseModel):
    """
    One sent chat message.

    Instances are immutable, so the same envelope can sit in several
    receivers' queues at once.
    """

    model_config = ConfigDict(frozen=True)

    datetime: int
    sender: str
    room: str
    message: str

    def log_record(self) -> Dict[str, Any]:
        """Shape of one line in the room's chat log."""
        return {"datetime": self.datetime, "sender": self.sender, "message": self.message}

    def payload(self) -> Dict[str, Any]:
        """Wire payload answering a waiting receiver."""
        return {"type": "message", "room": self.room, "data": self.log_record()}

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "Message":
        return cls(room=payload["room"], **payload["data"])


def queue_payload(messages: Iterable[Message]) -> Dict[str, Any]:
    """Wire payload flushing a receiver's queue, oldest message first."""
    return {"type": "queue", "data": [m.payload() for m in messages]}


class CreateUserRequest(BaseModel):
    user_id: str


class MemberRequest(BaseModel):
    user_id: str
