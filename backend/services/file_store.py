# backend/services/file_store.py

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from core.errors import InvalidRequest, StoreIOError, UserExists
from models.models import RoomRecord, UserRecord
from services.store import Store

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# ============================================================================
# FILE-BASED STORE
# ============================================================================

class FileStore(Store):
    """
    Store keeping one JSON file per record on local disk.

    Layout (under data_dir):
        users/<user_id>       {"id": ..., "rooms": [...], "last_seen": 1700000000000}
        rooms/<room_id>       {"id": ..., "users": [...], "locked": null}
        chatlogs/<room_id>    one JSON log record per line, append only

    Records are written to a temporary file and moved into place with
    os.replace, so a crash never leaves a half-written record behind.

    Usage:
        store = FileStore("slimchat")
        await store.connect()          # creates the directory layout
        room = await store.get_room(room_id)
    """

    def __init__(self, data_dir: str | os.PathLike) -> None:
        super().__init__()
        self.data_dir = Path(data_dir)
        self.user_dir = self.data_dir / "users"
        self.room_dir = self.data_dir / "rooms"
        self.log_dir = self.data_dir / "chatlogs"

    async def connect(self) -> None:
        """Create the directory structure if it is missing."""
        try:
            for directory in (self.user_dir, self.room_dir, self.log_dir):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"Cannot create data directory {self.data_dir}: {e}") from e
        logger.info("✓ File store ready at %s", self.data_dir)

    # ------------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------------

    async def get_room(self, room_id: str) -> Optional[RoomRecord]:
        return self._read(self._path(self.room_dir, room_id), RoomRecord)

    async def put_room(self, room: RoomRecord) -> None:
        self._write(self._path(self.room_dir, room.id), room.model_dump_json())

    async def delete_room(self, room_id: str) -> None:
        self._unlink(self._path(self.room_dir, room_id))

    # ------------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------------

    async def get_user(self, user_id: str) -> Optional[UserRecord]:
        return self._read(self._path(self.user_dir, user_id), UserRecord)

    async def put_user(self, user: UserRecord) -> None:
        self._write(self._path(self.user_dir, user.id), user.model_dump_json())

    async def create_user(self, user_id: str) -> UserRecord:
        path = self._path(self.user_dir, user_id)
        async with self.locked(f"user:{user_id}"):
            if path.exists():
                raise UserExists(f"User {user_id} already exists")
            user = UserRecord(id=user_id)
            self._write(path, user.model_dump_json())
        return user

    # ------------------------------------------------------------------------
    # Chat logs
    # ------------------------------------------------------------------------

    async def append_log(self, room_id: str, entry: Dict[str, Any]) -> None:
        path = self._path(self.log_dir, room_id)
        async with self.locked(f"log:{room_id}"):
            try:
                with open(path, "a", encoding="utf-8") as f:
                    f.write(json.dumps(entry) + "\n")
            except OSError as e:
                raise StoreIOError(f"Failed writing to chat room {room_id}: {e}") from e

    async def read_log(self, room_id: str) -> bytes:
        path = self._path(self.log_dir, room_id)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return b""
        except OSError as e:
            raise StoreIOError(f"Failed reading chat room {room_id}: {e}") from e

    async def delete_log(self, room_id: str) -> None:
        self._unlink(self._path(self.log_dir, room_id))

    # ------------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------------

    @staticmethod
    def _path(directory: Path, key: str) -> Path:
        # Keys become file names: refuse anything that could leave the directory
        if not key or key.startswith(".") or os.sep in key or "/" in key or "\0" in key:
            raise InvalidRequest(f"Refusing unsafe store key {key!r}")
        return directory / key

    @staticmethod
    def _read(path: Path, model: Type[ModelT]) -> Optional[ModelT]:
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreIOError(f"Load error {path}: {e}") from e
        try:
            return model.model_validate_json(raw)
        except ValidationError as e:
            raise StoreIOError(f"Corrupt record {path}: {e}") from e

    @staticmethod
    def _write(path: Path, data: str) -> None:
        tmp = path.with_name(f".{path.name}.tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                f.write(data)
            os.replace(tmp, path)
        except OSError as e:
            raise StoreIOError(f"Save error {path}: {e}") from e

    @staticmethod
    def _unlink(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreIOError(f"Delete error {path}: {e}") from e
