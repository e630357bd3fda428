# backend/api/routes/rooms.py

from fastapi import APIRouter

from api.routes.utils import require_id
from core import state
from models.models import CreateUserRequest, MemberRequest, RoomRecord, UserRecord

router = APIRouter()

# ============================================================================
# USER / ROOM ADMINISTRATION ENDPOINTS
# ============================================================================

@router.post("/users", response_model=UserRecord, status_code=201)
async def create_user(request: CreateUserRequest):
    """
    Register a user id.

    Returns:
        UserRecord: The new user (no rooms yet)

    Raises:
        406 if the id is malformed, 409 if the user already exists
    """
    return await state.room_manager.create_user(require_id(request.user_id))


@router.post("/rooms", response_model=RoomRecord, status_code=201)
async def create_room():
    """
    Create an empty room under a fresh random id.

    Members are added with POST /rooms/{room_id}/members.
    """
    return await state.room_manager.create_room()


@router.post("/rooms/{room_id}/members", response_model=RoomRecord)
async def add_member(room_id: str, request: MemberRequest):
    """
    Add a user to a room.

    Raises:
        406 if the room or user does not exist or the room is locked
        409 if the user has already joined
    """
    return await state.room_manager.add_user_to_room(require_id(request.user_id), require_id(room_id))


@router.delete("/rooms/{room_id}/members/{user_id}")
async def remove_member(room_id: str, user_id: str):
    """
    Remove a user from a room.

    Removing the last member deletes the room and its chat log for good.

    Returns:
        dict: {"status": "removed", "room_deleted": bool}
    """
    deleted = await state.room_manager.remove_user_from_room(require_id(user_id), require_id(room_id))
    return {"status": "removed", "room_deleted": deleted}
