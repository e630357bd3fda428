# backend/api/routes/health.py

from datetime import datetime, timezone

from fastapi import APIRouter

from core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, presence counts and message totals.

    Returns:
        dict: Status, online/waiting/queued receivers, messages sent, uptime
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    return {
        "status": "healthy",
        **state.presence.snapshot(),
        "total_messages": state.message_counter,
        "uptime_seconds": round(uptime_seconds, 1),
    }
