# chatrelay/api/routes/metrics.py
from fastapi import APIRouter
from datetime import datetime, timezone

from chatrelay.core import state
from chatrelay.core.config import settings

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Usage metrics for the in-memory relay.

    Returns:
        dict: Message statistics (total, messages/sec), capacity figures
            (connections, rooms, members) and the configured limits.

    Example Response:
        {
            "total_messages": 1200,
            "uptime_hours": 3.5,
            "messages_per_second": 0.1,
            "concurrent_connections": 14,
            "total_rooms": 3,
            "pending_rooms": 1,
            "active_rooms_with_members": 2,
            "members_in_rooms": 12,
            "room_capacity": 10
        }
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()
    total_messages = state.room_registry.total_messages

    if uptime_seconds > 0:
        messages_per_second = total_messages / uptime_seconds
    else:
        messages_per_second = 0

    rooms = state.room_registry.rooms_info().values()

    return {
        # Statistics
        "total_messages": total_messages,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "messages_per_second": round(messages_per_second, 2),

        # Capacity
        "concurrent_connections": state.connection_manager.active_connections,
        "total_rooms": len(rooms),
        "pending_rooms": sum(1 for r in rooms if r["state"] == "pending"),
        "active_rooms_with_members": sum(1 for r in rooms if r["userCount"] > 0),
        "members_in_rooms": sum(r["userCount"] for r in rooms),

        # Limits
        "room_capacity": settings.ROOM_CAPACITY,
        "outbound_queue_size": settings.OUTBOUND_QUEUE_SIZE,
    }
