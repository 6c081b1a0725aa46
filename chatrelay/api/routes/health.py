# chatrelay/api/routes/health.py

from fastapi import APIRouter

from chatrelay.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns:
        dict: Status, open connection count, live room count, rooms with members
    """
    rooms = state.room_registry.rooms_info()
    return {
        "status": "healthy",
        "connections": state.connection_manager.active_connections,
        "rooms": len(rooms),
        "active_rooms_with_members": sum(1 for r in rooms.values() if r["userCount"] > 0),
    }
