# chatrelay/api/routes/root.py

from fastapi import APIRouter

from chatrelay.core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.
    """
    return {
        "message": "Ephemeral Chat Relay",
        "version": "1.0",
        "room_capacity": settings.ROOM_CAPACITY,
        "room_code_length": settings.ROOM_CODE_LENGTH,
        "endpoints": {
            "websocket": "/ws",
            "create_room": "/api/create-room",
            "room": "/api/rooms/{room_code}",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
