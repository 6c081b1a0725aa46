# chatrelay/api/routes/rooms.py

from fastapi import APIRouter, HTTPException

from chatrelay.models.models import CreateRoomResponse, RoomInfo
from chatrelay.core import state
from chatrelay.services.room_registry import normalize_code

router = APIRouter(prefix="/api")

# ============================================================================
# ROOM ENDPOINTS
# ============================================================================

@router.post("/create-room", response_model=CreateRoomResponse)
async def create_room():
    """
    Create a new chat room.

    Same effect as the "create_room" WebSocket envelope: the room is
    registered empty and waits for its first join.

    Returns:
        CreateRoomResponse: {"roomCode": "AB12CD"}
    """
    code = await state.room_registry.create_room()
    return CreateRoomResponse(roomCode=code)


@router.get("/rooms/{room_code}", response_model=RoomInfo)
async def get_room(room_code: str):
    """
    Get live details of a room.

    Raises:
        HTTPException: 404 if no live room has this code
    """
    info = state.room_registry.rooms_info().get(normalize_code(room_code))
    if info is None:
        raise HTTPException(status_code=404, detail="Room not found")
    return RoomInfo(**info)
