# chatrelay/models/models.py
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional

# ============================================================================
# CHAT MESSAGE
# ============================================================================

class ChatMessage(BaseModel):
    """One entry of a room's message log. Immutable once appended."""

    model_config = ConfigDict(frozen=True)

    sender: str
    content: str
    timestamp: str

# ============================================================================
# INBOUND ENVELOPES (client -> server)
# ============================================================================

InboundType = Literal["create_room", "join_room", "send_message"]


class InboundEnvelope(BaseModel):
    type: InboundType
    payload: Optional[Dict[str, Any]] = None


class JoinRoomPayload(BaseModel):
    roomCode: str = Field(min_length=1)
    userName: str = Field(min_length=1)


class SendMessagePayload(BaseModel):
    content: str
    # Informational only; the session's display name wins when set
    sender: Optional[str] = None

# ============================================================================
# OUTBOUND ENVELOPES (server -> client)
# ============================================================================

class OutboundEnvelope(BaseModel):
    type: str
    payload: Dict[str, Any] = Field(default_factory=dict)


def room_created(room_code: str) -> Dict[str, Any]:
    return OutboundEnvelope(type="room_created", payload={"roomCode": room_code}).model_dump()


def room_joined(room_code: str, messages: List[ChatMessage], user_count: int) -> Dict[str, Any]:
    return OutboundEnvelope(
        type="room_joined",
        payload={
            "roomCode": room_code,
            "messages": [m.model_dump() for m in messages],
            "userCount": user_count,
        },
    ).model_dump()


def user_joined(user_count: int) -> Dict[str, Any]:
    return OutboundEnvelope(type="user_joined", payload={"userCount": user_count}).model_dump()


def user_left(user_count: int) -> Dict[str, Any]:
    return OutboundEnvelope(type="user_left", payload={"userCount": user_count}).model_dump()


def new_message(message: ChatMessage) -> Dict[str, Any]:
    return OutboundEnvelope(type="new_message", payload=message.model_dump()).model_dump()


def error(message: str) -> Dict[str, Any]:
    return OutboundEnvelope(type="error", payload={"message": message}).model_dump()

# ============================================================================
# HTTP MODELS
# ============================================================================

class CreateRoomResponse(BaseModel):
    roomCode: str


class RoomInfo(BaseModel):
    roomCode: str
    state: str
    userCount: int
    messageCount: int
    capacity: int
    createdAt: str
