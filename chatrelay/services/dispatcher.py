# chatrelay/services/dispatcher.py

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from chatrelay.core.errors import (
    ALREADY_IN_ROOM,
    ROOM_UNAVAILABLE,
    EmptyMessageError,
    JoinRejected,
    MalformedEnvelopeError,
)
from chatrelay.models import models
from chatrelay.models.models import InboundEnvelope, JoinRoomPayload, SendMessagePayload
from chatrelay.services.connection import Connection, Session
from chatrelay.services.room_registry import RoomRegistry, normalize_code

logger = logging.getLogger(__name__)


def decode_envelope(raw: str | bytes) -> InboundEnvelope:
    """
    Parse one text frame into an InboundEnvelope.

    Raises:
        MalformedEnvelopeError: invalid or too deeply nested JSON, not an
            object, or unknown type
    """
    try:
        data = json.loads(raw)
    except (ValueError, RecursionError) as e:
        # ValueError covers JSONDecodeError and UnicodeDecodeError
        raise MalformedEnvelopeError(f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise MalformedEnvelopeError(f"expected an object, got {type(data).__name__}")
    try:
        return InboundEnvelope.model_validate(data)
    except ValidationError as e:
        raise MalformedEnvelopeError(f"bad envelope: {e.errors()}") from e


# ============================================================================
# DISPATCHER
# ============================================================================

class Dispatcher:
    """
    Routes decoded client envelopes to the registry and rooms.

    Protocol:
    =========

    Client -> Server:
    -----------------
    Create Room:
        {"type": "create_room"}
        Response: {"type": "room_created", "payload": {"roomCode": "AB12CD"}}

    Join Room:
        {"type": "join_room", "payload": {"roomCode": "AB12CD", "userName": "Alice"}}
        Response: {"type": "room_joined", "payload": {"roomCode": ..., "messages": [...], "userCount": 2}}
        Others:   {"type": "user_joined", "payload": {"userCount": 2}}
        Failure:  {"type": "error", "payload": {"message": "Room not found or full"}}

    Send Message:
        {"type": "send_message", "payload": {"sender": "Alice", "content": "hi"}}
        Everyone: {"type": "new_message", "payload": {"sender": ..., "content": ..., "timestamp": ...}}

    Server -> Client on disconnect of a member:
    -------------------------------------------
        {"type": "user_left", "payload": {"userCount": 1}}

    Malformed frames are logged and dropped without a reply.
    """

    def __init__(self, registry: RoomRegistry) -> None:
        self.registry = registry

    async def dispatch(self, connection: Connection, raw: str | bytes) -> None:
        """Handle one inbound frame. Never raises for bad client input."""
        try:
            envelope = decode_envelope(raw)
        except MalformedEnvelopeError as e:
            logger.warning("Dropping malformed frame from %r: %s", connection, e)
            return

        logger.debug("Websocket input from %r: %s", connection, envelope.type)

        try:
            if envelope.type == "create_room":
                await self.create_room(connection)
            elif envelope.type == "join_room":
                await self.join_room(connection, JoinRoomPayload.model_validate(envelope.payload or {}))
            elif envelope.type == "send_message":
                await self.send_message(connection, SendMessagePayload.model_validate(envelope.payload or {}))
        except ValidationError as e:
            logger.warning("Dropping %s from %r with bad payload: %s", envelope.type, connection, e.errors())
        except EmptyMessageError as e:
            logger.info("Dropping message: %s", e)

    async def create_room(self, connection: Connection) -> str:
        code = await self.registry.create_room()
        connection.offer(models.room_created(code))
        return code

    async def join_room(self, connection: Connection, payload: JoinRoomPayload) -> bool:
        if connection.session is not None:
            logger.info("%r tried to join %s while in %s", connection, payload.roomCode, connection.session.room_code)
            connection.offer(models.error(ALREADY_IN_ROOM))
            return False

        code = normalize_code(payload.roomCode)
        room = await self.registry.lookup(code)
        try:
            if room is None:
                raise JoinRejected(JoinRejected.NOT_FOUND)
            await room.join(connection, payload.userName)
        except JoinRejected as e:
            logger.info("Join to %s rejected for %r: %s", code, connection, e.reason)
            connection.offer(models.error(ROOM_UNAVAILABLE))
            return False

        connection.bind(Session(room_code=code, display_name=payload.userName))

        if connection.closed:
            # Transport went away while the join was in flight
            await self.handle_close(connection)
            return False
        return True

    async def send_message(self, connection: Connection, payload: SendMessagePayload) -> None:
        session = connection.session
        if session is None:
            logger.debug("Dropping message from %r: not in a room", connection)
            return

        room = await self.registry.lookup(session.room_code)
        if room is None or not room.is_member(connection):
            logger.debug("Dropping message from %r: room %s gone", connection, session.room_code)
            return

        sender = session.display_name or payload.sender or "anonymous"
        await room.append(sender, payload.content)
        self.registry.total_messages += 1

    async def handle_close(self, connection: Connection) -> None:
        """Leave the connection's room, if any, and collect the room if it emptied."""
        session = connection.unbind()
        if session is None:
            return

        room = await self.registry.lookup(session.room_code)
        if room is None:
            return

        remaining = await room.leave(connection)
        if remaining == 0:
            await self.registry.remove_if_empty(session.room_code)
