# chatrelay/api/websocket.py

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chatrelay.core import state

logger = logging.getLogger(__name__)

router = APIRouter()

# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
@router.websocket("/")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for the chat relay.

    Frames are JSON text envelopes {"type": ..., "payload": {...}}; see
    Dispatcher for the full protocol.

    Lifecycle:
    ==========
    1. Client connects; the connection gets its own outbound writer
    2. Client sends "create_room" and/or "join_room"
    3. Client sends "send_message"; every member of its room receives it
    4. On disconnect the client leaves its room exactly once, and the room
       is dropped if it is now empty

    Error Handling:
        - Malformed text or binary frames: logged and dropped, connection
          stays open
        - Connection errors: cleanup and log
    """
    connection = await state.connection_manager.connect(websocket)
    dispatcher = state.connection_manager.dispatcher

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))

            # Text and binary frames both carry JSON envelopes
            data = message.get("text")
            if data is None:
                data = message.get("bytes")
            if data is None:
                continue
            await dispatcher.dispatch(connection, data)

    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error("WebSocket error: %s", e)
    finally:
        await state.connection_manager.disconnect(connection)
