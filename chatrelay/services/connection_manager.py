# chatrelay/services/connection_manager.py

from __future__ import annotations

from typing import Dict
from fastapi import WebSocket
import logging

from chatrelay.services.connection import Connection
from chatrelay.services.dispatcher import Dispatcher

logger = logging.getLogger(__name__)

# ============================================================================
# WEBSOCKET CONNECTION MANAGER
# ============================================================================

class ConnectionManager:
    """
    Owns the lifecycle of every live WebSocket connection.

    Room membership itself lives in the Room objects; this class only
    tracks which connections are open, so that a disconnect turns into
    exactly one Leave no matter how many times it is signalled.

    Data Structures:
        connections: Maps connection_id -> Connection
    """

    def __init__(self, dispatcher: Dispatcher) -> None:
        self.connections: Dict[str, Connection] = {}
        self.dispatcher = dispatcher

    @property
    def active_connections(self) -> int:
        return len(self.connections)

    async def connect(self, websocket: WebSocket) -> Connection:
        """
        Accept a new WebSocket connection and start its writer.

        Note:
            The connection is not in any room. The client must send
            "create_room" / "join_room" envelopes.
        """
        await websocket.accept()

        connection = Connection(websocket)
        connection.start()
        self.connections[connection.connection_id] = connection

        logger.info("✓ Client %s connected. Total: %d", connection.connection_id[:8], len(self.connections))
        return connection

    async def disconnect(self, connection: Connection) -> None:
        """
        Handle disconnection and cleanup. Safe to call more than once.

        Cleanup:
            1. Leave the connection's room (user_left to remaining members)
            2. Drop the room from the registry if it emptied
            3. Stop the connection's writer and forget it
        """
        if not connection.mark_closed():
            return

        try:
            await self.dispatcher.handle_close(connection)
        finally:
            await connection.close()
            self.connections.pop(connection.connection_id, None)

        logger.info("✗ Client %s disconnected. Total: %d", connection.connection_id[:8], len(self.connections))
