# chatrelay/core/state.py
from __future__ import annotations

from datetime import datetime, timezone

from chatrelay.services.room_registry import RoomRegistry
from chatrelay.services.dispatcher import Dispatcher
from chatrelay.services.connection_manager import ConnectionManager

# Global singletons for app state
room_registry = RoomRegistry()
dispatcher = Dispatcher(registry=room_registry)
connection_manager = ConnectionManager(dispatcher=dispatcher)

app_start_time: datetime = datetime.now(timezone.utc)


def reset() -> None:
    """Replace the singletons with empty ones (fresh process state)."""
    global room_registry, dispatcher, connection_manager, app_start_time

    room_registry = RoomRegistry()
    dispatcher = Dispatcher(registry=room_registry)
    connection_manager = ConnectionManager(dispatcher=dispatcher)
    app_start_time = datetime.now(timezone.utc)
