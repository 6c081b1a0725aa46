# chatrelay/services/room.py

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from chatrelay.core.config import settings
from chatrelay.core.errors import EmptyMessageError, JoinRejected
from chatrelay.models import models
from chatrelay.models.models import ChatMessage
from chatrelay.services.connection import Connection

logger = logging.getLogger(__name__)

PENDING = "pending"
ACTIVE = "active"
CLOSED = "closed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-12-03T10:58:55.496Z"""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class JoinResult:
    messages: List[ChatMessage]
    user_count: int


# ============================================================================
# ROOM
# ============================================================================

class Room:
    """
    A live chat room: a code, an append-only message log and up to
    `capacity` member connections.

    Every mutation happens under the room's own asyncio.Lock, and every
    resulting event is queued on the members' connections before the lock is
    released. Connections write to the network from their own writer task,
    so the lock is never held across I/O but all members still see events in
    the order the room produced them.

    Lifecycle:
        pending  created via RoomRegistry.create_room, no join yet
        active   1..capacity members
        closed   emptied after a join (or expired while pending); terminal
    """

    def __init__(
        self,
        code: str,
        capacity: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.code = code
        self.capacity = settings.ROOM_CAPACITY if capacity is None else capacity
        self.created_at: datetime = clock()
        self._clock = clock
        self._members: Set[Connection] = set()
        self._messages: List[ChatMessage] = []
        self._state = PENDING
        self._last_timestamp: Optional[datetime] = None
        self._lock = asyncio.Lock()

    def __repr__(self) -> str:
        return f"<Room {self.code} {self._state} members={len(self._members)}>"

    @property
    def state(self) -> str:
        return self._state

    @property
    def is_closed(self) -> bool:
        return self._state == CLOSED

    @property
    def user_count(self) -> int:
        return len(self._members)

    @property
    def message_count(self) -> int:
        return len(self._messages)

    def is_member(self, connection: Connection) -> bool:
        return connection in self._members

    def snapshot(self) -> List[ChatMessage]:
        return list(self._messages)

    # -------------------------------------------------------------- membership

    async def join(self, connection: Connection, display_name: str) -> JoinResult:
        """
        Add a connection to the room.

        The joiner gets `room_joined` with the history snapshot; everyone
        already in the room gets `user_joined` with the new count.

        Raises:
            JoinRejected: room closed ("not_found") or at capacity ("full")
        """
        async with self._lock:
            if self._state == CLOSED:
                raise JoinRejected(JoinRejected.NOT_FOUND)
            if len(self._members) >= self.capacity:
                raise JoinRejected(JoinRejected.FULL)

            self._members.add(connection)
            self._state = ACTIVE
            result = JoinResult(list(self._messages), len(self._members))

            connection.offer(models.room_joined(self.code, result.messages, result.user_count))
            self._fan_out(models.user_joined(result.user_count), exclude=connection)

        logger.info("→ %s joined %s (%d members)", display_name, self.code, result.user_count)
        return result

    async def leave(self, connection: Connection) -> Optional[int]:
        """
        Remove a connection. Returns the remaining member count, or None when
        the connection was not a member (repeat leaves are no-ops).

        When the last member leaves the room closes; the caller is expected
        to follow up with RoomRegistry.remove_if_empty.
        """
        async with self._lock:
            if connection not in self._members:
                return None
            self._members.discard(connection)
            remaining = len(self._members)
            if remaining == 0:
                self._state = CLOSED
            else:
                self._fan_out(models.user_left(remaining))

        logger.info("← %r left %s (%d members)", connection, self.code, remaining)
        return remaining

    async def expire_if_pending(self) -> bool:
        """Close a room nobody ever joined. Returns True if it was closed."""
        async with self._lock:
            if self._state != PENDING:
                return False
            self._state = CLOSED
            return True

    # ---------------------------------------------------------------- messages

    async def append(self, sender: str, content: str) -> ChatMessage:
        """
        Append a message and send `new_message` to every member, the sender
        included.

        Raises:
            EmptyMessageError: content is empty or whitespace only
        """
        if not content or not content.strip():
            raise EmptyMessageError(f"empty message from {sender!r} in {self.code}")

        async with self._lock:
            now = self._clock()
            if self._last_timestamp is not None and now < self._last_timestamp:
                now = self._last_timestamp
            self._last_timestamp = now

            message = ChatMessage(sender=sender, content=content, timestamp=format_timestamp(now))
            self._messages.append(message)
            delivered = self._fan_out(models.new_message(message))

        logger.debug("Message #%d in %s delivered to %d members", len(self._messages), self.code, delivered)
        return message

    async def broadcast(self, envelope: Dict[str, Any], exclude: Optional[Connection] = None) -> int:
        """Send an envelope to all writable members. Returns how many accepted it."""
        async with self._lock:
            return self._fan_out(envelope, exclude=exclude)

    def _fan_out(self, envelope: Dict[str, Any], exclude: Optional[Connection] = None) -> int:
        # Caller holds self._lock; offer() never awaits
        delivered = 0
        for member in list(self._members):
            if member is exclude:
                continue
            if member.offer(envelope):
                delivered += 1
        return delivered
