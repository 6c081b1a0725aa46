# chatrelay/services/room_registry.py

from __future__ import annotations

import asyncio
import logging
import random
import string
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from chatrelay.core.config import settings
from chatrelay.services.room import PENDING, Room, format_timestamp

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits


def generate_room_code(length: int | None = None) -> str:
    """Random room code, e.g. "AB12CD"."""
    k = settings.ROOM_CODE_LENGTH if length is None else length
    return "".join(random.choices(CODE_ALPHABET, k=k))


def normalize_code(code: str) -> str:
    return code.strip().upper()


# ============================================================================
# ROOM REGISTRY
# ============================================================================

class RoomRegistry:
    """
    Process-wide mapping of room code -> live Room.

    Rooms are in-memory only and disappear when they empty out or when the
    process exits.

    The registry lock covers nothing but the dict itself (insert, lookup,
    delete). Membership and messages are guarded by each Room's own lock, so
    rooms never contend with each other.

    Removal is race-free because a Room closes itself, under its own lock,
    the moment its last member leaves. A join that looked the room up just
    before `remove_if_empty` ran still has to take that lock, finds the room
    closed, and is rejected as "not found".

    Attributes:
        total_messages: messages appended through the dispatcher since start

    Usage:
        registry = RoomRegistry()
        code = await registry.create_room()
        room = await registry.lookup(code)
    """

    def __init__(
        self,
        capacity: int | None = None,
        code_factory: Callable[[], str] = generate_room_code,
    ) -> None:
        self._rooms: Dict[str, Room] = {}
        self._lock = asyncio.Lock()
        self._capacity = settings.ROOM_CAPACITY if capacity is None else capacity
        self._code_factory = code_factory
        self.total_messages: int = 0

    def __len__(self) -> int:
        return len(self._rooms)

    def __contains__(self, code: str) -> bool:
        return normalize_code(code) in self._rooms

    async def create_room(self) -> str:
        """
        Create an empty room under a fresh code and return the code.

        The room stays registered while it waits for its first join; only
        the pending-room sweeper may remove it before then.
        """
        async with self._lock:
            code = normalize_code(self._code_factory())
            while code in self._rooms:
                logger.warning("Room code collision on %s, regenerating", code)
                code = normalize_code(self._code_factory())
            self._rooms[code] = Room(code, capacity=self._capacity)

        logger.info("✓ Created room %s", code)
        return code

    async def lookup(self, code: str) -> Optional[Room]:
        """
        Get a live room by code.

        Args:
            code: room code, any case, surrounding whitespace ignored

        Returns:
            Room if registered, None otherwise
        """
        async with self._lock:
            return self._rooms.get(normalize_code(code))

    async def remove_if_empty(self, code: str) -> bool:
        """
        Drop the room if it has closed. Call after every membership decrease.

        Returns:
            True if the room was removed
        """
        code = normalize_code(code)
        async with self._lock:
            room = self._rooms.get(code)
            if room is None or not room.is_closed:
                return False
            del self._rooms[code]

        logger.info("✗ Removed empty room %s", code)
        return True

    async def purge_stale_pending(self, max_age_seconds: float) -> int:
        """
        Expire rooms that were created but never joined within max_age_seconds.

        Returns:
            Number of rooms removed
        """
        cutoff = datetime.now(timezone.utc).timestamp() - max_age_seconds
        removed = 0
        async with self._lock:
            for code, room in list(self._rooms.items()):
                # Never wait on the lock of a room that already has members
                if room.state != PENDING or room.created_at.timestamp() > cutoff:
                    continue
                if await room.expire_if_pending():
                    del self._rooms[code]
                    removed += 1

        if removed:
            logger.info("Expired %d room(s) never joined within %.0fs", removed, max_age_seconds)
        return removed

    def rooms_info(self) -> Dict[str, dict]:
        """
        Snapshot of every registered room, used by /health, /metrics and
        the room details route.
        """
        return {
            code: {
                "roomCode": code,
                "state": room.state,
                "userCount": room.user_count,
                "messageCount": room.message_count,
                "capacity": room.capacity,
                "createdAt": format_timestamp(room.created_at),
            }
            for code, room in self._rooms.items()
        }
