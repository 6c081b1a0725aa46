# chatrelay/services/connection.py

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol

from chatrelay.core.config import settings

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """The slice of fastapi.WebSocket a Connection writes through."""

    async def send_json(self, data: Any) -> None: ...


@dataclass(frozen=True)
class Session:
    """Room association of a connection, bound once a join succeeds."""

    room_code: str
    display_name: str


# ============================================================================
# CONNECTION
# ============================================================================

class Connection:
    """
    One client's persistent channel.

    Outbound envelopes are never written inline. Rooms call `offer()`, which
    enqueues without blocking, and a per-connection writer task drains the
    queue onto the transport. That keeps room locks free of network I/O
    while preserving the order in which a room produced its events.

    A connection is writable while it is open, its writer has not failed,
    and its bounded queue has room.
    """

    def __init__(self, transport: Transport, queue_size: int | None = None) -> None:
        self.connection_id: str = uuid.uuid4().hex
        self.transport = transport
        self.session: Optional[Session] = None
        self._queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(
            maxsize=settings.OUTBOUND_QUEUE_SIZE if queue_size is None else queue_size
        )
        self._writer: Optional[asyncio.Task] = None
        self._closed = False
        self._broken = False

    def __repr__(self) -> str:
        return f"<Connection {self.connection_id[:8]} session={self.session}>"

    # ------------------------------------------------------------------ state

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def writable(self) -> bool:
        return not (self._closed or self._broken)

    def bind(self, session: Session) -> None:
        """Attach the room association. Only valid while unbound."""
        if self.session is not None:
            raise RuntimeError(f"{self!r} is already bound to {self.session.room_code}")
        self.session = session

    def unbind(self) -> Optional[Session]:
        session, self.session = self.session, None
        return session

    def mark_closed(self) -> bool:
        """
        Flip the closed flag. Returns True only for the first caller, so the
        leave path runs once even when close is signalled twice.
        """
        if self._closed:
            return False
        self._closed = True
        return True

    # --------------------------------------------------------------- outbound

    def start(self) -> None:
        if self._writer is None:
            self._writer = asyncio.create_task(
                self._write_loop(), name=f"writer-{self.connection_id[:8]}"
            )

    def offer(self, envelope: Dict[str, Any]) -> bool:
        """Enqueue an envelope for delivery. False if the connection is not writable."""
        if not self.writable:
            return False
        try:
            self._queue.put_nowait(envelope)
        except asyncio.QueueFull:
            logger.warning("Outbound queue full for %r, dropping %s", self, envelope.get("type"))
            return False
        return True

    async def flush(self) -> None:
        """Wait until every queued envelope has been handed to the transport."""
        await self._queue.join()

    async def close(self) -> None:
        """Stop the writer task. Queued envelopes that were not written are discarded."""
        self.mark_closed()
        if self._writer is not None:
            self._writer.cancel()
            try:
                await self._writer
            except asyncio.CancelledError:
                pass
            self._writer = None
        self._drain()

    async def _write_loop(self) -> None:
        while True:
            envelope = await self._queue.get()
            try:
                await self.transport.send_json(envelope)
            except Exception as e:
                # The receive loop observes the disconnect and runs the leave
                logger.error("Send error on %r: %s", self, e)
                self._broken = True
            finally:
                self._queue.task_done()
            if self._broken:
                self._drain()
                return

    def _drain(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self._queue.task_done()
