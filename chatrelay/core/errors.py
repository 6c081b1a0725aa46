# chatrelay/core/errors.py

from __future__ import annotations

# Client-visible text for every rejected join, whatever the reason
ROOM_UNAVAILABLE = "Room not found or full"
ALREADY_IN_ROOM = "Already in a room"


class ChatRelayError(Exception):
    """Base class for every per-connection, recoverable relay failure."""


class MalformedEnvelopeError(ChatRelayError):
    """Inbound frame could not be decoded into a known envelope."""


class JoinRejected(ChatRelayError):
    """
    Raised by Room.join when the connection cannot become a member.

    Attributes:
        reason: "not_found" (room closed / missing) or "full" (at capacity)
    """

    NOT_FOUND = "not_found"
    FULL = "full"

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class EmptyMessageError(ChatRelayError, ValueError):
    """Message content was empty or whitespace only."""
