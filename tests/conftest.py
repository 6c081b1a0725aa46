import asyncio
from typing import Any, List

import pytest

from chatrelay.services.connection import Connection
from chatrelay.services.dispatcher import Dispatcher
from chatrelay.services.room_registry import RoomRegistry


class FakeWebSocket:
    """Records everything written to it; can be told to fail writes."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: List[Any] = []
        self.fail = fail
        self.accepted = False

    async def accept(self) -> None:
        self.accepted = True

    async def send_json(self, data: Any) -> None:
        if self.fail:
            raise RuntimeError("socket is closed")
        self.sent.append(data)

    def types(self) -> List[str]:
        return [e["type"] for e in self.sent]

    def of_type(self, type_: str) -> List[dict]:
        return [e["payload"] for e in self.sent if e["type"] == type_]


async def flush(*connections: Connection) -> None:
    await asyncio.gather(*(c.flush() for c in connections))


@pytest.fixture
async def make_connection():
    created: List[Connection] = []

    def _make(fail: bool = False, queue_size: int | None = None) -> Connection:
        conn = Connection(FakeWebSocket(fail=fail), queue_size=queue_size)
        conn.start()
        created.append(conn)
        return conn

    yield _make

    for conn in created:
        await conn.close()


@pytest.fixture
def registry() -> RoomRegistry:
    return RoomRegistry()


@pytest.fixture
def dispatcher(registry: RoomRegistry) -> Dispatcher:
    return Dispatcher(registry)
