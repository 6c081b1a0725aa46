import json

import pytest

from chatrelay.core.errors import MalformedEnvelopeError
from chatrelay.services.connection import Session
from chatrelay.services.connection_manager import ConnectionManager
from chatrelay.services.dispatcher import Dispatcher, decode_envelope
from chatrelay.services.room_registry import RoomRegistry

from conftest import FakeWebSocket, flush


def frame(type_, **payload):
    data = {"type": type_}
    if payload:
        data["payload"] = payload
    return json.dumps(data)


async def join(dispatcher, conn, code, name):
    await dispatcher.dispatch(conn, frame("join_room", roomCode=code, userName=name))


@pytest.mark.parametrize(
    "raw",
    [
        "not json",
        "[1, 2, 3]",
        '"create_room"',
        '{"type": "delete_everything"}',
        '{"payload": {"roomCode": "AB12CD"}}',
    ],
)
def test_decode_rejects_malformed_frames(raw):
    with pytest.raises(MalformedEnvelopeError):
        decode_envelope(raw)


@pytest.mark.parametrize(
    "raw",
    [
        "{{{",
        '{"type": "nope"}',
        '{"type": "join_room"}',
        '{"type": "join_room", "payload": {"roomCode": "AB12CD"}}',
        '{"type": "send_message", "payload": {"sender": "x"}}',
    ],
)
async def test_malformed_frames_are_dropped_without_reply(dispatcher, make_connection, raw):
    conn = make_connection()

    await dispatcher.dispatch(conn, raw)
    await flush(conn)

    assert conn.transport.sent == []
    assert conn.session is None


async def test_create_room_replies_with_code(dispatcher, registry, make_connection):
    conn = make_connection()

    await dispatcher.dispatch(conn, frame("create_room"))
    await flush(conn)

    [reply] = conn.transport.sent
    assert reply["type"] == "room_created"
    assert reply["payload"]["roomCode"] in registry
    # Creating does not put the creator in the room
    assert conn.session is None


async def test_join_unknown_room_errors_and_leaves_session_unset(dispatcher, make_connection):
    conn = make_connection()

    await join(dispatcher, conn, "NOPE00", "Alice")
    await flush(conn)

    assert conn.transport.sent == [{"type": "error", "payload": {"message": "Room not found or full"}}]
    assert conn.session is None


async def test_join_full_room_errors(make_connection):
    registry = RoomRegistry(capacity=2)
    dispatcher = Dispatcher(registry)
    code = await registry.create_room()
    for name in ("a", "b"):
        await join(dispatcher, make_connection(), code, name)

    late = make_connection()
    await join(dispatcher, late, code, "c")
    await flush(late)

    assert late.transport.of_type("error") == [{"message": "Room not found or full"}]
    assert late.session is None


async def test_join_binds_session_with_normalized_code(dispatcher, registry, make_connection):
    code = await registry.create_room()
    conn = make_connection()

    await join(dispatcher, conn, code.lower(), "Alice")

    assert conn.session.room_code == code
    assert conn.session.display_name == "Alice"


async def test_second_join_is_refused(dispatcher, registry, make_connection):
    first = await registry.create_room()
    second = await registry.create_room()
    conn = make_connection()
    await join(dispatcher, conn, first, "Alice")

    await join(dispatcher, conn, second, "Alice")
    await flush(conn)

    assert conn.transport.of_type("error") == [{"message": "Already in a room"}]
    assert conn.session.room_code == first
    assert (await registry.lookup(second)).user_count == 0


async def test_send_without_room_is_dropped(dispatcher, registry, make_connection):
    conn = make_connection()

    await dispatcher.dispatch(conn, frame("send_message", sender="Alice", content="hi"))
    await flush(conn)

    assert conn.transport.sent == []
    assert registry.total_messages == 0


async def test_session_name_wins_over_payload_sender(dispatcher, registry, make_connection):
    code = await registry.create_room()
    conn = make_connection()
    await join(dispatcher, conn, code, "Alice")

    await dispatcher.dispatch(conn, frame("send_message", sender="Mallory", content="hi"))
    await flush(conn)

    [message] = conn.transport.of_type("new_message")
    assert message["sender"] == "Alice"
    assert registry.total_messages == 1


async def test_empty_message_is_dropped(dispatcher, registry, make_connection):
    code = await registry.create_room()
    conn = make_connection()
    await join(dispatcher, conn, code, "Alice")

    await dispatcher.dispatch(conn, frame("send_message", sender="Alice", content=""))
    await flush(conn)

    assert conn.transport.of_type("new_message") == []
    assert registry.total_messages == 0


async def test_close_twice_broadcasts_user_left_once(dispatcher, registry, make_connection):
    code = await registry.create_room()
    alice, bob = make_connection(), make_connection()
    await join(dispatcher, alice, code, "Alice")
    await join(dispatcher, bob, code, "Bob")

    await dispatcher.handle_close(bob)
    await dispatcher.handle_close(bob)
    await flush(alice)

    assert alice.transport.of_type("user_left") == [{"userCount": 1}]
    assert (await registry.lookup(code)).user_count == 1


async def test_join_on_closed_connection_is_rolled_back(dispatcher, registry, make_connection):
    code = await registry.create_room()
    conn = make_connection()
    conn.mark_closed()

    await join(dispatcher, conn, code, "Alice")

    assert conn.session is None
    assert code not in registry


async def test_connection_manager_leaves_exactly_once(dispatcher, registry):
    manager = ConnectionManager(dispatcher)
    code = await registry.create_room()
    ws_alice, ws_bob = FakeWebSocket(), FakeWebSocket()
    alice = await manager.connect(ws_alice)
    bob = await manager.connect(ws_bob)
    assert ws_alice.accepted and manager.active_connections == 2

    await join(dispatcher, alice, code, "Alice")
    await join(dispatcher, bob, code, "Bob")
    await flush(alice, bob)

    await manager.disconnect(bob)
    await manager.disconnect(bob)
    await flush(alice)

    assert ws_alice.of_type("user_left") == [{"userCount": 1}]
    assert manager.active_connections == 1

    await manager.disconnect(alice)
    assert manager.active_connections == 0
    assert code not in registry


async def test_chat_scenario(make_connection):
    registry = RoomRegistry(code_factory=lambda: "AB12CD")
    dispatcher = Dispatcher(registry)
    alice, bob, carol = make_connection(), make_connection(), make_connection()

    await dispatcher.dispatch(alice, frame("create_room"))
    await join(dispatcher, alice, "AB12CD", "Alice")
    await flush(alice)
    assert alice.transport.sent == [
        {"type": "room_created", "payload": {"roomCode": "AB12CD"}},
        {"type": "room_joined", "payload": {"roomCode": "AB12CD", "messages": [], "userCount": 1}},
    ]

    await join(dispatcher, bob, "AB12CD", "Bob")
    await flush(alice, bob)
    assert alice.transport.sent[-1] == {"type": "user_joined", "payload": {"userCount": 2}}
    assert bob.transport.sent == [
        {"type": "room_joined", "payload": {"roomCode": "AB12CD", "messages": [], "userCount": 2}},
    ]

    await dispatcher.dispatch(alice, frame("send_message", sender="Alice", content="hi"))
    await flush(alice, bob)
    [to_alice] = alice.transport.of_type("new_message")
    [to_bob] = bob.transport.of_type("new_message")
    assert to_alice == to_bob
    assert to_alice["sender"] == "Alice" and to_alice["content"] == "hi"

    await dispatcher.handle_close(bob)
    await flush(alice)
    assert alice.transport.sent[-1] == {"type": "user_left", "payload": {"userCount": 1}}

    await dispatcher.handle_close(alice)
    assert "AB12CD" not in registry

    await join(dispatcher, carol, "AB12CD", "Carol")
    await flush(carol)
    assert carol.transport.sent == [{"type": "error", "payload": {"message": "Room not found or full"}}]


@pytest.mark.parametrize("raw", ["[" * 200000, '{"a":' * 200000, b"\xffnot json"])
async def test_pathological_frames_keep_connection_usable(dispatcher, make_connection, raw):
    conn = make_connection()

    await dispatcher.dispatch(conn, raw)
    await dispatcher.dispatch(conn, frame("create_room"))
    await flush(conn)

    assert conn.transport.types() == ["room_created"]


def test_deeply_nested_json_is_malformed():
    with pytest.raises(MalformedEnvelopeError):
        decode_envelope("[" * 200000)


async def test_binary_frame_is_decoded(dispatcher, make_connection):
    conn = make_connection()

    await dispatcher.dispatch(conn, b'{"type": "create_room"}')
    await flush(conn)

    assert conn.transport.types() == ["room_created"]


async def test_session_binds_only_once(make_connection):
    conn = make_connection()
    conn.bind(Session(room_code="AB12CD", display_name="Alice"))

    with pytest.raises(RuntimeError):
        conn.bind(Session(room_code="ZZ99ZZ", display_name="Alice"))
    assert conn.session.room_code == "AB12CD"
