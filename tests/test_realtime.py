from __future__ import annotations

import time

import pytest
from fastapi.testclient import TestClient

from eventhub.main import app
from eventhub.realtime import Broadcaster, ChannelRegistry
from tests.utils import auth_headers, drain, event_form


def _wait_for(predicate, timeout: float = 2.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met in time")
        time.sleep(0.01)


def test_new_connection_is_only_on_global_channel(registry: ChannelRegistry, loop):
    connection = registry.connect(loop)

    assert registry.members() == {connection.id}
    assert registry.channels_for(connection.id) == set()


def test_subscribe_is_idempotent_and_independent(registry: ChannelRegistry, loop):
    connection = registry.connect(loop)

    registry.subscribe(connection.id, "event-a")
    registry.subscribe(connection.id, "event-a")
    registry.subscribe(connection.id, "event-b")
    registry.unsubscribe(connection.id, "event-a")

    assert registry.channels_for(connection.id) == {"event-b"}
    assert registry.members("event-a") == set()


def test_unsubscribe_unknown_channel_is_noop(registry: ChannelRegistry, loop):
    connection = registry.connect(loop)

    registry.unsubscribe(connection.id, "never-joined")

    assert registry.channels_for(connection.id) == set()


def test_subscribe_requires_live_connection(registry: ChannelRegistry):
    with pytest.raises(KeyError):
        registry.subscribe("conn-404", "event-a")


def test_disconnect_leaves_every_channel(registry: ChannelRegistry, loop):
    connection = registry.connect(loop)
    registry.subscribe(connection.id, "event-a")
    registry.subscribe(connection.id, "event-b")

    registry.disconnect(connection.id)

    assert registry.members() == set()
    assert registry.members("event-a") == set()
    assert registry.members("event-b") == set()
    assert registry.publish({"event": "ping"}) == 0


def test_publish_reaches_only_channel_members(registry: ChannelRegistry, loop):
    member = registry.connect(loop)
    other = registry.connect(loop)
    registry.subscribe(member.id, "event-a")

    assert registry.publish({"event": "scoped"}, channel="event-a") == 1
    assert registry.publish({"event": "global"}) == 2

    assert drain(loop, member) == [{"event": "scoped"}, {"event": "global"}]
    assert drain(loop, other) == [{"event": "global"}]


def test_close_drops_connections_and_refuses_new_ones(registry: ChannelRegistry, loop):
    connection = registry.connect(loop)
    registry.subscribe(connection.id, "event-a")

    registry.close()

    assert registry.members() == set()
    assert drain(loop, connection) == [None]
    with pytest.raises(RuntimeError):
        registry.connect(loop)


def test_broadcaster_message_shapes(registry: ChannelRegistry, loop):
    broadcaster = Broadcaster(registry)
    global_listener = registry.connect(loop)
    room_listener = registry.connect(loop)
    registry.subscribe(room_listener.id, "42")
    event = {"id": "42", "title": "Gig"}

    broadcaster.event_created(event)
    broadcaster.attendee_update(event)
    broadcaster.event_deleted("42")

    assert drain(loop, global_listener) == [
        {"event": "eventCreated", "data": event},
        {"event": "eventDeleted", "data": "42"},
    ]
    assert drain(loop, room_listener) == [
        {"event": "eventCreated", "data": event},
        {"event": "attendeeUpdate", "data": event},
        {"event": "eventDeleted", "data": "42"},
    ]


def test_socket_receives_event_created(client: TestClient):
    with client.websocket_connect("/ws") as ws:
        resp = client.post(
            "/api/events",
            data=event_form(title="Live Event"),
            headers=auth_headers("creator@example.com"),
        )
        assert resp.status_code == 201

        message = ws.receive_json()

    assert message["event"] == "eventCreated"
    assert message["data"]["id"] == resp.json()["id"]
    assert message["data"]["title"] == "Live Event"


def test_socket_room_gets_attendee_update_only_after_join_event(client: TestClient):
    registry: ChannelRegistry = app.state.channels
    event_id = client.post(
        "/api/events", data=event_form(), headers=auth_headers("creator@example.com")
    ).json()["id"]

    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "joinEvent", "eventId": event_id})
        _wait_for(lambda: registry.members(event_id))

        resp = client.post(f"/api/events/{event_id}/join", headers=auth_headers("a@example.com"))
        assert resp.status_code == 200

        message = ws.receive_json()
        assert message["event"] == "attendeeUpdate"
        assert [u["email"] for u in message["data"]["attendees"]] == ["a@example.com"]

        ws.send_json({"type": "leaveEvent", "eventId": event_id})
        _wait_for(lambda: not registry.members(event_id))

    _wait_for(lambda: not registry.members())


def test_socket_ignores_malformed_control_messages(client: TestClient):
    registry: ChannelRegistry = app.state.channels

    with client.websocket_connect("/ws") as ws:
        ws.send_text("not json")
        ws.send_bytes(b"\x00\x01")
        ws.send_json({"type": "joinEvent"})
        ws.send_json({"type": "dance", "eventId": "x"})
        ws.send_json({"type": "joinEvent", "eventId": "room-1"})
        _wait_for(lambda: registry.members("room-1"))

        assert len(registry.members()) == 1
