"""Unit tests for the broadcast router."""

import logging
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from issuehub.websocket.events import EventName, NotificationData, ServerEvent
from issuehub.websocket.registry import RoomMembershipRegistry
from issuehub.websocket.router import BroadcastRouter


async def _member(reg: RoomMembershipRegistry, *rooms: str):
    ws = AsyncMock()
    connection = await reg.open(ws)
    await reg.bind_user(connection.connection_id, uuid4())
    for room in rooms:
        await reg.join(connection.connection_id, room)
    return connection, ws


def _fake_relay(connected: bool = True) -> MagicMock:
    relay = MagicMock()
    relay.is_connected = connected
    relay.relay = AsyncMock()
    relay.start = AsyncMock()
    return relay


class TestPublish:
    """Tests for room fan-out."""

    @pytest.mark.asyncio
    async def test_delivers_only_to_room_members(self):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        _, ws_in = await _member(reg, "project:P")
        _, ws_other = await _member(reg, "project:Q")
        _, ws_none = await _member(reg)

        delivered = await router.publish("project:P", "task_created", {"task_id": "1"})

        assert delivered == 1
        ws_in.send_json.assert_awaited_once_with({"type": "task_created", "data": {"task_id": "1"}})
        ws_other.send_json.assert_not_awaited()
        ws_none.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_accepts_event_name_enum(self):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        _, ws = await _member(reg, "issue:1")

        await router.publish("issue:1", EventName.TASK_UPDATED, {})

        assert ws.send_json.call_args.args[0]["type"] == "task_updated"

    @pytest.mark.asyncio
    async def test_empty_room_returns_zero(self):
        router = BroadcastRouter(RoomMembershipRegistry())
        assert await router.publish("project:empty", "task_created", {}) == 0

    @pytest.mark.asyncio
    async def test_each_member_receives_once(self):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        connection, ws = await _member(reg, "project:P")
        await reg.join(connection.connection_id, "project:P")

        await router.publish("project:P", "task_created", {})

        assert ws.send_json.await_count == 1

    @pytest.mark.asyncio
    async def test_failing_socket_does_not_block_others(self, caplog):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        broken, ws_broken = await _member(reg, "project:P")
        ws_broken.send_json.side_effect = RuntimeError("socket closed")
        _, ws_ok_1 = await _member(reg, "project:P")
        _, ws_ok_2 = await _member(reg, "project:P")

        with caplog.at_level(logging.WARNING):
            delivered = await router.publish("project:P", "task_updated", {"task_id": "1"})

        assert delivered == 2
        ws_ok_1.send_json.assert_awaited_once()
        ws_ok_2.send_json.assert_awaited_once()
        assert broken.connection_id in caplog.text

    @pytest.mark.asyncio
    async def test_no_retroactive_delivery(self):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        await _member(reg, "project:P")

        await router.publish("project:P", "task_created", {"task_id": "early"})
        _, late_ws = await _member(reg, "project:P")

        late_ws.send_json.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_publish_event_serializes_payload(self):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        _, ws = await _member(reg, "user:u")
        event = ServerEvent(
            type=EventName.NOTIFICATION,
            data=NotificationData(id="n1", notification_type="MENTION", message="hi"),
        )

        await router.publish_event("user:u", event)

        message = ws.send_json.call_args.args[0]
        assert message["type"] == "notification"
        assert message["data"]["id"] == "n1"
        assert message["data"]["is_read"] is False


class TestSend:
    """Tests for direct sends."""

    @pytest.mark.asyncio
    async def test_send_to_unknown_connection(self):
        router = BroadcastRouter(RoomMembershipRegistry())
        assert await router.send("missing", {"type": "pong", "data": {}}) is False

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self):
        reg = RoomMembershipRegistry()
        router = BroadcastRouter(reg)
        connection, ws = await _member(reg)
        ws.send_json.side_effect = ConnectionResetError()

        assert await router.send(connection.connection_id, {"type": "pong", "data": {}}) is False


class TestRedisRelay:
    """Tests for the cross-worker relay hooks."""

    @pytest.mark.asyncio
    async def test_publish_relays_when_connected(self):
        relay = _fake_relay()
        router = BroadcastRouter(RoomMembershipRegistry(), relay)

        await router.publish("project:P", "task_created", {"task_id": "1"})

        relay.relay.assert_awaited_once_with(
            "project:P", {"type": "task_created", "data": {"task_id": "1"}}
        )

    @pytest.mark.asyncio
    async def test_no_relay_when_disconnected(self):
        relay = _fake_relay(connected=False)
        router = BroadcastRouter(RoomMembershipRegistry(), relay)

        await router.publish("project:P", "task_created", {})

        relay.relay.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_relay_failure_keeps_local_delivery(self):
        reg = RoomMembershipRegistry()
        relay = _fake_relay()
        relay.relay.side_effect = ConnectionError("redis down")
        router = BroadcastRouter(reg, relay)
        _, ws = await _member(reg, "project:P")

        assert await router.publish("project:P", "task_created", {}) == 1
        ws.send_json.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_initialize_relay_registers_local_delivery(self):
        reg = RoomMembershipRegistry()
        relay = _fake_relay()
        router = BroadcastRouter(reg, relay)
        _, ws = await _member(reg, "project:P")
        message = {"type": "task_created", "data": {"task_id": "1"}}

        await router.initialize_relay()
        deliver = relay.start.call_args.args[0]
        await deliver("project:P", message)

        ws.send_json.assert_awaited_once_with(message)

    @pytest.mark.asyncio
    async def test_initialize_relay_skipped_without_redis(self):
        relay = _fake_relay(connected=False)

        await BroadcastRouter(RoomMembershipRegistry(), relay).initialize_relay()
        await BroadcastRouter(RoomMembershipRegistry()).initialize_relay()

        relay.start.assert_not_awaited()
