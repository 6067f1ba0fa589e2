"""Unit tests for the room membership registry."""

import asyncio
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from issuehub.errors import NotAuthenticated, TooManyConnections
from issuehub.websocket.registry import Connection, RoomMembershipRegistry


async def _authenticated(reg: RoomMembershipRegistry, user_id=None) -> Connection:
    connection = await reg.open(AsyncMock())
    await reg.bind_user(connection.connection_id, user_id or uuid4())
    return connection


class TestConnection:
    """Tests for the Connection dataclass."""

    def test_connection_creation(self):
        mock_ws = MagicMock()
        conn = Connection(websocket=mock_ws)

        assert conn.websocket is mock_ws
        assert conn.user_id is None
        assert not conn.is_authenticated
        assert isinstance(conn.connected_at, datetime)

    def test_connection_identity(self):
        ws = MagicMock()
        conn1 = Connection(websocket=ws)
        conn2 = Connection(websocket=ws)

        assert conn1 != conn2
        assert conn1 == Connection(websocket=MagicMock(), connection_id=conn1.connection_id)
        assert len({conn1, conn2}) == 2


class TestLifecycle:
    """Tests for open / bind_user / on_disconnect."""

    @pytest.mark.asyncio
    async def test_open_registers_unauthenticated_connection(self):
        reg = RoomMembershipRegistry()
        connection = await reg.open(AsyncMock())

        assert reg.get(connection.connection_id) is connection
        assert not connection.is_authenticated
        assert reg.total_connections == 1

    @pytest.mark.asyncio
    async def test_bind_user(self):
        reg = RoomMembershipRegistry()
        user_id = uuid4()
        connection = await reg.open(AsyncMock())

        await reg.bind_user(connection.connection_id, user_id)

        assert connection.user_id == user_id
        assert reg.connections_for_user(user_id) == {connection.connection_id}

    @pytest.mark.asyncio
    async def test_bind_unknown_connection(self):
        reg = RoomMembershipRegistry()
        with pytest.raises(NotAuthenticated):
            await reg.bind_user("missing", uuid4())

    @pytest.mark.asyncio
    async def test_bind_to_second_user_rejected(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)
        with pytest.raises(ValueError):
            await reg.bind_user(connection.connection_id, uuid4())

    @pytest.mark.asyncio
    async def test_connection_cap_per_user(self):
        reg = RoomMembershipRegistry(max_connections_per_user=2)
        user_id = uuid4()
        await _authenticated(reg, user_id)
        await _authenticated(reg, user_id)

        third = await reg.open(AsyncMock())
        with pytest.raises(TooManyConnections):
            await reg.bind_user(third.connection_id, user_id)
        assert len(reg.connections_for_user(user_id)) == 2

    @pytest.mark.asyncio
    async def test_disconnect_removes_from_every_room(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)
        other = await _authenticated(reg)
        for room in ("project:1", "issue:2", "workspace:3"):
            await reg.join(connection.connection_id, room)
        await reg.join(other.connection_id, "project:1")

        removed = await reg.on_disconnect(connection.connection_id)

        assert removed is connection
        assert connection.connection_id not in reg.members_of("project:1")
        assert reg.members_of("issue:2") == frozenset()
        assert reg.members_of("project:1") == {other.connection_id}
        assert reg.get(connection.connection_id) is None
        assert reg.connections_for_user(connection.user_id) == frozenset()

    @pytest.mark.asyncio
    async def test_disconnect_is_idempotent(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)
        await reg.join(connection.connection_id, "project:1")

        assert await reg.on_disconnect(connection.connection_id) is connection
        assert await reg.on_disconnect(connection.connection_id) is None
        assert reg.total_connections == 0
        assert reg.total_rooms == 0

    @pytest.mark.asyncio
    async def test_disconnect_before_authentication(self):
        reg = RoomMembershipRegistry()
        connection = await reg.open(AsyncMock())

        assert await reg.on_disconnect(connection.connection_id) is connection
        assert reg.total_connections == 0


class TestMembership:
    """Tests for join / leave semantics."""

    @pytest.mark.asyncio
    async def test_join_and_members_of(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)

        assert await reg.join(connection.connection_id, "project:1") is True
        assert reg.members_of("project:1") == {connection.connection_id}
        assert reg.rooms_of(connection.connection_id) == {"project:1"}
        assert reg.get_room_count("project:1") == 1

    @pytest.mark.asyncio
    async def test_join_twice_is_noop(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)

        await reg.join(connection.connection_id, "project:1")
        assert await reg.join(connection.connection_id, "project:1") is False
        assert reg.get_room_count("project:1") == 1

    @pytest.mark.asyncio
    async def test_join_twice_then_leave_once(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)

        await reg.join(connection.connection_id, "issue:9")
        await reg.join(connection.connection_id, "issue:9")
        await reg.leave(connection.connection_id, "issue:9")

        assert connection.connection_id not in reg.members_of("issue:9")
        assert reg.total_rooms == 0

    @pytest.mark.asyncio
    async def test_leave_not_joined_is_noop(self):
        reg = RoomMembershipRegistry()
        connection = await _authenticated(reg)

        assert await reg.leave(connection.connection_id, "project:1") is False
        assert await reg.leave("unknown", "project:1") is False

    @pytest.mark.asyncio
    async def test_unauthenticated_join_rejected(self):
        reg = RoomMembershipRegistry()
        connection = await reg.open(AsyncMock())

        with pytest.raises(NotAuthenticated):
            await reg.join(connection.connection_id, "workspace:1")
        assert reg.members_of("workspace:1") == frozenset()
        assert reg.rooms_of(connection.connection_id) == frozenset()

    @pytest.mark.asyncio
    async def test_unknown_connection_join_rejected(self):
        reg = RoomMembershipRegistry()
        with pytest.raises(NotAuthenticated):
            await reg.join("ghost", "project:1")

    @pytest.mark.asyncio
    async def test_many_to_many(self):
        reg = RoomMembershipRegistry()
        c1 = await _authenticated(reg)
        c2 = await _authenticated(reg)

        await reg.join(c1.connection_id, "project:1")
        await reg.join(c1.connection_id, "project:2")
        await reg.join(c2.connection_id, "project:1")

        assert reg.members_of("project:1") == {c1.connection_id, c2.connection_id}
        assert reg.rooms_of(c1.connection_id) == {"project:1", "project:2"}

    @pytest.mark.asyncio
    async def test_members_of_is_a_snapshot(self):
        reg = RoomMembershipRegistry()
        c1 = await _authenticated(reg)
        c2 = await _authenticated(reg)
        await reg.join(c1.connection_id, "project:1")

        snapshot = reg.members_of("project:1")
        await reg.join(c2.connection_id, "project:1")

        assert snapshot == {c1.connection_id}
        assert reg.members_of("project:1") == {c1.connection_id, c2.connection_id}

    @pytest.mark.asyncio
    async def test_concurrent_joins_and_leaves(self):
        reg = RoomMembershipRegistry()
        connections = [await _authenticated(reg) for _ in range(20)]

        await asyncio.gather(*(reg.join(c.connection_id, "project:1") for c in connections))
        assert reg.get_room_count("project:1") == 20

        await asyncio.gather(
            *(reg.leave(c.connection_id, "project:1") for c in connections[:10]),
            *(reg.on_disconnect(c.connection_id) for c in connections[10:]),
        )
        assert reg.get_room_count("project:1") == 0
        assert reg.total_connections == 10
