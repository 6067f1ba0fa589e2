"""Tests for WebSocket room authorization."""

from unittest.mock import patch
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker

from issuehub.websocket import room_auth
from issuehub.websocket.room_auth import check_room_access, invalidate_user_cache
from issuehub.websocket.rooms import issue_room, project_room, user_room, workspace_room


@pytest_asyncio.fixture
async def test_sessions(engine):
    """Point room authorization at the test database."""
    maker = async_sessionmaker(engine, expire_on_commit=False)
    with patch("issuehub.websocket.room_auth.async_session_maker", maker):
        yield maker


class TestUserRooms:
    """User rooms are private to their owner."""

    @pytest.mark.asyncio
    async def test_own_user_room(self):
        user_id = uuid4()
        assert await check_room_access(user_id, user_room(user_id)) is True

    @pytest.mark.asyncio
    async def test_other_user_room(self):
        assert await check_room_access(uuid4(), user_room(uuid4())) is False

    @pytest.mark.asyncio
    @pytest.mark.parametrize("room", ["project:not-a-uuid", "team:1", "garbage"])
    async def test_malformed_room_denied(self, room):
        assert await check_room_access(uuid4(), room) is False


class TestMembershipRooms:
    """Workspace, project and issue rooms follow workspace membership."""

    @pytest.mark.asyncio
    async def test_owner_and_member_allowed(self, test_sessions, user_a, user_b, workspace, project, issue):
        for user in (user_a, user_b):
            assert await check_room_access(user.id, workspace_room(workspace.id)) is True
            assert await check_room_access(user.id, project_room(project.id)) is True
            assert await check_room_access(user.id, issue_room(issue.id)) is True

    @pytest.mark.asyncio
    async def test_outsider_denied(self, test_sessions, outsider, workspace, project, issue):
        assert await check_room_access(outsider.id, workspace_room(workspace.id)) is False
        assert await check_room_access(outsider.id, project_room(project.id)) is False
        assert await check_room_access(outsider.id, issue_room(issue.id)) is False

    @pytest.mark.asyncio
    async def test_missing_entity_denied(self, test_sessions, user_a):
        assert await check_room_access(user_a.id, project_room(uuid4())) is False

    @pytest.mark.asyncio
    async def test_decision_is_cached_until_invalidated(self, test_sessions, outsider, project):
        room = project_room(project.id)
        assert await check_room_access(outsider.id, room) is False
        assert room_auth._get_cached_auth(outsider.id, room) is False

        invalidate_user_cache(outsider.id)

        assert room_auth._get_cached_auth(outsider.id, room) is None

    @pytest.mark.asyncio
    async def test_database_error_denies(self, user_a, project):
        def broken_maker():
            raise RuntimeError("database unavailable")

        with patch("issuehub.websocket.room_auth.async_session_maker", broken_maker):
            assert await check_room_access(user_a.id, project_room(project.id)) is False
