"""Shared pytest fixtures for backend tests."""

import os
from typing import AsyncGenerator
from unittest.mock import AsyncMock
from uuid import uuid4

# Settings are read at import time
os.environ.setdefault("JWT_SECRET", "test-secret-key-for-unit-tests-only")
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["DB_CREATE_ALL"] = "false"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from issuehub import models  # noqa: F401  (registers tables on Base.metadata)
from issuehub.database import Base, get_db
from issuehub.main import app
from issuehub.models import Issue, IssueWatcher, Project, User, Workspace, WorkspaceMember
from issuehub.services.auth_service import create_access_token, hash_password
from issuehub.websocket.registry import registry
from issuehub.websocket.room_auth import clear_auth_cache

TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def engine():
    """Create a fresh in-memory database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, sharing the test session."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(autouse=True)
async def reset_realtime_state():
    """Every test starts with no live connections and no cached room decisions."""
    await registry.clear()
    clear_auth_cache()
    yield
    await registry.clear()
    clear_auth_cache()


# ============================================================================
# Users
# ============================================================================


async def _make_user(db: AsyncSession, email: str, display_name: str) -> User:
    user = User(
        id=uuid4(),
        email=email,
        password_hash=hash_password("TestPassword123!"),
        display_name=display_name,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


@pytest_asyncio.fixture
async def user_a(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "alice@example.com", "Alice")


@pytest_asyncio.fixture
async def user_b(db_session: AsyncSession) -> User:
    return await _make_user(db_session, "bob@example.com", "Bob")


@pytest_asyncio.fixture
async def outsider(db_session: AsyncSession) -> User:
    """A user with no workspace membership."""
    return await _make_user(db_session, "mallory@example.com", "Mallory")


def token_for(user: User) -> str:
    return create_access_token(data={"sub": str(user.id), "email": user.email})


def headers_for(user: User) -> dict:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def headers_a(user_a: User) -> dict:
    return headers_for(user_a)


@pytest.fixture
def headers_b(user_b: User) -> dict:
    return headers_for(user_b)


# ============================================================================
# Workspace / projects / issues
# ============================================================================


@pytest_asyncio.fixture
async def workspace(db_session: AsyncSession, user_a: User, user_b: User) -> Workspace:
    """Workspace owned by Alice with Bob as a member."""
    ws = Workspace(id=uuid4(), name="Acme", slug="acme", owner_id=user_a.id)
    db_session.add(ws)
    await db_session.commit()
    db_session.add(WorkspaceMember(workspace_id=ws.id, user_id=user_b.id, role="MEMBER"))
    await db_session.commit()
    await db_session.refresh(ws)
    return ws


@pytest_asyncio.fixture
async def project(db_session: AsyncSession, workspace: Workspace) -> Project:
    p = Project(id=uuid4(), workspace_id=workspace.id, name="Web", key="WEB")
    db_session.add(p)
    await db_session.commit()
    await db_session.refresh(p)
    return p


@pytest_asyncio.fixture
async def other_project(db_session: AsyncSession, workspace: Workspace) -> Project:
    p = Project(id=uuid4(), workspace_id=workspace.id, name="Mobile", key="MOB")
    db_session.add(p)
    await db_session.commit()
    await db_session.refresh(p)
    return p


@pytest_asyncio.fixture
async def issue(db_session: AsyncSession, project: Project, user_a: User) -> Issue:
    i = Issue(
        id=uuid4(),
        project_id=project.id,
        number=1,
        title="Login redirect loops",
        status="TODO",
        priority="MEDIUM",
        creator_id=user_a.id,
    )
    db_session.add(i)
    await db_session.commit()
    await db_session.refresh(i)
    return i


@pytest_asyncio.fixture
async def bob_watches(db_session: AsyncSession, issue: Issue, user_b: User) -> IssueWatcher:
    watcher = IssueWatcher(issue_id=issue.id, user_id=user_b.id)
    db_session.add(watcher)
    await db_session.commit()
    return watcher


# ============================================================================
# Live sockets
# ============================================================================


async def open_socket(user: User, *rooms: str):
    """
    Register a fake authenticated socket on the global registry.

    Returns:
        (Connection, AsyncMock websocket)
    """
    ws = AsyncMock()
    connection = await registry.open(ws)
    await registry.bind_user(connection.connection_id, user.id)
    for room in rooms:
        await registry.join(connection.connection_id, room)
    return connection, ws


def sent_messages(ws: AsyncMock, event_type: str | None = None) -> list[dict]:
    """Messages passed to ``send_json`` on a fake socket, optionally filtered by type."""
    messages = [call.args[0] for call in ws.send_json.call_args_list]
    if event_type is None:
        return messages
    return [m for m in messages if m["type"] == event_type]
