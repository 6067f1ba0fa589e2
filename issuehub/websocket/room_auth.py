"""Room authorization for WebSocket connections.

Validates that users may join the rooms they ask for:
- user:{uuid} - only the user themself
- workspace:{uuid} - workspace owner or member
- project:{uuid} - access to the parent workspace
- issue:{uuid} - access to the parent project

Results are cached per (user, room) with a TTL so that a reconnection storm
does not turn into a burst of membership queries.
"""

import logging
import time
from typing import Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from ..database import async_session_maker
from ..services.access_service import (
    has_issue_access,
    has_project_access,
    has_workspace_access,
)
from .rooms import RoomKind, parse_room_id

logger = logging.getLogger(__name__)

_AUTH_CACHE_TTL = 300  # seconds
_AUTH_CACHE_MAX_SIZE = 50000

# (user_id, room_id) -> (allowed, expires_at)
_auth_cache: dict[tuple[str, str], tuple[bool, float]] = {}


def _get_cached_auth(user_id: UUID, room_id: str) -> Optional[bool]:
    """Get cached auth result if valid, None if not cached or expired."""
    key = (str(user_id), room_id)
    cached = _auth_cache.get(key)
    if cached is None:
        return None
    allowed, expires_at = cached
    if time.monotonic() > expires_at:
        _auth_cache.pop(key, None)
        return None
    return allowed


def _set_cached_auth(user_id: UUID, room_id: str, allowed: bool) -> None:
    """Cache an auth result with TTL, evicting the oldest half when full."""
    if len(_auth_cache) >= _AUTH_CACHE_MAX_SIZE:
        oldest = sorted(_auth_cache.items(), key=lambda item: item[1][1])
        for key, _ in oldest[: len(oldest) // 2]:
            _auth_cache.pop(key, None)
    _auth_cache[(str(user_id), room_id)] = (allowed, time.monotonic() + _AUTH_CACHE_TTL)


def invalidate_user_cache(user_id: UUID) -> None:
    """Invalidate all cached auth results for a user (call on membership changes)."""
    user_key = str(user_id)
    for key in [k for k in _auth_cache if k[0] == user_key]:
        _auth_cache.pop(key, None)


def clear_auth_cache() -> None:
    _auth_cache.clear()


async def check_room_access(user_id: UUID, room_id: str) -> bool:
    """
    Check if a user has access to a specific room.

    Args:
        user_id: The user's UUID
        room_id: The room identifier

    Returns:
        bool: True if user has access, False otherwise
    """
    try:
        kind, entity = parse_room_id(room_id)
        resource_id = UUID(entity)
    except ValueError:
        logger.warning(f"[Room Auth] DENIED - invalid room ID format: {room_id}")
        return False

    # User rooms need no DB lookup and are not cached
    if kind == RoomKind.USER:
        return resource_id == user_id

    cached = _get_cached_auth(user_id, room_id)
    if cached is not None:
        return cached

    try:
        async with async_session_maker() as db:
            allowed = await _check_access(db, user_id, kind, resource_id)
    except Exception as e:
        logger.error(f"[Room Auth] ERROR checking room access: {e}")
        return False

    _set_cached_auth(user_id, room_id, allowed)
    if not allowed:
        logger.info(f"[Room Auth] DENIED - user={user_id}, room={room_id}")
    return allowed


async def _check_access(db: AsyncSession, user_id: UUID, kind: RoomKind, resource_id: UUID) -> bool:
    if kind == RoomKind.WORKSPACE:
        return await has_workspace_access(db, user_id, resource_id)
    if kind == RoomKind.PROJECT:
        return await has_project_access(db, user_id, resource_id)
    if kind == RoomKind.ISSUE:
        return await has_issue_access(db, user_id, resource_id)
    return False
