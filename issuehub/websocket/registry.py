"""Room membership registry for live WebSocket connections.

This module owns the only mutable realtime state in the process:
- connection_id -> Connection (socket plus resolved user)
- room_id -> set of connection ids
- connection_id -> set of room ids
- user_id -> set of connection ids (per-user connection cap)

Membership is never persisted. A restart clears everything and clients
rejoin their rooms after reconnecting.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional
from uuid import UUID, uuid4

from ..config import settings
from ..errors import NotAuthenticated, TooManyConnections

logger = logging.getLogger(__name__)


@dataclass
class Connection:
    """One live client socket session."""

    websocket: Any
    connection_id: str = field(default_factory=lambda: uuid4().hex)
    user_id: Optional[UUID] = None
    connected_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def is_authenticated(self) -> bool:
        return self.user_id is not None

    def __hash__(self) -> int:
        return hash(self.connection_id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Connection):
            return False
        return self.connection_id == other.connection_id


class RoomMembershipRegistry:
    """
    Tracks which connections belong to which rooms.

    Every mutation runs under a single asyncio lock and never awaits while
    the maps disagree, so the synchronous readers (members_of, rooms_of)
    always observe a complete snapshot.
    """

    def __init__(self, max_connections_per_user: Optional[int] = None) -> None:
        self._connections: dict[str, Connection] = {}
        self._rooms: dict[str, set[str]] = {}
        self._memberships: dict[str, set[str]] = {}
        self._user_connections: dict[UUID, set[str]] = {}
        self._max_per_user = max_connections_per_user
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    async def open(self, websocket: Any) -> Connection:
        """Register a new, not yet authenticated, connection."""
        connection = Connection(websocket=websocket)
        async with self._lock:
            self._connections[connection.connection_id] = connection
            self._memberships[connection.connection_id] = set()
        logger.debug(f"Connection opened: {connection.connection_id}")
        return connection

    async def bind_user(self, connection_id: str, user_id: UUID) -> Connection:
        """
        Attach the authenticated identity to a connection.

        Raises:
            NotAuthenticated: If the connection is unknown (already closed)
            TooManyConnections: If the user is at the connection cap
        """
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                raise NotAuthenticated(f"Unknown connection: {connection_id}")
            if connection.user_id == user_id:
                return connection
            if connection.user_id is not None:
                raise ValueError("Connection is already bound to another user")

            user_conns = self._user_connections.setdefault(user_id, set())
            if self._max_per_user is not None and len(user_conns) >= self._max_per_user:
                if not user_conns:
                    del self._user_connections[user_id]
                raise TooManyConnections(
                    f"User {user_id} has {len(user_conns)} open connections"
                )
            user_conns.add(connection_id)
            connection.user_id = user_id
        return connection

    async def on_disconnect(self, connection_id: str) -> Optional[Connection]:
        """
        Remove a connection from every room and discard it.

        Safe to call repeatedly; returns None when already removed.
        """
        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return None

            for room in self._memberships.pop(connection_id, set()):
                members = self._rooms.get(room)
                if members is not None:
                    members.discard(connection_id)
                    if not members:
                        del self._rooms[room]

            if connection.user_id is not None:
                user_conns = self._user_connections.get(connection.user_id)
                if user_conns is not None:
                    user_conns.discard(connection_id)
                    if not user_conns:
                        del self._user_connections[connection.user_id]

        logger.info(
            f"Connection removed: id={connection_id}, user={connection.user_id}, "
            f"total_connections={self.total_connections}"
        )
        return connection

    async def clear(self) -> None:
        """Drop all connections and memberships (process shutdown)."""
        async with self._lock:
            self._connections.clear()
            self._rooms.clear()
            self._memberships.clear()
            self._user_connections.clear()

    # ------------------------------------------------------------------
    # Membership
    # ------------------------------------------------------------------

    async def join(self, connection_id: str, room_id: str) -> bool:
        """
        Add a connection to a room.

        Returns:
            bool: True if the connection was added, False if already a member

        Raises:
            NotAuthenticated: If the connection has no resolved user or is unknown
        """
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None or connection.user_id is None:
                raise NotAuthenticated(
                    f"Connection {connection_id} must authenticate before joining {room_id}"
                )
            memberships = self._memberships[connection_id]
            if room_id in memberships:
                return False
            memberships.add(room_id)
            self._rooms.setdefault(room_id, set()).add(connection_id)

        logger.info(
            f"User {connection.user_id} joined room {room_id} "
            f"(room_size={self.get_room_count(room_id)})"
        )
        return True

    async def leave(self, connection_id: str, room_id: str) -> bool:
        """
        Remove a connection from a room.

        Returns:
            bool: True if the connection was removed, False if it was not a member
        """
        async with self._lock:
            memberships = self._memberships.get(connection_id)
            if not memberships or room_id not in memberships:
                return False
            memberships.discard(room_id)
            members = self._rooms.get(room_id)
            if members is not None:
                members.discard(connection_id)
                if not members:
                    del self._rooms[room_id]

        logger.info(f"Connection {connection_id} left room {room_id}")
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def members_of(self, room_id: str) -> frozenset[str]:
        """Snapshot of the connection ids currently in a room."""
        return frozenset(self._rooms.get(room_id, ()))

    def rooms_of(self, connection_id: str) -> frozenset[str]:
        """Snapshot of the rooms a connection belongs to."""
        return frozenset(self._memberships.get(connection_id, ()))

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections_for_user(self, user_id: UUID) -> frozenset[str]:
        return frozenset(self._user_connections.get(user_id, ()))

    def get_room_count(self, room_id: str) -> int:
        """Get number of connections in a room."""
        return len(self._rooms.get(room_id, ()))

    @property
    def total_connections(self) -> int:
        """Get total number of live connections."""
        return len(self._connections)

    @property
    def total_rooms(self) -> int:
        """Get total number of non-empty rooms."""
        return len(self._rooms)


# Global singleton instance
registry = RoomMembershipRegistry(max_connections_per_user=settings.ws_max_connections_per_user)
