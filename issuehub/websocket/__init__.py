"""WebSocket module for real-time collaboration."""

from .authenticator import ConnectionAuthenticator, authenticator, extract_bearer
from .events import (
    ClientMessage,
    EventName,
    NotificationData,
    ServerEvent,
    UpdateAction,
    parse_server_event,
)
from .handlers import (
    handle_comment_added,
    handle_notification,
    handle_notification_read,
    handle_task_update,
    route_incoming_message,
)
from .registry import Connection, RoomMembershipRegistry, registry
from .room_auth import check_room_access, invalidate_user_cache
from .rooms import RoomKind, issue_room, parse_room_id, project_room, user_room, workspace_room
from .router import BroadcastRouter, broadcast_router

__all__ = [
    # Registry
    "Connection",
    "RoomMembershipRegistry",
    "registry",
    # Router
    "BroadcastRouter",
    "broadcast_router",
    # Authentication
    "ConnectionAuthenticator",
    "authenticator",
    "extract_bearer",
    # Events
    "ClientMessage",
    "EventName",
    "NotificationData",
    "ServerEvent",
    "UpdateAction",
    "parse_server_event",
    # Handlers
    "handle_comment_added",
    "handle_notification",
    "handle_notification_read",
    "handle_task_update",
    "route_incoming_message",
    # Rooms
    "RoomKind",
    "issue_room",
    "parse_room_id",
    "project_room",
    "user_room",
    "workspace_room",
    # Room authorization
    "check_room_access",
    "invalidate_user_cache",
]
