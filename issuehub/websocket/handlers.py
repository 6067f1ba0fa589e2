"""WebSocket event handlers: client message routing and domain fan-out."""

import logging
from typing import Any, Awaitable, Callable, Optional
from uuid import UUID

from ..errors import NotAuthenticated
from .events import (
    ClientMessage,
    CommentAddedData,
    EventName,
    MemberAddedData,
    NotificationData,
    NotificationReadData,
    ServerEvent,
    TaskDeletedData,
    TaskEventData,
    UpdateAction,
    error_message,
    protocol_message,
)
from .registry import Connection
from .rooms import canonical_room_id, issue_room, project_room, user_room, workspace_room
from .router import BroadcastRouter, broadcast_router

logger = logging.getLogger(__name__)

RoomAuthorizer = Callable[[UUID, str], Awaitable[bool]]

_JOIN_TYPES = {ClientMessage.JOIN.value, ClientMessage.JOIN_ROOM.value}
_LEAVE_TYPES = {ClientMessage.LEAVE.value, ClientMessage.LEAVE_ROOM.value}


def _room_from(data: dict[str, Any]) -> Optional[str]:
    body = data.get("data")
    if isinstance(body, dict):
        return body.get("room_id")
    if isinstance(body, str):
        return body
    return None


async def _resolve_room(
    rtr: BroadcastRouter, connection: Connection, data: dict[str, Any]
) -> Optional[str]:
    """Canonical room id from a join/leave frame, or None after replying INVALID_ROOM."""
    raw = _room_from(data)
    try:
        return canonical_room_id(raw)
    except ValueError:
        await rtr.send(
            connection.connection_id,
            error_message("INVALID_ROOM", f"Invalid room id: {raw}"),
        )
        return None


async def route_incoming_message(
    connection: Connection,
    data: dict[str, Any],
    router: Optional[BroadcastRouter] = None,
    room_authorizer: Optional[RoomAuthorizer] = None,
) -> None:
    """
    Route an incoming client frame.

    Handles join/leave (``join``/``join_room``, ``leave``/``leave_room``) and
    ping. Room ids are normalized with ``canonical_room_id`` before they
    reach the authorizer or the registry, so the ack carries the id that
    broadcasts use. Joins require an authenticated connection and, when
    ``room_authorizer`` is given, its approval.

    Args:
        connection: The connection that sent the message
        data: The decoded JSON frame
        router: Optional custom router (defaults to global)
        room_authorizer: Optional callable(user_id, room_id) -> bool
    """
    rtr = router or broadcast_router
    registry = rtr.registry
    message_type = data.get("type")

    if message_type == ClientMessage.PING.value:
        await rtr.send(connection.connection_id, protocol_message(EventName.PONG))
        return

    if message_type in _JOIN_TYPES:
        if not connection.is_authenticated:
            await rtr.send(
                connection.connection_id,
                error_message("NOT_AUTHENTICATED", "Authenticate before joining rooms"),
            )
            return

        room_id = await _resolve_room(rtr, connection, data)
        if room_id is None:
            return

        if room_authorizer is not None and not await room_authorizer(connection.user_id, room_id):
            logger.warning(f"Room access denied: user={connection.user_id}, room={room_id}")
            await rtr.send(
                connection.connection_id,
                error_message("UNAUTHORIZED", f"Access denied to room: {room_id}"),
            )
            return

        try:
            await registry.join(connection.connection_id, room_id)
        except NotAuthenticated:
            await rtr.send(
                connection.connection_id,
                error_message("NOT_AUTHENTICATED", "Authenticate before joining rooms"),
            )
            return

        await rtr.send(
            connection.connection_id,
            protocol_message(
                EventName.ROOM_JOINED,
                {"room_id": room_id, "user_count": registry.get_room_count(room_id)},
            ),
        )
        return

    if message_type in _LEAVE_TYPES:
        room_id = await _resolve_room(rtr, connection, data)
        if room_id is None:
            return
        await registry.leave(connection.connection_id, room_id)
        await rtr.send(
            connection.connection_id,
            protocol_message(EventName.ROOM_LEFT, {"room_id": room_id}),
        )
        return

    logger.debug(f"Unhandled message type: {message_type} from user {connection.user_id}")


async def handle_task_update(
    project_id: UUID | str,
    task_id: UUID | str,
    action: UpdateAction,
    task_data: dict[str, Any],
    user_id: Optional[UUID | str] = None,
    changes: Optional[dict[str, Any]] = None,
    router: Optional[BroadcastRouter] = None,
) -> int:
    """
    Broadcast an issue mutation.

    task_created goes to the project room; task_updated and task_deleted go
    to the project room and to the issue room (detail view subscribers).

    Returns:
        int: Number of project room recipients
    """
    rtr = router or broadcast_router
    changed_by = str(user_id) if user_id else None

    if action == UpdateAction.DELETED:
        event = ServerEvent(
            type=EventName.TASK_DELETED,
            data=TaskDeletedData(
                task_id=str(task_id),
                project_id=str(project_id),
                changed_by=changed_by,
            ),
        )
    else:
        event = ServerEvent(
            type=EventName.TASK_CREATED if action == UpdateAction.CREATED else EventName.TASK_UPDATED,
            data=TaskEventData(
                task_id=str(task_id),
                project_id=str(project_id),
                action=action,
                task=task_data,
                changed_by=changed_by,
                changes=changes,
            ),
        )

    recipients = await rtr.publish_event(project_room(project_id), event)
    if action != UpdateAction.CREATED:
        await rtr.publish_event(issue_room(task_id), event)

    logger.info(
        f"Task {action.value}: task_id={task_id}, "
        f"project_room={project_room(project_id)}, recipients={recipients}"
    )
    return recipients


async def handle_comment_added(
    project_id: UUID | str,
    task_id: UUID | str,
    comment_id: UUID | str,
    comment_data: dict[str, Any],
    author_id: Optional[UUID | str] = None,
    router: Optional[BroadcastRouter] = None,
) -> int:
    """Broadcast a new comment to the issue room and the project room."""
    rtr = router or broadcast_router
    event = ServerEvent(
        type=EventName.COMMENT_ADDED,
        data=CommentAddedData(
            comment_id=str(comment_id),
            task_id=str(task_id),
            project_id=str(project_id),
            comment=comment_data,
            author_id=str(author_id) if author_id else None,
        ),
    )
    recipients = await rtr.publish_event(issue_room(task_id), event)
    recipients += await rtr.publish_event(project_room(project_id), event)
    logger.info(f"Comment added: comment_id={comment_id}, task_id={task_id}, recipients={recipients}")
    return recipients


async def handle_notification(
    user_id: UUID | str,
    notification: NotificationData,
    router: Optional[BroadcastRouter] = None,
) -> int:
    """
    Deliver a persisted notification to the recipient's user room.

    Returns:
        int: Number of connections that received the notification
    """
    rtr = router or broadcast_router
    recipients = await rtr.publish_event(
        user_room(user_id),
        ServerEvent(type=EventName.NOTIFICATION, data=notification),
    )
    logger.info(
        f"Notification sent: user_id={user_id}, "
        f"type={notification.notification_type}, recipients={recipients}"
    )
    return recipients


async def handle_notification_read(
    user_id: UUID | str,
    notification_id: UUID | str,
    router: Optional[BroadcastRouter] = None,
) -> int:
    """Sync a read-state change to all of the user's sockets."""
    rtr = router or broadcast_router
    return await rtr.publish_event(
        user_room(user_id),
        ServerEvent(
            type=EventName.NOTIFICATION_READ,
            data=NotificationReadData(notification_id=str(notification_id), user_id=str(user_id)),
        ),
    )


async def handle_member_added(
    workspace_id: UUID | str,
    user_id: UUID | str,
    role: str,
    added_by: Optional[UUID | str] = None,
    router: Optional[BroadcastRouter] = None,
) -> int:
    """Announce a new workspace member to the workspace room."""
    rtr = router or broadcast_router
    recipients = await rtr.publish_event(
        workspace_room(workspace_id),
        ServerEvent(
            type=EventName.MEMBER_ADDED,
            data=MemberAddedData(
                workspace_id=str(workspace_id),
                user_id=str(user_id),
                role=role,
                added_by=str(added_by) if added_by else None,
            ),
        ),
    )
    logger.info(f"Member added: workspace_id={workspace_id}, user_id={user_id}, recipients={recipients}")
    return recipients
