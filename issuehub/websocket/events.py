"""Server-to-client WebSocket events.

Each event is sent as ``{"type": <event name>, "data": {...}}``. The event
names and the field names inside ``data`` are the client wire contract.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, Union

from pydantic import BaseModel, Field, model_validator


class EventName(str, Enum):
    """WebSocket message types."""

    # Connection/protocol events
    CONNECTED = "connected"
    ERROR = "error"
    ROOM_JOINED = "room_joined"
    ROOM_LEFT = "room_left"
    PING = "ping"
    PONG = "pong"

    # Entity update events
    TASK_CREATED = "task_created"
    TASK_UPDATED = "task_updated"
    TASK_DELETED = "task_deleted"
    COMMENT_ADDED = "comment_added"

    # Workspace events
    MEMBER_ADDED = "member_added"

    # Notification events
    NOTIFICATION = "notification"
    NOTIFICATION_READ = "notification_read"


class ClientMessage(str, Enum):
    """Client-to-server message types (``join_room``/``leave_room`` are aliases)."""

    AUTH = "auth"
    JOIN = "join"
    LEAVE = "leave"
    JOIN_ROOM = "join_room"
    LEAVE_ROOM = "leave_room"
    PING = "ping"


class UpdateAction(str, Enum):
    """Action type for entity updates."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def _now() -> datetime:
    return datetime.utcnow()


class TaskEventData(BaseModel):
    """Payload of task_created and task_updated."""

    task_id: str
    project_id: str
    action: UpdateAction
    task: dict[str, Any]
    changed_by: Optional[str] = None
    changes: Optional[dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_now)


class TaskDeletedData(BaseModel):
    """Payload of task_deleted."""

    task_id: str
    project_id: str
    changed_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class CommentAddedData(BaseModel):
    """Payload of comment_added."""

    comment_id: str
    task_id: str
    project_id: str
    comment: dict[str, Any]
    author_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class MemberAddedData(BaseModel):
    """Payload of member_added."""

    workspace_id: str
    user_id: str
    role: str
    added_by: Optional[str] = None
    timestamp: datetime = Field(default_factory=_now)


class NotificationData(BaseModel):
    """Payload of notification."""

    id: str
    notification_type: str
    message: str
    related_entity_id: Optional[str] = None
    is_read: bool = False
    created_at: Optional[datetime] = None


class NotificationReadData(BaseModel):
    """Payload of notification_read."""

    notification_id: str
    user_id: str
    timestamp: datetime = Field(default_factory=_now)


EventData = Union[
    TaskEventData,
    TaskDeletedData,
    CommentAddedData,
    MemberAddedData,
    NotificationData,
    NotificationReadData,
]

_PAYLOAD_TYPES: dict[EventName, type[BaseModel]] = {
    EventName.TASK_CREATED: TaskEventData,
    EventName.TASK_UPDATED: TaskEventData,
    EventName.TASK_DELETED: TaskDeletedData,
    EventName.COMMENT_ADDED: CommentAddedData,
    EventName.MEMBER_ADDED: MemberAddedData,
    EventName.NOTIFICATION: NotificationData,
    EventName.NOTIFICATION_READ: NotificationReadData,
}


class ServerEvent(BaseModel):
    """A domain event tagged with its name; the payload type must match."""

    type: EventName
    data: EventData

    @model_validator(mode="after")
    def _check_payload_type(self) -> "ServerEvent":
        expected = _PAYLOAD_TYPES.get(self.type)
        if expected is None:
            raise ValueError(f"{self.type.value} is not a domain event")
        if not isinstance(self.data, expected):
            raise ValueError(
                f"{self.type.value} requires {expected.__name__}, got {type(self.data).__name__}"
            )
        return self

    def to_message(self) -> dict[str, Any]:
        """JSON-ready envelope."""
        return {"type": self.type.value, "data": self.data.model_dump(mode="json")}


def parse_server_event(message: dict[str, Any]) -> ServerEvent:
    """Deserialize an envelope into its typed event (used by relays and tests)."""
    name = EventName(message["type"])
    payload_type = _PAYLOAD_TYPES.get(name)
    if payload_type is None:
        raise ValueError(f"{name.value} is not a domain event")
    return ServerEvent(type=name, data=payload_type.model_validate(message["data"]))


def protocol_message(name: EventName, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
    """Envelope for protocol replies (acks, errors, pong)."""
    return {"type": name.value, "data": data or {}}


def error_message(code: str, message: str) -> dict[str, Any]:
    return protocol_message(EventName.ERROR, {"error": code, "message": message})
