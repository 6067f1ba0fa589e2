"""Room identifiers for WebSocket broadcast scopes.

Rooms are plain strings of the form ``<kind>:<id>``; the strings are part of
the client wire contract and are built only through :func:`room_id`.
"""

from enum import Enum
from uuid import UUID


class RoomKind(str, Enum):
    """Entity kinds that own a broadcast room."""

    WORKSPACE = "workspace"
    PROJECT = "project"
    ISSUE = "issue"
    USER = "user"


def room_id(kind: RoomKind, entity_id: UUID | str) -> str:
    """
    Build the room identifier for an entity.

    Args:
        kind: The entity kind
        entity_id: The entity's ID

    Returns:
        str: Room ID in format '<kind>:<id>'

    Raises:
        ValueError: If the id is empty
    """
    entity = str(entity_id).strip()
    if not entity:
        raise ValueError("Room entity id must not be empty")
    return f"{RoomKind(kind).value}:{entity}"


def parse_room_id(value: str) -> tuple[RoomKind, str]:
    """
    Split a room identifier into its kind and entity id.

    Raises:
        ValueError: If the value is not a known '<kind>:<id>' pair
    """
    if not isinstance(value, str) or ":" not in value:
        raise ValueError(f"Invalid room id: {value!r}")
    kind_str, entity = value.split(":", 1)
    if not entity:
        raise ValueError(f"Invalid room id: {value!r}")
    return RoomKind(kind_str), entity


def workspace_room(workspace_id: UUID | str) -> str:
    return room_id(RoomKind.WORKSPACE, workspace_id)


def project_room(project_id: UUID | str) -> str:
    return room_id(RoomKind.PROJECT, project_id)


def issue_room(issue_id: UUID | str) -> str:
    return room_id(RoomKind.ISSUE, issue_id)


def user_room(user_id: UUID | str) -> str:
    return room_id(RoomKind.USER, user_id)


def canonical_room_id(value: str) -> str:
    """
    Normalize a client-supplied room identifier.

    Any spelling ``UUID()`` accepts (upper case, bare hex, braces) maps to
    the identifier the broadcast side publishes to.

    Raises:
        ValueError: If the kind is unknown or the id is not a UUID
    """
    kind, entity = parse_room_id(value)
    return room_id(kind, UUID(entity))
