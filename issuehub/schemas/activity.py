"""Pydantic schemas for the activity log."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class ActivityAction(str, Enum):
    """Kinds of mutation recorded in the activity log."""

    ISSUE_CREATED = "ISSUE_CREATED"
    ISSUE_UPDATED = "ISSUE_UPDATED"
    ISSUE_DELETED = "ISSUE_DELETED"
    COMMENT_ADDED = "COMMENT_ADDED"
    LABEL_ADDED = "LABEL_ADDED"
    LABEL_REMOVED = "LABEL_REMOVED"
    ATTACHMENT_ADDED = "ATTACHMENT_ADDED"
    ATTACHMENT_REMOVED = "ATTACHMENT_REMOVED"
    WATCHER_ADDED = "WATCHER_ADDED"


class EntityType(str, Enum):
    """Entity kinds referenced by activity entries."""

    ISSUE = "issue"
    COMMENT = "comment"
    LABEL = "label"
    ATTACHMENT = "attachment"


class ActivityResponse(BaseModel):
    """Schema for one activity log entry."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., description="Insertion sequence")
    action: ActivityAction
    entity_type: EntityType
    entity_id: UUID
    actor_id: Optional[UUID] = None
    issue_id: Optional[UUID] = None
    details: Optional[dict[str, Any]] = None
    created_at: datetime
