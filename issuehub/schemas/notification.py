"""Pydantic schemas for Notification model validation."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class NotificationType(str, Enum):
    """Notification type enumeration."""

    TASK_ASSIGNED = "TASK_ASSIGNED"
    TASK_UPDATED = "TASK_UPDATED"
    TASK_DUE_SOON = "TASK_DUE_SOON"
    COMMENT_ADDED = "COMMENT_ADDED"
    PROJECT_INVITE = "PROJECT_INVITE"
    MENTION = "MENTION"


class NotificationResponse(BaseModel):
    """Schema for notification response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID = Field(..., description="Unique notification identifier")
    user_id: UUID = Field(..., description="ID of the user receiving the notification")
    type: NotificationType = Field(..., description="Type of notification")
    message: str = Field(
        ...,
        description="Notification message",
        examples=["You were assigned to task: Fix login redirect"],
    )
    related_entity_id: Optional[UUID] = Field(
        None,
        description="ID of the related entity (usually the issue)",
    )
    is_read: bool = Field(False, description="Whether the notification has been read")
    created_at: datetime = Field(..., description="When the notification was created")


class NotificationCount(BaseModel):
    """Schema for notification count response."""

    total: int = Field(..., ge=0, description="Total number of notifications")
    unread: int = Field(..., ge=0, description="Number of unread notifications")


class MarkAllReadResponse(BaseModel):
    """Result of marking every unread notification as read."""

    updated_count: int = Field(..., ge=0)
