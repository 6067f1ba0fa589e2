"""Pydantic schemas for Issue model validation."""

from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class IssueStatus(str, Enum):
    """Issue workflow status."""

    TODO = "TODO"
    IN_PROGRESS = "IN_PROGRESS"
    DONE = "DONE"


class IssuePriority(str, Enum):
    """Issue priority."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class IssueCreate(BaseModel):
    """Schema for creating an issue."""

    project_id: UUID = Field(..., description="Project the issue belongs to")
    title: str = Field(
        ...,
        min_length=1,
        max_length=500,
        description="Issue title",
        examples=["Login redirect loops on Safari"],
    )
    description: Optional[str] = Field(None, description="Detailed description")
    status: IssueStatus = Field(IssueStatus.TODO)
    priority: IssuePriority = Field(IssuePriority.MEDIUM)
    assignee_id: Optional[UUID] = Field(None, description="User to assign")
    due_date: Optional[date] = None


class IssueUpdate(BaseModel):
    """Schema for updating an issue. Only provided fields are changed."""

    title: Optional[str] = Field(None, min_length=1, max_length=500)
    description: Optional[str] = None
    status: Optional[IssueStatus] = None
    priority: Optional[IssuePriority] = None
    assignee_id: Optional[UUID] = None
    due_date: Optional[date] = None


class IssueResponse(BaseModel):
    """Schema for issue response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: UUID
    number: int
    title: str
    description: Optional[str] = None
    status: IssueStatus
    priority: IssuePriority
    assignee_id: Optional[UUID] = None
    creator_id: Optional[UUID] = None
    due_date: Optional[date] = None
    created_at: datetime
    updated_at: datetime
    label_ids: list[UUID] = Field(default_factory=list)


class IssueMutationResponse(IssueResponse):
    """Issue response plus warnings from side effects that did not complete."""

    warnings: list[str] = Field(
        default_factory=list,
        description="Activity/notification steps that failed after the issue was saved",
    )


class WatcherListResponse(BaseModel):
    """Users watching an issue."""

    issue_id: UUID
    watcher_ids: list[UUID] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
