"""Pydantic schemas for Comment model validation."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class CommentCreate(BaseModel):
    """Schema for creating a comment."""

    content: str = Field(
        ...,
        min_length=1,
        max_length=10000,
        description="Comment body",
    )
    parent_id: Optional[UUID] = Field(None, description="Comment being replied to")
    mentions: list[UUID] = Field(
        default_factory=list,
        max_length=50,
        description="IDs of users mentioned in the comment",
    )


class CommentResponse(BaseModel):
    """Schema for comment response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    issue_id: UUID
    author_id: Optional[UUID] = None
    parent_id: Optional[UUID] = None
    content: str
    created_at: datetime
    updated_at: datetime


class CommentMutationResponse(CommentResponse):
    """Comment response plus warnings from side effects that did not complete."""

    warnings: list[str] = Field(default_factory=list)
