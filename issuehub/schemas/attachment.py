"""Pydantic schemas for issue attachments."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict


class AttachmentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    issue_id: UUID
    uploader_id: Optional[UUID] = None
    file_name: str
    content_type: str
    size: int
    created_at: datetime
    url: Optional[str] = None
