"""Project SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid

from ..database import Base


class Project(Base):
    """
    Project model grouping issues inside a workspace.

    Attributes:
        id: Unique identifier (UUID)
        workspace_id: FK to parent workspace
        name: Project name
        key: Short key used in issue identifiers (e.g. "WEB")
        description: Optional description
        created_at: Timestamp when project was created
    """

    __tablename__ = "Projects"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    workspace_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Workspaces.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name = Column(
        String(255),
        nullable=False,
    )
    key = Column(
        String(10),
        nullable=False,
    )
    description = Column(
        Text,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Project(id={self.id}, key={self.key})>"
