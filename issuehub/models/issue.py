"""Issue SQLAlchemy models: issues, watchers and label assignments."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)

from ..database import Base


class Issue(Base):
    """
    Issue model representing tracked work within a project.

    Attributes:
        id: Unique identifier (UUID)
        project_id: FK to parent project
        number: Per-project sequence number (max + 1 on create)
        title: Issue title/summary
        description: Detailed description
        status: TODO, IN_PROGRESS or DONE
        priority: LOW, MEDIUM or HIGH
        assignee_id: FK to assigned user
        creator_id: FK to the user who created the issue
        due_date: Optional due date
        created_at: Timestamp when issue was created
        updated_at: Timestamp when issue was last updated
    """

    __tablename__ = "Issues"
    __table_args__ = (
        UniqueConstraint("project_id", "number", name="uq_issue_project_number"),
    )

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )

    # Foreign keys
    project_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    assignee_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    creator_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # Issue details
    number = Column(
        Integer,
        nullable=False,
    )
    title = Column(
        String(500),
        nullable=False,
    )
    description = Column(
        Text,
        nullable=True,
    )
    status = Column(
        String(20),
        nullable=False,
        default="TODO",
    )
    priority = Column(
        String(20),
        nullable=False,
        default="MEDIUM",
    )
    due_date = Column(
        Date,
        nullable=True,
    )

    # Timestamps
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Issue(id={self.id}, number={self.number}, title={self.title[:30] if self.title else ''})>"


class IssueWatcher(Base):
    """A user subscribed to an issue's comments and updates."""

    __tablename__ = "IssueWatchers"

    issue_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Issues.id", ondelete="CASCADE"),
        primary_key=True,
    )
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        primary_key=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )


class IssueLabel(Base):
    """Association between an issue and a workspace label."""

    __tablename__ = "IssueLabels"

    issue_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Issues.id", ondelete="CASCADE"),
        primary_key=True,
    )
    label_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Labels.id", ondelete="CASCADE"),
        primary_key=True,
    )
