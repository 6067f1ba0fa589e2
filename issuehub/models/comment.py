"""Comment SQLAlchemy model for issue discussions."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Text, Uuid

from ..database import Base


class Comment(Base):
    """
    Comment on an issue, optionally replying to another comment.

    Attributes:
        id: Unique identifier (UUID)
        issue_id: FK to the issue
        author_id: FK to the commenting user
        parent_id: FK to the parent comment for threaded replies
        content: Comment body (plain text or markdown)
        created_at: Timestamp when comment was created
        updated_at: Timestamp when comment was last edited
    """

    __tablename__ = "Comments"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    issue_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Issues.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    author_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    parent_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Comments.id", ondelete="CASCADE"),
        nullable=True,
    )
    content = Column(
        Text,
        nullable=False,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Comment(id={self.id}, issue_id={self.issue_id})>"
