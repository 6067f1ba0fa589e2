"""Notification SQLAlchemy model."""

import uuid
from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, String, Text, Uuid

from ..database import Base


class Notification(Base):
    """
    Persisted, user-addressed message with a read flag.

    The only state transition is unread -> read.

    Attributes:
        id: Unique identifier (UUID)
        user_id: Recipient
        type: Notification type (TASK_ASSIGNED, COMMENT_ADDED, ...)
        message: Human readable text
        related_entity_id: Optional related entity (usually the issue)
        is_read: Read flag, defaults to False
        created_at: Timestamp when notification was created
        updated_at: Timestamp when notification was last changed
    """

    __tablename__ = "Notifications"
    __table_args__ = (
        Index("ix_notifications_user_read", "user_id", "is_read"),
    )

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(
        String(50),
        nullable=False,
    )
    message = Column(
        Text,
        nullable=False,
    )
    related_entity_id = Column(
        Uuid(as_uuid=True),
        nullable=True,
    )
    is_read = Column(
        Boolean,
        nullable=False,
        default=False,
    )
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
        return f"<Notification(id={self.id}, user_id={self.user_id}, type={self.type})>"
