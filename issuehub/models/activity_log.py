"""ActivityLog SQLAlchemy model: append-only audit trail of mutations."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Uuid

from ..database import Base


class ActivityLog(Base):
    """
    One entry per committed mutation. Rows are never updated or deleted.

    The integer primary key is assigned in insertion order and breaks ties
    between entries that share a ``created_at`` value.

    Attributes:
        id: Insertion sequence
        action: Action kind (ISSUE_CREATED, COMMENT_ADDED, ...)
        entity_type: Kind of entity the action applies to
        entity_id: ID of that entity
        actor_id: User who performed the mutation
        issue_id: Issue the entry belongs to, for the issue activity feed
        details: Optional structured metadata (e.g. field diff)
        created_at: Timestamp when the entry was appended
    """

    __tablename__ = "ActivityLogs"
    __table_args__ = (
        Index("ix_activity_entity_created", "entity_id", "created_at", "id"),
    )

    id = Column(
        Integer,
        primary_key=True,
        autoincrement=True,
    )
    action = Column(
        String(50),
        nullable=False,
    )
    entity_type = Column(
        String(50),
        nullable=False,
    )
    entity_id = Column(
        Uuid(as_uuid=True),
        nullable=False,
    )
    actor_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
    )
    issue_id = Column(
        Uuid(as_uuid=True),
        nullable=True,
        index=True,
    )
    details = Column(
        "metadata",
        JSON,
        nullable=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, action={self.action}, entity_id={self.entity_id})>"
