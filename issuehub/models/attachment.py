"""Attachment SQLAlchemy model for files stored in object storage."""

import uuid
from datetime import datetime

from sqlalchemy import BigInteger, Column, DateTime, ForeignKey, String, Uuid

from ..database import Base


class Attachment(Base):
    """
    File attached to an issue. The bytes live in object storage under
    ``object_key``; only metadata is stored here.
    """

    __tablename__ = "Attachments"

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
    uploader_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="SET NULL"),
        nullable=True,
    )
    file_name = Column(
        String(255),
        nullable=False,
    )
    content_type = Column(
        String(100),
        nullable=False,
        default="application/octet-stream",
    )
    size = Column(
        BigInteger,
        nullable=False,
    )
    object_key = Column(
        String(500),
        nullable=False,
        unique=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Attachment(id={self.id}, file_name={self.file_name})>"
