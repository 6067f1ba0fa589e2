"""Workspace and WorkspaceMember SQLAlchemy models."""

import uuid
from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, String, UniqueConstraint, Uuid

from ..database import Base


class Workspace(Base):
    """
    Workspace model: the top of the hierarchy Workspace > Projects > Issues.

    Attributes:
        id: Unique identifier (UUID)
        name: Workspace name
        slug: URL-friendly unique name
        owner_id: FK to the user who created the workspace
        created_at: Timestamp when workspace was created
    """

    __tablename__ = "Workspaces"

    id = Column(
        Uuid(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
        nullable=False,
    )
    name = Column(
        String(255),
        nullable=False,
    )
    slug = Column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
    )
    owner_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Workspace(id={self.id}, slug={self.slug})>"


class WorkspaceMember(Base):
    """Membership of a user in a workspace with a role (ADMIN or MEMBER)."""

    __tablename__ = "WorkspaceMembers"
    __table_args__ = (
        UniqueConstraint("workspace_id", "user_id", name="uq_workspace_member"),
    )

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
    user_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("Users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    role = Column(
        String(20),
        nullable=False,
        default="MEMBER",
    )
    created_at = Column(
        DateTime,
        default=datetime.utcnow,
        nullable=False,
    )
