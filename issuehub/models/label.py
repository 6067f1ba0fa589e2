"""Label SQLAlchemy model."""

import uuid

from sqlalchemy import Column, ForeignKey, String, UniqueConstraint, Uuid

from ..database import Base


class Label(Base):
    """Workspace-scoped label that can be attached to issues."""

    __tablename__ = "Labels"
    __table_args__ = (
        UniqueConstraint("workspace_id", "name", name="uq_label_workspace_name"),
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
    name = Column(
        String(50),
        nullable=False,
    )
    color = Column(
        String(7),
        nullable=False,
        default="#6b7280",
    )

    def __repr__(self) -> str:
        return f"<Label(id={self.id}, name={self.name})>"
