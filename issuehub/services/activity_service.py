"""Activity log service: append-only audit trail of committed mutations.

Entries are appended inline by the mutation path, right after the entity
commit and before the request returns, so a client that re-reads the
activity feed always sees its own change. Entries are read back ordered by
``created_at`` and then by insertion sequence (``id``).
"""

import logging
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ActivityStorageError
from ..models.activity_log import ActivityLog
from ..schemas.activity import ActivityAction, EntityType

logger = logging.getLogger(__name__)


def _json_value(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return value


def diff_fields(before: dict[str, Any], changes: dict[str, Any]) -> dict[str, dict[str, Any]]:
    """
    Field-level diff between an entity's previous values and the applied changes.

    Only fields whose value actually changed are included.

    Returns:
        dict: ``{field: {"from": old, "to": new}}`` with JSON-safe values
    """
    diff: dict[str, dict[str, Any]] = {}
    for field, new_value in changes.items():
        old = _json_value(before.get(field))
        new = _json_value(new_value)
        if old != new:
            diff[field] = {"from": old, "to": new}
    return diff


class ActivityRecorder:
    """Appends and reads activity log entries."""

    @staticmethod
    async def append(
        db: AsyncSession,
        action: ActivityAction,
        entity_type: EntityType,
        entity_id: UUID,
        actor_id: Optional[UUID],
        details: Optional[dict[str, Any]] = None,
        issue_id: Optional[UUID] = None,
    ) -> ActivityLog:
        """
        Append one entry and commit it.

        Args:
            db: Database session (the entity mutation must already be committed)
            action: Kind of mutation
            entity_type: Kind of entity the mutation applied to
            entity_id: ID of that entity
            actor_id: User who performed the mutation
            details: Optional structured metadata, e.g. a field diff
            issue_id: Issue the entry belongs to, for the issue feed

        Returns:
            ActivityLog: The persisted entry

        Raises:
            ActivityStorageError: If the insert fails; the session is rolled back
        """
        entry = ActivityLog(
            action=action.value,
            entity_type=entity_type.value,
            entity_id=entity_id,
            actor_id=actor_id,
            issue_id=issue_id,
            details=details,
        )
        try:
            db.add(entry)
            await db.commit()
            await db.refresh(entry)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                f"Failed to append activity: action={action.value}, "
                f"entity_id={entity_id}, error={e}"
            )
            raise ActivityStorageError(f"Failed to record {action.value} for {entity_id}") from e

        logger.debug(f"Activity appended: id={entry.id}, action={entry.action}, entity_id={entity_id}")
        return entry

    @staticmethod
    async def list_for_entity(
        db: AsyncSession,
        entity_id: UUID,
        limit: int = 100,
    ) -> list[ActivityLog]:
        """Entries for one entity, oldest first."""
        result = await db.execute(
            select(ActivityLog)
            .where(ActivityLog.entity_id == entity_id)
            .order_by(ActivityLog.created_at.asc(), ActivityLog.id.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    @staticmethod
    async def list_for_issue(
        db: AsyncSession,
        issue_id: UUID,
        skip: int = 0,
        limit: int = 100,
    ) -> list[ActivityLog]:
        """
        The issue's activity feed: entries on the issue itself plus entries on
        its comments, labels and attachments. Oldest first.
        """
        result = await db.execute(
            select(ActivityLog)
            .where(ActivityLog.issue_id == issue_id)
            .order_by(ActivityLog.created_at.asc(), ActivityLog.id.asc())
            .offset(skip)
            .limit(limit)
        )
        return list(result.scalars().all())


activity_recorder = ActivityRecorder()
