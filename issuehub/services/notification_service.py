"""Notification service for creating and delivering notifications.

Provides business logic for notification management, including:
- Persisting notifications for mutations that affect another user
- Delivering them to the recipient's ``user:<id>`` room
- Managing read status

Persistence and delivery are separate steps. A notification is committed
before anything is sent; a delivery failure is logged and never touches the
stored row.
"""

import logging
from datetime import datetime
from typing import Iterable, NamedTuple, Optional
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import Forbidden, NotFoundError, NotificationStorageError
from ..models.notification import Notification
from ..models.user import User
from ..schemas.comment import CommentResponse
from ..schemas.issue import IssueResponse
from ..schemas.notification import NotificationType
from ..websocket.events import NotificationData
from ..websocket.handlers import handle_notification, handle_notification_read
from ..websocket.router import BroadcastRouter

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 100


def _issue_ref(issue: IssueResponse) -> str:
    return f"#{issue.number}: {issue.title}"


def _preview(text: str) -> str:
    if len(text) > _PREVIEW_LENGTH:
        return f"{text[:_PREVIEW_LENGTH]}..."
    return text


class NotificationDispatcher:
    """
    Creates, delivers and tracks notifications.

    A notification addressed to the acting user is never created, on any
    path (assignment, update, comment, mention).
    """

    def __init__(self, router: Optional[BroadcastRouter] = None) -> None:
        self._router = router

    async def notify(
        self,
        db: AsyncSession,
        recipient_id: UUID,
        notification_type: NotificationType,
        message: str,
        related_entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
    ) -> Optional[Notification]:
        """
        Persist a notification, then deliver it to the recipient's sockets.

        Args:
            db: Database session
            recipient_id: User to notify
            notification_type: Type of notification
            message: Human readable text
            related_entity_id: Optional related entity (usually the issue)
            actor_id: User whose action triggered the notification

        Returns:
            Optional[Notification]: The created notification, or None if the
            recipient is the actor

        Raises:
            NotificationStorageError: If the notification could not be persisted
        """
        if actor_id is not None and recipient_id == actor_id:
            return None

        notification = Notification(
            user_id=recipient_id,
            type=notification_type.value,
            message=message,
            related_entity_id=related_entity_id,
            is_read=False,
        )
        try:
            db.add(notification)
            await db.commit()
            await db.refresh(notification)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(
                f"Failed to persist notification: user={recipient_id}, "
                f"type={notification_type.value}, error={e}"
            )
            raise NotificationStorageError(
                f"Failed to store {notification_type.value} notification for {recipient_id}"
            ) from e

        logger.info(
            f"Notification created: id={notification.id}, "
            f"user={notification.user_id}, type={notification.type}"
        )

        await self._deliver(notification)
        return notification

    async def _deliver(self, notification: Notification) -> int:
        payload = NotificationData(
            id=str(notification.id),
            notification_type=notification.type,
            message=notification.message,
            related_entity_id=str(notification.related_entity_id) if notification.related_entity_id else None,
            is_read=notification.is_read,
            created_at=notification.created_at,
        )
        try:
            return await handle_notification(notification.user_id, payload, router=self._router)
        except Exception as e:
            logger.warning(f"Notification {notification.id} stored but not delivered: {e}")
            return 0

    async def _notify_many(
        self,
        db: AsyncSession,
        recipient_ids: Iterable[UUID],
        notification_type: NotificationType,
        message: str,
        related_entity_id: Optional[UUID],
        actor_id: Optional[UUID],
    ) -> list[Notification]:
        """Notify each recipient once; keeps going past individual storage failures."""
        notifications = []
        failed = []
        for recipient_id in dict.fromkeys(recipient_ids):
            try:
                notification = await self.notify(
                    db,
                    recipient_id,
                    notification_type,
                    message,
                    related_entity_id=related_entity_id,
                    actor_id=actor_id,
                )
            except NotificationStorageError:
                failed.append(recipient_id)
                continue
            if notification is not None:
                notifications.append(notification)

        if failed:
            raise NotificationStorageError(
                f"{notification_type.value} notification not stored for {len(failed)} recipient(s)"
            )
        return notifications

    # ------------------------------------------------------------------
    # Read state
    # ------------------------------------------------------------------

    async def mark_as_read(
        self,
        db: AsyncSession,
        notification_id: UUID,
        caller_id: UUID,
    ) -> Notification:
        """
        Mark one notification as read.

        Re-marking an already read notification is a no-op. The first
        transition is synced to every socket of the caller.

        Raises:
            NotFoundError: If the notification does not exist
            Forbidden: If the caller is not the recipient
            NotificationStorageError: If the update could not be persisted
        """
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError("Notification not found")
        if notification.user_id != caller_id:
            raise Forbidden("Notification belongs to another user")
        if notification.is_read:
            return notification

        notification.is_read = True
        try:
            await db.commit()
            await db.refresh(notification)
        except SQLAlchemyError as e:
            await db.rollback()
            raise NotificationStorageError(f"Failed to mark {notification_id} as read") from e

        try:
            await handle_notification_read(caller_id, notification_id, router=self._router)
        except Exception as e:
            logger.warning(f"Read sync for notification {notification_id} failed: {e}")
        return notification

    async def mark_all_as_read(self, db: AsyncSession, user_id: UUID) -> int:
        """
        Mark every unread notification of a user as read.

        Returns:
            int: Number of notifications that changed
        """
        try:
            result = await db.execute(
                update(Notification)
                .where(Notification.user_id == user_id, Notification.is_read.is_(False))
                .values(is_read=True, updated_at=datetime.utcnow())
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            raise NotificationStorageError(f"Failed to mark notifications read for {user_id}") from e

        updated_count = result.rowcount or 0
        logger.info(f"Marked {updated_count} notifications as read for user {user_id}")
        return updated_count

    @staticmethod
    async def get_unread_count(db: AsyncSession, user_id: UUID) -> int:
        """Unread count straight from the store; never cached."""
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    @staticmethod
    async def get_total_count(db: AsyncSession, user_id: UUID) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(Notification.user_id == user_id)
        )
        return result.scalar() or 0

    @staticmethod
    async def list_for_user(
        db: AsyncSession,
        user_id: UUID,
        unread_only: bool = False,
        notification_type: Optional[NotificationType] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> list[Notification]:
        """Notifications for a user, newest first."""
        query = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            query = query.where(Notification.is_read.is_(False))
        if notification_type is not None:
            query = query.where(Notification.type == notification_type.value)
        query = query.order_by(Notification.created_at.desc()).offset(skip).limit(limit)
        result = await db.execute(query)
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Composers
    # ------------------------------------------------------------------

    async def notify_task_assigned(
        self,
        db: AsyncSession,
        issue: IssueResponse,
        assignee_id: UUID,
        assigner: "Actor",
    ) -> Optional[Notification]:
        """
        Create notification when an issue is assigned to a user.

        Returns:
            Optional[Notification]: The created notification, or None if self-assign
        """
        return await self.notify(
            db,
            assignee_id,
            NotificationType.TASK_ASSIGNED,
            f"{assigner.label} assigned you to {_issue_ref(issue)}",
            related_entity_id=issue.id,
            actor_id=assigner.id,
        )

    async def notify_task_updated(
        self,
        db: AsyncSession,
        issue: IssueResponse,
        changed_by: "Actor",
        recipient_ids: Iterable[UUID],
        changed_fields: Iterable[str],
    ) -> list[Notification]:
        """Notify watchers (and the assignee) that an issue changed."""
        fields = ", ".join(changed_fields)
        return await self._notify_many(
            db,
            recipient_ids,
            NotificationType.TASK_UPDATED,
            f"{changed_by.label} updated {fields} on {_issue_ref(issue)}",
            related_entity_id=issue.id,
            actor_id=changed_by.id,
        )

    async def notify_comment_added(
        self,
        db: AsyncSession,
        issue: IssueResponse,
        comment: CommentResponse,
        commenter: "Actor",
        recipient_ids: Iterable[UUID],
    ) -> list[Notification]:
        """Notify watchers and the assignee of a new comment."""
        return await self._notify_many(
            db,
            recipient_ids,
            NotificationType.COMMENT_ADDED,
            f"{commenter.label} commented on {_issue_ref(issue)}: {_preview(comment.content)}",
            related_entity_id=issue.id,
            actor_id=commenter.id,
        )

    async def notify_mentioned(
        self,
        db: AsyncSession,
        issue: IssueResponse,
        comment: CommentResponse,
        mentioner: "Actor",
        mentioned_ids: Iterable[UUID],
    ) -> list[Notification]:
        """Notify users mentioned in a comment."""
        return await self._notify_many(
            db,
            mentioned_ids,
            NotificationType.MENTION,
            f"{mentioner.label} mentioned you in {_issue_ref(issue)}: {_preview(comment.content)}",
            related_entity_id=issue.id,
            actor_id=mentioner.id,
        )


class Actor(NamedTuple):
    """
    The acting user, captured before any side effect runs.

    A failed activity or notification insert rolls the session back, which
    expires every ORM instance it holds; composers only read this snapshot.
    """

    id: UUID
    label: str

    @classmethod
    def of(cls, user: User) -> "Actor":
        return cls(id=user.id, label=user.label)


# Global singleton instance
notification_dispatcher = NotificationDispatcher()
