"""Comment service for issue discussions.

Provides business logic for:
- Adding comments (activity, mention and watcher notifications, broadcast)
- Listing an issue's comments
- Deleting comments (author only)
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import Forbidden, NotFoundError
from ..models.comment import Comment
from ..models.user import User
from ..schemas.activity import ActivityAction, EntityType
from ..schemas.comment import CommentCreate, CommentResponse
from ..websocket.handlers import handle_comment_added
from ..websocket.router import BroadcastRouter
from .access_service import has_workspace_access, require_issue, require_project
from .activity_service import ActivityRecorder
from .issue_service import MutationResult, broadcast, build_issue_response, get_watcher_ids
from .notification_service import Actor, NotificationDispatcher, notification_dispatcher

logger = logging.getLogger(__name__)

_PREVIEW_LENGTH = 100


async def _resolve_mentions(
    db: AsyncSession,
    workspace_id: UUID,
    mentions: list[UUID],
) -> list[UUID]:
    """Keep mentioned users that can see the workspace, in order, without duplicates."""
    resolved = []
    for user_id in dict.fromkeys(mentions):
        if await has_workspace_access(db, user_id, workspace_id):
            resolved.append(user_id)
        else:
            logger.debug(f"Ignoring mention of {user_id}: not a workspace member")
    return resolved


async def add_comment(
    db: AsyncSession,
    issue_id: UUID,
    comment_data: CommentCreate,
    user: User,
    dispatcher: Optional[NotificationDispatcher] = None,
    router: Optional[BroadcastRouter] = None,
) -> MutationResult[CommentResponse]:
    """
    Add a comment to an issue.

    Records COMMENT_ADDED on the issue, sends MENTION to mentioned users and
    COMMENT_ADDED to the remaining watchers and the assignee, then
    broadcasts comment_added to the issue and project rooms. Nobody is
    notified about their own comment.

    Args:
        db: Database session
        issue_id: Issue to comment on
        comment_data: Comment body, optional parent and mentioned user ids
        user: The commenting user

    Raises:
        NotFoundError: If the issue or the parent comment does not exist
        Forbidden: If the user cannot access the issue
    """
    dispatcher = dispatcher or notification_dispatcher
    actor = Actor.of(user)

    issue = await require_issue(db, actor.id, issue_id)
    project = await require_project(db, actor.id, issue.project_id)

    if comment_data.parent_id is not None:
        parent = await db.get(Comment, comment_data.parent_id)
        if parent is None or parent.issue_id != issue_id:
            raise NotFoundError("Parent comment not found on this issue")

    mentioned_ids = await _resolve_mentions(db, project.workspace_id, comment_data.mentions)

    comment = Comment(
        issue_id=issue_id,
        author_id=actor.id,
        parent_id=comment_data.parent_id,
        content=comment_data.content,
    )
    db.add(comment)
    await db.commit()
    await db.refresh(comment)

    snapshot = CommentResponse.model_validate(comment)
    issue_snapshot = await build_issue_response(db, issue)
    watcher_ids = await get_watcher_ids(db, issue_id)
    result = MutationResult(entity=snapshot)
    logger.info(f"Comment added: id={snapshot.id}, issue={issue_id}, author={actor.id}")

    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.COMMENT_ADDED,
            EntityType.ISSUE,
            issue_id,
            actor.id,
            details={
                "comment_id": str(snapshot.id),
                "preview": snapshot.content[:_PREVIEW_LENGTH],
            },
            issue_id=issue_id,
        )
    )

    if mentioned_ids:
        await result.notify(
            dispatcher.notify_mentioned(db, issue_snapshot, snapshot, actor, mentioned_ids)
        )

    recipients = list(watcher_ids)
    if issue_snapshot.assignee_id is not None:
        recipients.append(issue_snapshot.assignee_id)
    recipients = [r for r in recipients if r not in mentioned_ids]
    if recipients:
        await result.notify(
            dispatcher.notify_comment_added(db, issue_snapshot, snapshot, actor, recipients)
        )

    await broadcast(
        handle_comment_added(
            project_id=issue_snapshot.project_id,
            task_id=issue_id,
            comment_id=snapshot.id,
            comment_data=snapshot.model_dump(mode="json"),
            author_id=actor.id,
            router=router,
        )
    )
    return result


async def list_comments(
    db: AsyncSession,
    issue_id: UUID,
    user: User,
    skip: int = 0,
    limit: int = 100,
) -> list[Comment]:
    """Comments on an issue, oldest first."""
    await require_issue(db, user.id, issue_id)
    result = await db.execute(
        select(Comment)
        .where(Comment.issue_id == issue_id)
        .order_by(Comment.created_at.asc(), Comment.id)
        .offset(skip)
        .limit(limit)
    )
    return list(result.scalars().all())


async def delete_comment(db: AsyncSession, comment_id: UUID, user: User) -> None:
    """
    Delete a comment.

    Raises:
        NotFoundError: If the comment does not exist
        Forbidden: If the user is not the author
    """
    comment = await db.get(Comment, comment_id)
    if comment is None:
        raise NotFoundError("Comment not found")
    await require_issue(db, user.id, comment.issue_id)
    if comment.author_id != user.id:
        raise Forbidden("Only the author can delete this comment")

    await db.delete(comment)
    await db.commit()
    logger.info(f"Comment deleted: id={comment_id}, by={user.id}")
