"""Issue mutation paths.

Every mutation follows the same sequence:
1. commit the issue change
2. append the activity entry (inline, before returning)
3. persist and deliver notifications
4. broadcast the realtime event

Steps 2 and 3 may fail without failing the mutation. Their errors are
logged and returned as ``MutationResult.warnings``; the committed issue is
never rolled back because of them.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Generic, Optional, TypeVar
from uuid import UUID

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import ActivityStorageError, NotFoundError, NotificationStorageError
from ..models.issue import Issue, IssueLabel, IssueWatcher
from ..models.label import Label
from ..models.user import User
from ..schemas.activity import ActivityAction, EntityType
from ..schemas.issue import IssueCreate, IssueResponse, IssueUpdate
from ..websocket.events import UpdateAction
from ..websocket.handlers import handle_task_update
from ..websocket.router import BroadcastRouter
from .access_service import has_workspace_access, require_issue, require_project
from .activity_service import ActivityRecorder, diff_fields
from .notification_service import Actor, NotificationDispatcher, notification_dispatcher

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TRACKED_FIELDS = ("title", "description", "status", "priority", "assignee_id", "due_date")
_NULLABLE_FIELDS = ("description", "assignee_id", "due_date")
_NUMBER_ATTEMPTS = 3


@dataclass
class MutationResult(Generic[T]):
    """Committed entity snapshot plus warnings from side effects that failed."""

    entity: T
    warnings: list[str] = field(default_factory=list)

    async def record(self, step: Awaitable[Any]) -> None:
        """Run an activity append, keeping its storage failure as a warning."""
        try:
            await step
        except ActivityStorageError as e:
            self.warnings.append(f"Activity not recorded: {e}")

    async def notify(self, step: Awaitable[Any]) -> None:
        """Run a notification step, keeping its storage failure as a warning."""
        try:
            await step
        except NotificationStorageError as e:
            self.warnings.append(f"Notification not stored: {e}")


async def broadcast(step: Awaitable[Any]) -> None:
    """Run a broadcast; failures are logged and never reach the caller."""
    try:
        await step
    except Exception as e:
        logger.warning(f"Realtime broadcast failed: {e}")


# ============================================================================
# Reads
# ============================================================================


async def get_label_ids(db: AsyncSession, issue_id: UUID) -> list[UUID]:
    result = await db.execute(select(IssueLabel.label_id).where(IssueLabel.issue_id == issue_id))
    return list(result.scalars().all())


async def get_watcher_ids(db: AsyncSession, issue_id: UUID) -> list[UUID]:
    result = await db.execute(
        select(IssueWatcher.user_id)
        .where(IssueWatcher.issue_id == issue_id)
        .order_by(IssueWatcher.created_at)
    )
    return list(result.scalars().all())


async def build_issue_response(db: AsyncSession, issue: Issue) -> IssueResponse:
    """Detached snapshot of an issue, including its label ids."""
    response = IssueResponse.model_validate(issue)
    response.label_ids = await get_label_ids(db, issue.id)
    return response


async def get_issue(db: AsyncSession, issue_id: UUID, user: User) -> IssueResponse:
    issue = await require_issue(db, user.id, issue_id)
    return await build_issue_response(db, issue)


async def list_issues(
    db: AsyncSession,
    project_id: UUID,
    user: User,
    skip: int = 0,
    limit: int = 50,
) -> list[IssueResponse]:
    """Issues of a project, by number."""
    await require_project(db, user.id, project_id)
    result = await db.execute(
        select(Issue)
        .where(Issue.project_id == project_id)
        .order_by(Issue.number)
        .offset(skip)
        .limit(limit)
    )
    return [await build_issue_response(db, issue) for issue in result.scalars().all()]


async def _next_number(db: AsyncSession, project_id: UUID) -> int:
    result = await db.execute(
        select(func.coalesce(func.max(Issue.number), 0)).where(Issue.project_id == project_id)
    )
    return (result.scalar() or 0) + 1


async def _check_assignee(db: AsyncSession, workspace_id: UUID, assignee_id: Optional[UUID]) -> None:
    if assignee_id is None:
        return
    if not await has_workspace_access(db, assignee_id, workspace_id):
        raise ValueError("Assignee is not a member of this workspace")


def _serialize(issue: IssueResponse) -> dict[str, Any]:
    return issue.model_dump(mode="json")


# ============================================================================
# Issue CRUD
# ============================================================================


async def create_issue(
    db: AsyncSession,
    issue_data: IssueCreate,
    user: User,
    dispatcher: Optional[NotificationDispatcher] = None,
    router: Optional[BroadcastRouter] = None,
) -> MutationResult[IssueResponse]:
    """
    Create an issue in a project.

    Records ISSUE_CREATED, notifies the assignee with TASK_ASSIGNED and
    broadcasts task_created to the project room.

    Raises:
        NotFoundError: If the project does not exist
        Forbidden: If the user cannot access the project
        ValueError: If the assignee is not in the project's workspace
    """
    dispatcher = dispatcher or notification_dispatcher
    actor = Actor.of(user)

    project = await require_project(db, actor.id, issue_data.project_id)
    project_id = project.id
    await _check_assignee(db, project.workspace_id, issue_data.assignee_id)

    # A lost numbering race fails uq_issue_project_number and takes the next number.
    for attempt in range(1, _NUMBER_ATTEMPTS + 1):
        issue = Issue(
            project_id=project_id,
            number=await _next_number(db, project_id),
            title=issue_data.title,
            description=issue_data.description,
            status=issue_data.status.value,
            priority=issue_data.priority.value,
            assignee_id=issue_data.assignee_id,
            creator_id=actor.id,
            due_date=issue_data.due_date,
        )
        db.add(issue)
        try:
            await db.commit()
            break
        except IntegrityError:
            await db.rollback()
            if attempt == _NUMBER_ATTEMPTS:
                raise
            logger.warning(f"Issue number taken in project {project_id}, retrying (attempt {attempt})")
    await db.refresh(issue)

    snapshot = IssueResponse.model_validate(issue)
    result = MutationResult(entity=snapshot)
    logger.info(f"Issue created: id={snapshot.id}, project={snapshot.project_id}, number={snapshot.number}")

    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.ISSUE_CREATED,
            EntityType.ISSUE,
            snapshot.id,
            actor.id,
            details={"title": snapshot.title, "number": snapshot.number},
            issue_id=snapshot.id,
        )
    )

    if snapshot.assignee_id is not None:
        await result.notify(
            dispatcher.notify_task_assigned(db, snapshot, snapshot.assignee_id, actor)
        )

    await broadcast(
        handle_task_update(
            project_id=snapshot.project_id,
            task_id=snapshot.id,
            action=UpdateAction.CREATED,
            task_data=_serialize(snapshot),
            user_id=actor.id,
            router=router,
        )
    )
    return result


async def update_issue(
    db: AsyncSession,
    issue_id: UUID,
    issue_data: IssueUpdate,
    user: User,
    dispatcher: Optional[NotificationDispatcher] = None,
    router: Optional[BroadcastRouter] = None,
) -> MutationResult[IssueResponse]:
    """
    Apply a partial update.

    Records ISSUE_UPDATED with a field diff. A new assignee gets
    TASK_ASSIGNED; watchers and an unchanged assignee get TASK_UPDATED.
    Broadcasts task_updated to the project and issue rooms. An update that
    changes nothing commits nothing and has no side effects.

    Raises:
        NotFoundError: If the issue does not exist
        Forbidden: If the user cannot access the issue
        ValueError: If the new assignee is not in the workspace
    """
    dispatcher = dispatcher or notification_dispatcher
    actor = Actor.of(user)

    issue = await require_issue(db, actor.id, issue_id)
    project = await require_project(db, actor.id, issue.project_id)

    update_data = {
        name: value
        for name, value in issue_data.model_dump(exclude_unset=True).items()
        if value is not None or name in _NULLABLE_FIELDS
    }
    if "assignee_id" in update_data:
        await _check_assignee(db, project.workspace_id, update_data["assignee_id"])

    before = {name: getattr(issue, name) for name in _TRACKED_FIELDS}
    changes = diff_fields(before, update_data)
    if not changes:
        return MutationResult(entity=await build_issue_response(db, issue))

    previous_assignee = issue.assignee_id
    for name, value in update_data.items():
        setattr(issue, name, value.value if hasattr(value, "value") else value)
    issue.updated_at = datetime.utcnow()

    await db.commit()
    await db.refresh(issue)

    snapshot = await build_issue_response(db, issue)
    watcher_ids = await get_watcher_ids(db, snapshot.id)
    result = MutationResult(entity=snapshot)
    logger.info(f"Issue updated: id={snapshot.id}, fields={list(changes)}")

    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.ISSUE_UPDATED,
            EntityType.ISSUE,
            snapshot.id,
            actor.id,
            details={"changes": changes},
            issue_id=snapshot.id,
        )
    )

    assignee_changed = "assignee_id" in changes
    if assignee_changed and snapshot.assignee_id is not None:
        await result.notify(
            dispatcher.notify_task_assigned(db, snapshot, snapshot.assignee_id, actor)
        )

    recipients = list(watcher_ids)
    if not assignee_changed and previous_assignee is not None:
        recipients.append(previous_assignee)
    if assignee_changed and snapshot.assignee_id is not None:
        recipients = [r for r in recipients if r != snapshot.assignee_id]
    if recipients:
        await result.notify(
            dispatcher.notify_task_updated(db, snapshot, actor, recipients, changes.keys())
        )

    await broadcast(
        handle_task_update(
            project_id=snapshot.project_id,
            task_id=snapshot.id,
            action=UpdateAction.UPDATED,
            task_data=_serialize(snapshot),
            user_id=actor.id,
            changes=changes,
            router=router,
        )
    )
    return result


async def delete_issue(
    db: AsyncSession,
    issue_id: UUID,
    user: User,
    router: Optional[BroadcastRouter] = None,
) -> MutationResult[IssueResponse]:
    """
    Delete an issue.

    Records ISSUE_DELETED (the entry outlives the issue) and broadcasts
    task_deleted to the project and issue rooms.
    """
    actor = Actor.of(user)
    issue = await require_issue(db, actor.id, issue_id)
    snapshot = await build_issue_response(db, issue)

    await db.delete(issue)
    await db.commit()

    result = MutationResult(entity=snapshot)
    logger.info(f"Issue deleted: id={snapshot.id}, project={snapshot.project_id}")

    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.ISSUE_DELETED,
            EntityType.ISSUE,
            snapshot.id,
            actor.id,
            details={"title": snapshot.title, "number": snapshot.number},
            issue_id=snapshot.id,
        )
    )

    await broadcast(
        handle_task_update(
            project_id=snapshot.project_id,
            task_id=snapshot.id,
            action=UpdateAction.DELETED,
            task_data={},
            user_id=actor.id,
            router=router,
        )
    )
    return result


# ============================================================================
# Labels
# ============================================================================


async def _require_label(db: AsyncSession, label_id: UUID, workspace_id: UUID) -> Label:
    label = await db.get(Label, label_id)
    if label is None or label.workspace_id != workspace_id:
        raise NotFoundError(f"Label {label_id} not found")
    return label


async def add_label(
    db: AsyncSession,
    issue_id: UUID,
    label_id: UUID,
    user: User,
    router: Optional[BroadcastRouter] = None,
) -> MutationResult[IssueResponse]:
    """Attach a workspace label. Attaching a label twice is a no-op."""
    actor = Actor.of(user)
    issue = await require_issue(db, actor.id, issue_id)
    project = await require_project(db, actor.id, issue.project_id)
    label = await _require_label(db, label_id, project.workspace_id)

    if label_id in await get_label_ids(db, issue_id):
        return MutationResult(entity=await build_issue_response(db, issue))

    label_name = label.name
    db.add(IssueLabel(issue_id=issue_id, label_id=label_id))
    await db.commit()
    return await _after_label_change(
        db, issue, actor, ActivityAction.LABEL_ADDED, label_id, label_name, router
    )


async def remove_label(
    db: AsyncSession,
    issue_id: UUID,
    label_id: UUID,
    user: User,
    router: Optional[BroadcastRouter] = None,
) -> MutationResult[IssueResponse]:
    """Detach a label. Detaching a label the issue does not carry is a no-op."""
    actor = Actor.of(user)
    issue = await require_issue(db, actor.id, issue_id)
    project = await require_project(db, actor.id, issue.project_id)
    label = await _require_label(db, label_id, project.workspace_id)

    if label_id not in await get_label_ids(db, issue_id):
        return MutationResult(entity=await build_issue_response(db, issue))

    label_name = label.name
    await db.execute(
        delete(IssueLabel).where(IssueLabel.issue_id == issue_id, IssueLabel.label_id == label_id)
    )
    await db.commit()
    return await _after_label_change(
        db, issue, actor, ActivityAction.LABEL_REMOVED, label_id, label_name, router
    )


async def _after_label_change(
    db: AsyncSession,
    issue: Issue,
    actor: Actor,
    action: ActivityAction,
    label_id: UUID,
    label_name: str,
    router: Optional[BroadcastRouter],
) -> MutationResult[IssueResponse]:
    snapshot = await build_issue_response(db, issue)
    result = MutationResult(entity=snapshot)

    await result.record(
        ActivityRecorder.append(
            db,
            action,
            EntityType.LABEL,
            label_id,
            actor.id,
            details={"label_name": label_name},
            issue_id=snapshot.id,
        )
    )

    await broadcast(
        handle_task_update(
            project_id=snapshot.project_id,
            task_id=snapshot.id,
            action=UpdateAction.UPDATED,
            task_data=_serialize(snapshot),
            user_id=actor.id,
            changes={"label_ids": [str(i) for i in snapshot.label_ids]},
            router=router,
        )
    )
    return result


# ============================================================================
# Watchers
# ============================================================================


async def add_watcher(
    db: AsyncSession,
    issue_id: UUID,
    user: User,
) -> MutationResult[list[UUID]]:
    """Subscribe the caller to the issue. Watching twice is a no-op."""
    actor = Actor.of(user)
    await require_issue(db, actor.id, issue_id)

    watcher_ids = await get_watcher_ids(db, issue_id)
    if actor.id in watcher_ids:
        return MutationResult(entity=watcher_ids)

    db.add(IssueWatcher(issue_id=issue_id, user_id=actor.id))
    await db.commit()

    result = MutationResult(entity=watcher_ids + [actor.id])
    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.WATCHER_ADDED,
            EntityType.ISSUE,
            issue_id,
            actor.id,
            details={"user_id": str(actor.id)},
            issue_id=issue_id,
        )
    )
    return result


async def remove_watcher(
    db: AsyncSession,
    issue_id: UUID,
    user: User,
) -> list[UUID]:
    """Unsubscribe the caller. Returns the remaining watcher ids."""
    await require_issue(db, user.id, issue_id)
    await db.execute(
        delete(IssueWatcher).where(
            IssueWatcher.issue_id == issue_id,
            IssueWatcher.user_id == user.id,
        )
    )
    await db.commit()
    return await get_watcher_ids(db, issue_id)
