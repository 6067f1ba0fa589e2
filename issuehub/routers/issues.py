"""Issue API endpoints.

Mutations return the committed issue together with ``warnings``: side
effects (activity, notifications) that failed after the issue was saved.
A warning never turns a committed mutation into an error response.
"""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.activity import ActivityResponse
from ..schemas.issue import (
    IssueCreate,
    IssueMutationResponse,
    IssueResponse,
    IssueUpdate,
    WatcherListResponse,
)
from ..services import issue_service
from ..services.access_service import require_issue
from ..services.activity_service import ActivityRecorder
from ..services.auth_service import get_current_user
from ..services.issue_service import MutationResult

router = APIRouter(prefix="/api/issues", tags=["Issues"])


def _mutation_response(result: MutationResult[IssueResponse]) -> IssueMutationResponse:
    return IssueMutationResponse(**result.entity.model_dump(), warnings=result.warnings)


# ============================================================================
# Issue CRUD
# ============================================================================


@router.post(
    "",
    response_model=IssueMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an issue",
    responses={
        400: {"description": "Assignee is not a workspace member"},
        403: {"description": "No access to the project"},
        404: {"description": "Project not found"},
    },
)
async def create_issue(
    issue_data: IssueCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> IssueMutationResponse:
    """
    Create an issue.

    Broadcasts ``task_created`` to ``project:<project_id>`` and notifies the
    assignee (unless they created the issue themselves).
    """
    try:
        result = await issue_service.create_issue(db, issue_data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _mutation_response(result)


@router.get(
    "",
    response_model=List[IssueResponse],
    summary="List issues of a project",
)
async def list_issues(
    current_user: Annotated[User, Depends(get_current_user)],
    project_id: UUID = Query(...),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> List[IssueResponse]:
    return await issue_service.list_issues(db, project_id, current_user, skip=skip, limit=limit)


@router.get(
    "/{issue_id}",
    response_model=IssueResponse,
    summary="Get an issue",
)
async def get_issue(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> IssueResponse:
    return await issue_service.get_issue(db, issue_id, current_user)


@router.patch(
    "/{issue_id}",
    response_model=IssueMutationResponse,
    summary="Update an issue",
)
async def update_issue(
    issue_id: UUID,
    issue_data: IssueUpdate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> IssueMutationResponse:
    """
    Partially update an issue. Only provided fields change.

    Broadcasts ``task_updated`` to the project and issue rooms.
    """
    try:
        result = await issue_service.update_issue(db, issue_id, issue_data, current_user)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    return _mutation_response(result)


@router.delete(
    "/{issue_id}",
    response_model=IssueMutationResponse,
    summary="Delete an issue",
)
async def delete_issue(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> IssueMutationResponse:
    """Delete an issue and return its last state. Broadcasts ``task_deleted``."""
    result = await issue_service.delete_issue(db, issue_id, current_user)
    return _mutation_response(result)


# ============================================================================
# Labels
# ============================================================================


@router.post(
    "/{issue_id}/labels/{label_id}",
    response_model=IssueMutationResponse,
    summary="Attach a label",
)
async def add_label(
    issue_id: UUID,
    label_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> IssueMutationResponse:
    result = await issue_service.add_label(db, issue_id, label_id, current_user)
    return _mutation_response(result)


@router.delete(
    "/{issue_id}/labels/{label_id}",
    response_model=IssueMutationResponse,
    summary="Detach a label",
)
async def remove_label(
    issue_id: UUID,
    label_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> IssueMutationResponse:
    result = await issue_service.remove_label(db, issue_id, label_id, current_user)
    return _mutation_response(result)


# ============================================================================
# Watchers
# ============================================================================


@router.get(
    "/{issue_id}/watchers",
    response_model=WatcherListResponse,
    summary="List watchers",
)
async def list_watchers(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> WatcherListResponse:
    await require_issue(db, current_user.id, issue_id)
    watcher_ids = await issue_service.get_watcher_ids(db, issue_id)
    return WatcherListResponse(issue_id=issue_id, watcher_ids=watcher_ids)


@router.post(
    "/{issue_id}/watchers",
    response_model=WatcherListResponse,
    summary="Watch an issue",
)
async def add_watcher(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> WatcherListResponse:
    """Subscribe the current user to comments and updates on the issue."""
    result = await issue_service.add_watcher(db, issue_id, current_user)
    return WatcherListResponse(issue_id=issue_id, watcher_ids=result.entity, warnings=result.warnings)


@router.delete(
    "/{issue_id}/watchers",
    response_model=WatcherListResponse,
    summary="Stop watching an issue",
)
async def remove_watcher(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> WatcherListResponse:
    watcher_ids = await issue_service.remove_watcher(db, issue_id, current_user)
    return WatcherListResponse(issue_id=issue_id, watcher_ids=watcher_ids)


# ============================================================================
# Activity feed
# ============================================================================


@router.get(
    "/{issue_id}/activity",
    response_model=List[ActivityResponse],
    summary="Issue activity feed",
)
async def list_activity(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> List[ActivityResponse]:
    """
    Activity on the issue and its comments, labels and attachments, oldest
    first. Entries sharing a timestamp keep their insertion order.
    """
    await require_issue(db, current_user.id, issue_id)
    return await ActivityRecorder.list_for_issue(db, issue_id, skip=skip, limit=limit)
