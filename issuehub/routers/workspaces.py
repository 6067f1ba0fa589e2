"""Workspace API endpoints.

Workspaces are the top of the access hierarchy: membership here decides who
may open projects and issues, and who may join their realtime rooms.
"""

import logging
from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..errors import Forbidden, NotificationStorageError
from ..models.user import User
from ..models.workspace import Workspace, WorkspaceMember
from ..schemas.notification import NotificationType
from ..schemas.workspace import (
    WorkspaceCreate,
    WorkspaceMemberAdd,
    WorkspaceMemberResponse,
    WorkspaceResponse,
    WorkspaceRole,
)
from ..services.access_service import require_workspace
from ..services.auth_service import get_current_user, get_user_by_id
from ..services.notification_service import notification_dispatcher
from ..services.issue_service import broadcast
from ..websocket.handlers import handle_member_added
from ..websocket.room_auth import invalidate_user_cache

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/workspaces", tags=["Workspaces"])


@router.post(
    "",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workspace",
)
async def create_workspace(
    workspace_data: WorkspaceCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> WorkspaceResponse:
    """
    Create a workspace owned by the current user.

    - **name**: Display name
    - **slug**: Unique lowercase identifier
    """
    existing = await db.execute(select(Workspace.id).where(Workspace.slug == workspace_data.slug))
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Workspace slug already taken",
        )

    workspace = Workspace(
        name=workspace_data.name,
        slug=workspace_data.slug,
        owner_id=current_user.id,
    )
    db.add(workspace)
    await db.commit()
    await db.refresh(workspace)
    return workspace


@router.get(
    "",
    response_model=List[WorkspaceResponse],
    summary="List my workspaces",
)
async def list_workspaces(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> List[WorkspaceResponse]:
    """Workspaces the current user owns or belongs to."""
    member_of = select(WorkspaceMember.workspace_id).where(WorkspaceMember.user_id == current_user.id)
    result = await db.execute(
        select(Workspace)
        .where(or_(Workspace.owner_id == current_user.id, Workspace.id.in_(member_of)))
        .order_by(Workspace.created_at)
    )
    return list(result.scalars().all())


@router.get(
    "/{workspace_id}",
    response_model=WorkspaceResponse,
    summary="Get a workspace",
)
async def get_workspace(
    workspace_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> WorkspaceResponse:
    return await require_workspace(db, current_user.id, workspace_id)


@router.get(
    "/{workspace_id}/members",
    response_model=List[WorkspaceMemberResponse],
    summary="List workspace members",
)
async def list_members(
    workspace_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> List[WorkspaceMemberResponse]:
    await require_workspace(db, current_user.id, workspace_id)
    result = await db.execute(
        select(WorkspaceMember)
        .where(WorkspaceMember.workspace_id == workspace_id)
        .order_by(WorkspaceMember.created_at)
    )
    return list(result.scalars().all())


@router.post(
    "/{workspace_id}/members",
    response_model=WorkspaceMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a workspace member",
    responses={
        403: {"description": "Only the owner or an admin can add members"},
        404: {"description": "Workspace or user not found"},
    },
)
async def add_member(
    workspace_id: UUID,
    member_data: WorkspaceMemberAdd,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> WorkspaceMemberResponse:
    """
    Add a user to the workspace, send them a PROJECT_INVITE notification and
    announce member_added to the workspace room.

    The new member's cached room-access decisions are dropped so that they
    can join the workspace's rooms immediately.
    """
    workspace = await require_workspace(db, current_user.id, workspace_id)
    workspace_name = workspace.name
    actor_id = current_user.id
    actor_label = current_user.label

    if workspace.owner_id != actor_id:
        role = await db.execute(
            select(WorkspaceMember.role).where(
                WorkspaceMember.workspace_id == workspace_id,
                WorkspaceMember.user_id == actor_id,
            )
        )
        if role.scalar_one_or_none() != WorkspaceRole.ADMIN.value:
            raise Forbidden("Only the owner or an admin can add members")

    if await get_user_by_id(db, member_data.user_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")

    existing = await db.execute(
        select(WorkspaceMember).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == member_data.user_id,
        )
    )
    if existing.scalar_one_or_none() is not None or member_data.user_id == workspace.owner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User is already a member of this workspace",
        )

    member = WorkspaceMember(
        workspace_id=workspace_id,
        user_id=member_data.user_id,
        role=member_data.role.value,
    )
    db.add(member)
    await db.commit()
    await db.refresh(member)
    response = WorkspaceMemberResponse.model_validate(member)

    invalidate_user_cache(member_data.user_id)

    try:
        await notification_dispatcher.notify(
            db,
            member_data.user_id,
            NotificationType.PROJECT_INVITE,
            f"{actor_label} added you to workspace {workspace_name}",
            related_entity_id=workspace_id,
            actor_id=actor_id,
        )
    except NotificationStorageError as e:
        logger.error(f"Invite notification for {member_data.user_id} not stored: {e}")

    await broadcast(
        handle_member_added(workspace_id, member_data.user_id, response.role.value, added_by=actor_id)
    )

    return response
