"""Workspace membership checks shared by REST routers and room authorization.

Access is hierarchical: a user who owns or belongs to a workspace can see
every project in it and every issue in those projects.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import Forbidden, NotFoundError
from ..models.issue import Issue
from ..models.project import Project
from ..models.workspace import Workspace, WorkspaceMember


async def has_workspace_access(db: AsyncSession, user_id: UUID, workspace_id: UUID) -> bool:
    """Check if user owns or is a member of the workspace."""
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        return False
    if workspace.owner_id == user_id:
        return True

    result = await db.execute(
        select(WorkspaceMember.id).where(
            WorkspaceMember.workspace_id == workspace_id,
            WorkspaceMember.user_id == user_id,
        )
    )
    return result.scalar_one_or_none() is not None


async def has_project_access(db: AsyncSession, user_id: UUID, project_id: UUID) -> bool:
    project = await db.get(Project, project_id)
    if project is None:
        return False
    return await has_workspace_access(db, user_id, project.workspace_id)


async def has_issue_access(db: AsyncSession, user_id: UUID, issue_id: UUID) -> bool:
    issue = await db.get(Issue, issue_id)
    if issue is None:
        return False
    return await has_project_access(db, user_id, issue.project_id)


async def require_workspace(db: AsyncSession, user_id: UUID, workspace_id: UUID) -> Workspace:
    """
    Load a workspace the user can access.

    Raises:
        NotFoundError: If the workspace does not exist
        Forbidden: If the user is not the owner or a member
    """
    workspace = await db.get(Workspace, workspace_id)
    if workspace is None:
        raise NotFoundError(f"Workspace {workspace_id} not found")
    if not await has_workspace_access(db, user_id, workspace_id):
        raise Forbidden("You are not a member of this workspace")
    return workspace


async def require_project(db: AsyncSession, user_id: UUID, project_id: UUID) -> Project:
    project = await db.get(Project, project_id)
    if project is None:
        raise NotFoundError(f"Project {project_id} not found")
    await require_workspace(db, user_id, project.workspace_id)
    return project


async def require_issue(db: AsyncSession, user_id: UUID, issue_id: UUID) -> Issue:
    issue = await db.get(Issue, issue_id)
    if issue is None:
        raise NotFoundError(f"Issue {issue_id} not found")
    await require_project(db, user_id, issue.project_id)
    return issue
