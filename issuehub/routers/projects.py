"""Project API endpoints."""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.project import Project
from ..models.user import User
from ..schemas.workspace import ProjectCreate, ProjectResponse
from ..services.access_service import require_project, require_workspace
from ..services.auth_service import get_current_user

router = APIRouter(prefix="/api/projects", tags=["Projects"])


@router.post(
    "",
    response_model=ProjectResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a project",
    responses={
        403: {"description": "Not a member of the workspace"},
        404: {"description": "Workspace not found"},
    },
)
async def create_project(
    project_data: ProjectCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    """
    Create a project inside a workspace the current user belongs to.

    - **key**: Short uppercase key, e.g. ``WEB``
    """
    await require_workspace(db, current_user.id, project_data.workspace_id)

    project = Project(
        workspace_id=project_data.workspace_id,
        name=project_data.name,
        key=project_data.key,
        description=project_data.description,
    )
    db.add(project)
    await db.commit()
    await db.refresh(project)
    return project


@router.get(
    "",
    response_model=List[ProjectResponse],
    summary="List projects of a workspace",
)
async def list_projects(
    current_user: Annotated[User, Depends(get_current_user)],
    workspace_id: UUID = Query(..., description="Workspace to list projects for"),
    db: AsyncSession = Depends(get_db),
) -> List[ProjectResponse]:
    await require_workspace(db, current_user.id, workspace_id)
    result = await db.execute(
        select(Project).where(Project.workspace_id == workspace_id).order_by(Project.created_at)
    )
    return list(result.scalars().all())


@router.get(
    "/{project_id}",
    response_model=ProjectResponse,
    summary="Get a project",
)
async def get_project(
    project_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> ProjectResponse:
    return await require_project(db, current_user.id, project_id)
