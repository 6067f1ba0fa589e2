"""Label API endpoints. Labels belong to a workspace and are shared by its projects."""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.label import Label
from ..models.user import User
from ..schemas.workspace import LabelCreate, LabelResponse
from ..services.access_service import require_workspace
from ..services.auth_service import get_current_user

router = APIRouter(prefix="/api/labels", tags=["Labels"])


@router.post(
    "",
    response_model=LabelResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a label",
)
async def create_label(
    label_data: LabelCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> LabelResponse:
    await require_workspace(db, current_user.id, label_data.workspace_id)

    existing = await db.execute(
        select(Label.id).where(
            Label.workspace_id == label_data.workspace_id,
            Label.name == label_data.name,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="A label with this name already exists in the workspace",
        )

    label = Label(
        workspace_id=label_data.workspace_id,
        name=label_data.name,
        color=label_data.color,
    )
    db.add(label)
    await db.commit()
    await db.refresh(label)
    return label


@router.get(
    "",
    response_model=List[LabelResponse],
    summary="List labels of a workspace",
)
async def list_labels(
    current_user: Annotated[User, Depends(get_current_user)],
    workspace_id: UUID = Query(...),
    db: AsyncSession = Depends(get_db),
) -> List[LabelResponse]:
    await require_workspace(db, current_user.id, workspace_id)
    result = await db.execute(
        select(Label).where(Label.workspace_id == workspace_id).order_by(Label.name)
    )
    return list(result.scalars().all())
