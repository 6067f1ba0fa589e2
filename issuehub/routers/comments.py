"""Comments API endpoints.

Provides endpoints for discussing issues with @mention support.
All endpoints require authentication.
"""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.comment import CommentCreate, CommentMutationResponse, CommentResponse
from ..services.auth_service import get_current_user
from ..services.comment_service import add_comment, delete_comment, list_comments

router = APIRouter(tags=["Comments"])


@router.get(
    "/api/issues/{issue_id}/comments",
    response_model=List[CommentResponse],
    summary="List comments on an issue",
)
async def get_comments(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> List[CommentResponse]:
    return await list_comments(db, issue_id, current_user, skip=skip, limit=limit)


@router.post(
    "/api/issues/{issue_id}/comments",
    response_model=CommentMutationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a comment",
    responses={
        403: {"description": "No access to the issue"},
        404: {"description": "Issue or parent comment not found"},
    },
)
async def create_comment(
    issue_id: UUID,
    comment_data: CommentCreate,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> CommentMutationResponse:
    """
    Add a comment to an issue.

    - **content**: Comment body
    - **parent_id**: Optional comment being replied to
    - **mentions**: IDs of mentioned users (they get a MENTION notification)

    Watchers and the assignee who are not mentioned get COMMENT_ADDED.
    Broadcasts ``comment_added`` to the issue and project rooms.
    """
    result = await add_comment(db, issue_id, comment_data, current_user)
    return CommentMutationResponse(**result.entity.model_dump(), warnings=result.warnings)


@router.delete(
    "/api/comments/{comment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a comment",
    responses={
        403: {"description": "Only the author can delete the comment"},
        404: {"description": "Comment not found"},
    },
)
async def remove_comment(
    comment_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> None:
    await delete_comment(db, comment_id, current_user)
