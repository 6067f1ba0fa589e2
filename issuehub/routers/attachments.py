"""Attachment API endpoints: upload, list and delete files on issues."""

from typing import Annotated, List
from uuid import UUID

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..models.user import User
from ..schemas.attachment import AttachmentResponse
from ..services import attachment_service
from ..services.auth_service import get_current_user
from ..services.storage_service import ObjectStorage, get_object_storage

router = APIRouter(tags=["Attachments"])


@router.post(
    "/api/issues/{issue_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload an attachment",
    responses={
        413: {"description": "File too large"},
        502: {"description": "Object storage unavailable"},
    },
)
async def upload_attachment(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
    file: UploadFile = File(..., description="The file to upload"),
) -> AttachmentResponse:
    """Store a file for an issue. The response carries a signed download URL."""
    content = await file.read()
    if len(content) > settings.attachment_max_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.attachment_max_size} bytes",
        )

    result = await attachment_service.upload_attachment(
        db,
        issue_id,
        file.filename or "upload",
        content,
        file.content_type,
        current_user,
        storage,
    )
    return result.entity


@router.get(
    "/api/issues/{issue_id}/attachments",
    response_model=List[AttachmentResponse],
    summary="List attachments",
)
async def list_attachments(
    issue_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
) -> List[AttachmentResponse]:
    return await attachment_service.list_attachments(db, issue_id, current_user, storage)


@router.delete(
    "/api/attachments/{attachment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an attachment",
)
async def delete_attachment(
    attachment_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
) -> None:
    await attachment_service.delete_attachment(db, attachment_id, current_user, storage)
