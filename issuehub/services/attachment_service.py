"""Issue attachment flow: object storage plus metadata rows.

Uploads write the bytes first and the row second; deletes remove the row
even when the object is already gone from the bucket.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..errors import Forbidden, NotFoundError, ObjectStorageError
from ..models.attachment import Attachment
from ..models.user import User
from ..schemas.activity import ActivityAction, EntityType
from ..schemas.attachment import AttachmentResponse
from .access_service import require_issue
from .activity_service import ActivityRecorder
from .issue_service import MutationResult
from .storage_service import ObjectStorage

logger = logging.getLogger(__name__)


def _with_url(attachment: Attachment, storage: ObjectStorage) -> AttachmentResponse:
    response = AttachmentResponse.model_validate(attachment)
    try:
        response.url = storage.signed_url(attachment.object_key)
    except ObjectStorageError as e:
        logger.warning(f"No download URL for attachment {attachment.id}: {e}")
    return response


async def upload_attachment(
    db: AsyncSession,
    issue_id: UUID,
    file_name: str,
    content: bytes,
    content_type: Optional[str],
    user: User,
    storage: ObjectStorage,
) -> MutationResult[AttachmentResponse]:
    """
    Store a file for an issue and record ATTACHMENT_ADDED.

    Raises:
        NotFoundError / Forbidden: If the issue is missing or not accessible
        ObjectStorageError: If the upload fails (nothing is written to the DB)
    """
    actor_id = user.id
    await require_issue(db, actor_id, issue_id)

    key = storage.generate_key(issue_id, file_name)
    url = storage.put(content, key, content_type or "application/octet-stream")

    attachment = Attachment(
        issue_id=issue_id,
        uploader_id=actor_id,
        file_name=file_name,
        content_type=content_type or "application/octet-stream",
        size=len(content),
        object_key=key,
    )
    db.add(attachment)
    await db.commit()
    await db.refresh(attachment)

    snapshot = AttachmentResponse.model_validate(attachment)
    snapshot.url = url
    result = MutationResult(entity=snapshot)
    logger.info(f"Attachment uploaded: id={snapshot.id}, issue={issue_id}, size={snapshot.size}")

    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.ATTACHMENT_ADDED,
            EntityType.ATTACHMENT,
            snapshot.id,
            actor_id,
            details={"file_name": snapshot.file_name, "size": snapshot.size},
            issue_id=issue_id,
        )
    )
    return result


async def list_attachments(
    db: AsyncSession,
    issue_id: UUID,
    user: User,
    storage: ObjectStorage,
) -> list[AttachmentResponse]:
    await require_issue(db, user.id, issue_id)
    result = await db.execute(
        select(Attachment)
        .where(Attachment.issue_id == issue_id)
        .order_by(Attachment.created_at.desc())
    )
    return [_with_url(a, storage) for a in result.scalars().all()]


async def delete_attachment(
    db: AsyncSession,
    attachment_id: UUID,
    user: User,
    storage: ObjectStorage,
) -> MutationResult[AttachmentResponse]:
    """
    Delete an attachment and record ATTACHMENT_REMOVED.

    Raises:
        NotFoundError: If the attachment does not exist
        Forbidden: If the caller cannot see the issue or did not upload the file
    """
    actor_id = user.id
    attachment = await db.get(Attachment, attachment_id)
    if attachment is None:
        raise NotFoundError("Attachment not found")
    await require_issue(db, actor_id, attachment.issue_id)
    if attachment.uploader_id is not None and attachment.uploader_id != actor_id:
        raise Forbidden("Only the uploader can delete this attachment")

    snapshot = AttachmentResponse.model_validate(attachment)
    try:
        storage.delete(attachment.object_key)
    except ObjectStorageError as e:
        logger.warning(f"Object {attachment.object_key} not removed from storage: {e}")

    await db.delete(attachment)
    await db.commit()

    result = MutationResult(entity=snapshot)
    await result.record(
        ActivityRecorder.append(
            db,
            ActivityAction.ATTACHMENT_REMOVED,
            EntityType.ATTACHMENT,
            snapshot.id,
            actor_id,
            details={"file_name": snapshot.file_name},
            issue_id=snapshot.issue_id,
        )
    )
    return result
