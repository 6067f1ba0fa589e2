"""Notifications API endpoints.

Provides endpoints for reading notifications and managing their read state.
All endpoints require authentication.
"""

from typing import Annotated, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ..database import get_db
from ..models.user import User
from ..schemas.notification import (
    MarkAllReadResponse,
    NotificationCount,
    NotificationResponse,
    NotificationType,
)
from ..services.auth_service import get_current_user
from ..services.notification_service import notification_dispatcher

router = APIRouter(prefix="/api/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=List[NotificationResponse],
    summary="List user notifications",
    responses={
        200: {"description": "List of notifications retrieved successfully"},
        401: {"description": "Not authenticated"},
    },
)
async def list_notifications(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
    skip: int = Query(0, ge=0, description="Number of records to skip"),
    limit: int = Query(50, ge=1, le=100, description="Maximum number of records to return"),
    unread_only: bool = Query(False, description="Return only unread notifications"),
    notification_type: Optional[NotificationType] = Query(
        None,
        alias="type",
        description="Filter by notification type",
    ),
) -> List[NotificationResponse]:
    """
    List notifications for the authenticated user, newest first.

    - **skip**: Number of records to skip for pagination
    - **limit**: Maximum number of records to return (1-100)
    - **unread_only**: If true, return only unread notifications
    - **type**: Optional filter by notification type
    """
    return await notification_dispatcher.list_for_user(
        db,
        current_user.id,
        unread_only=unread_only,
        notification_type=notification_type,
        skip=skip,
        limit=limit,
    )


@router.get(
    "/count",
    response_model=NotificationCount,
    summary="Get notification counts",
)
async def get_notification_count(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NotificationCount:
    """
    Get notification counts for the authenticated user.

    Returns:
    - total: Total number of notifications
    - unread: Number of unread notifications
    """
    total = await notification_dispatcher.get_total_count(db, current_user.id)
    unread = await notification_dispatcher.get_unread_count(db, current_user.id)
    return NotificationCount(total=total, unread=unread)


@router.post(
    "/mark-all-read",
    response_model=MarkAllReadResponse,
    summary="Mark all notifications as read",
)
async def mark_all_notifications_read(
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> MarkAllReadResponse:
    updated_count = await notification_dispatcher.mark_all_as_read(db, current_user.id)
    return MarkAllReadResponse(updated_count=updated_count)


@router.post(
    "/{notification_id}/read",
    response_model=NotificationResponse,
    summary="Mark a notification as read",
    responses={
        403: {"description": "Notification belongs to another user"},
        404: {"description": "Notification not found"},
    },
)
async def mark_notification_read(
    notification_id: UUID,
    current_user: Annotated[User, Depends(get_current_user)],
    db: AsyncSession = Depends(get_db),
) -> NotificationResponse:
    """
    Mark one notification as read. Marking it again is a no-op.

    The change is synced to the user's other open sockets.
    """
    return await notification_dispatcher.mark_as_read(db, notification_id, current_user.id)
