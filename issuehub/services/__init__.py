"""Business logic services."""

from .activity_service import ActivityRecorder, activity_recorder, diff_fields
from .auth_service import (
    authenticate_user,
    create_access_token,
    create_user,
    get_current_user,
    get_user_by_email,
    verify_access_token,
    verify_password,
)
from .notification_service import Actor, NotificationDispatcher, notification_dispatcher
from .redis_service import RedisRelay, redis_relay
from .storage_service import ObjectStorage, get_object_storage, object_storage
