"""Notification schemas."""

from typing import Optional

from pydantic import BaseModel

from snapsync.models.notification import Notification, NotificationType


class NotificationDraft(BaseModel):
    """Caller-supplied fields of a notification.

    id, is_read and created_at are always assigned by the hub.
    """

    type: NotificationType
    title: str
    message: str
    from_user_id: str
    to_user_id: str
    album_id: Optional[str] = None
    media_id: Optional[str] = None


class NotificationListResponse(BaseModel):
    notifications: list[Notification]
    unread_count: int
