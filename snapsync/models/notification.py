"""Notification model."""

import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel


class NotificationType(str, Enum):
    PHOTO_ADDED = "photo_added"
    VIDEO_ADDED = "video_added"
    MEMBER_JOINED = "member_joined"
    ALBUM_INVITE = "album_invite"
    ALBUM_UPDATED = "album_updated"
    OWNERSHIP_TRANSFERRED = "ownership_transferred"


class Notification(SQLModel, table=True):
    __tablename__ = "notifications"

    id: str = Field(default_factory=lambda: f"ntf_{secrets.token_hex(6)}", primary_key=True)
    type: NotificationType
    title: str
    message: str
    from_user_id: str
    to_user_id: str = Field(index=True)
    album_id: Optional[str] = None
    media_id: Optional[str] = None
    is_read: bool = Field(default=False, index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
