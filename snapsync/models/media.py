"""Media item model."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class MediaItem(SQLModel, table=True):
    __tablename__ = "media_items"

    id: str = Field(default_factory=lambda: f"med_{secrets.token_hex(6)}", primary_key=True)
    album_id: str = Field(foreign_key="albums.id", index=True)
    path: str
    thumb_path: Optional[str] = None
    type: str  # 'image' | 'video'
    uploader_id: str = Field(index=True)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)
