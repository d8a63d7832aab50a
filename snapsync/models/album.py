"""Album and membership models."""

import secrets
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import Field, SQLModel


class Album(SQLModel, table=True):
    __tablename__ = "albums"

    id: str = Field(default_factory=lambda: f"alb_{secrets.token_hex(4)}", primary_key=True)
    title: str
    owner_id: str = Field(index=True)
    invite_code: str = Field(unique=True, index=True)  # 6 chars [A-Z0-9]
    cover_path: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), index=True)


class AlbumMember(SQLModel, table=True):
    """One row per (album, user); inserting a row is the atomic set-add."""

    __tablename__ = "album_members"
    __table_args__ = (UniqueConstraint("album_id", "user_id", name="uq_album_member"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    album_id: str = Field(foreign_key="albums.id", index=True)
    user_id: str = Field(index=True)
    joined_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
