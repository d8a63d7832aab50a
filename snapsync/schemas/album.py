"""Album request/response schemas."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class AlbumView(BaseModel):
    """Album document with its member set resolved."""

    id: str
    title: str
    owner_id: str
    members: list[str]
    invite_code: str
    cover_path: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    def is_owner(self, user_id: str) -> bool:
        return self.owner_id == user_id

    def is_member(self, user_id: str) -> bool:
        return user_id in self.members


class AlbumCreateRequest(BaseModel):
    title: str


class AlbumUpdateRequest(BaseModel):
    title: Optional[str] = None
    cover_path: Optional[str] = None


class AlbumJoinRequest(BaseModel):
    invite_code: str


class AlbumTransferRequest(BaseModel):
    new_owner_id: str


class AlbumInviteRequest(BaseModel):
    user_id: str


class ProfileUpdateRequest(BaseModel):
    email: str = ""
    display_name: Optional[str] = None
