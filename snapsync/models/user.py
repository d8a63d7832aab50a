"""User profile model."""

from datetime import datetime, timezone
from typing import Optional

from sqlmodel import Field, SQLModel


class UserProfile(SQLModel, table=True):
    __tablename__ = "users"

    id: str = Field(primary_key=True)  # identity provider uid
    email: str = ""
    display_name: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def label(self) -> str:
        return self.display_name or self.email or self.id
