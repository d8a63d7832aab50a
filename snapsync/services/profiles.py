"""User profile lookup used to render notification text."""

from sqlmodel import Session

from snapsync.models.user import UserProfile
from snapsync.store.documents import DocumentStore


class ProfileDirectory:
    def __init__(self, store: DocumentStore):
        self.store = store

    async def upsert(self, user_id: str, email: str = "", display_name: str | None = None) -> UserProfile:
        def _upsert(session: Session) -> UserProfile:
            profile = session.get(UserProfile, user_id)
            if profile is None:
                profile = UserProfile(id=user_id)
            profile.email = email
            profile.display_name = display_name
            session.add(profile)
            return profile

        return await self.store.write(_upsert)

    async def display_name(self, user_id: str) -> str:
        """Display name, else email, else the raw user id."""
        profile = await self.store.read(lambda s: s.get(UserProfile, user_id))
        return profile.label if profile else user_id
