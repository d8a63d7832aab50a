"""Album creation, invite codes and membership admission."""

import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, col, select

from snapsync.config import settings
from snapsync.errors import (
    AlreadyMember,
    InvalidInput,
    NotFound,
    ResourceExhausted,
    Unauthorized,
)
from snapsync.models.album import Album, AlbumMember
from snapsync.models.notification import NotificationType
from snapsync.schemas.album import AlbumView
from snapsync.services.notification_hub import NotificationHub
from snapsync.store.documents import (
    DocumentStore,
    SnapshotStream,
    album_topic,
    user_albums_topic,
)
from snapsync.utils.security import generate_invite_code, normalize_invite_code

logger = logging.getLogger(__name__)


def _member_ids(session: Session, album_id: str) -> list[str]:
    return list(session.exec(
        select(AlbumMember.user_id)
        .where(AlbumMember.album_id == album_id)
        .order_by(col(AlbumMember.joined_at), col(AlbumMember.id))
    ).all())


def _view(session: Session, album: Album) -> AlbumView:
    return AlbumView(
        id=album.id,
        title=album.title,
        owner_id=album.owner_id,
        members=_member_ids(session, album.id),
        invite_code=album.invite_code,
        cover_path=album.cover_path,
        created_at=album.created_at,
        updated_at=album.updated_at,
    )


def _load(session: Session, album_id: str) -> AlbumView:
    album = session.get(Album, album_id)
    if not album:
        raise NotFound("Album not found")
    return _view(session, album)


class AlbumDirectory:
    def __init__(self, store: DocumentStore, notifications: NotificationHub):
        self.store = store
        self.notifications = notifications

    def _publish_album(self, album_id: str, members: list[str]) -> None:
        self.store.publish(album_topic(album_id), *(user_albums_topic(uid) for uid in members))

    # --- Creation ---

    async def create_album(self, title: str, owner_id: str) -> AlbumView:
        """Create an album owned (and joined) by owner_id with a fresh invite code."""
        title = title.strip()
        if not title:
            raise InvalidInput("Album title is required")
        if not owner_id:
            raise Unauthorized("Sign-in required")

        for attempt in range(1, settings.invite_code_attempts + 1):
            code = generate_invite_code()

            def _insert(session: Session) -> Optional[AlbumView]:
                taken = session.exec(select(Album.id).where(Album.invite_code == code)).first()
                if taken:
                    return None
                album = Album(title=title, owner_id=owner_id, invite_code=code)
                session.add(album)
                session.flush()
                session.add(AlbumMember(album_id=album.id, user_id=owner_id))
                session.flush()
                return _view(session, album)

            try:
                album = await self.store.write(_insert)
            except IntegrityError:
                album = None  # lost a race for the same code
            if album is not None:
                logger.info("Album %s created by %s (code %s)", album.id, owner_id, code)
                self._publish_album(album.id, album.members)
                return album
            logger.info("Invite code collision on attempt %d", attempt)

        raise ResourceExhausted(
            f"No unique invite code after {settings.invite_code_attempts} attempts"
        )

    # --- Lookup ---

    def observe_my_albums(self, user_id: str) -> SnapshotStream[list[AlbumView]]:
        """Live list of albums user_id belongs to, most recently updated first."""
        limit = settings.album_list_limit

        def query(session: Session) -> list[AlbumView]:
            albums = session.exec(
                select(Album)
                .join(AlbumMember, AlbumMember.album_id == Album.id)
                .where(AlbumMember.user_id == user_id)
                .order_by(col(Album.updated_at).desc())
                .limit(limit)
            ).all()
            return [_view(session, a) for a in albums]

        return self.store.observe(user_albums_topic(user_id), query)

    async def get_album(self, album_id: str) -> AlbumView:
        return await self.store.read(lambda s: _load(s, album_id))

    async def find_by_invite_code(self, code: str) -> AlbumView:
        """Find the album for an invite code. Input is normalized before the query."""
        normalized = normalize_invite_code(code)
        if len(normalized) != settings.invite_code_length:
            raise InvalidInput(f"Invite code must be {settings.invite_code_length} letters or digits")

        def _find(session: Session) -> AlbumView:
            album = session.exec(select(Album).where(Album.invite_code == normalized)).first()
            if not album:
                raise NotFound("No album for this invite code")
            return _view(session, album)

        return await self.store.read(_find)

    # --- Membership ---

    async def join_album(self, album: AlbumView, user_id: str) -> AlbumView:
        """Add user_id to the album and notify the members who were already there."""
        if not user_id:
            raise Unauthorized("Sign-in required")
        if album.is_member(user_id):
            raise AlreadyMember()

        def _join(session: Session) -> tuple[list[str], AlbumView]:
            record = session.get(Album, album.id)
            if not record:
                raise NotFound("Album not found")
            existing = _member_ids(session, album.id)
            if user_id in existing:
                raise AlreadyMember()
            session.add(AlbumMember(album_id=album.id, user_id=user_id))
            record.updated_at = datetime.now(timezone.utc)
            session.add(record)
            session.flush()
            return existing, _view(session, record)

        try:
            previous, joined = await self.store.write(_join)
        except IntegrityError as e:
            # Concurrent join by the same user won the unique constraint
            raise AlreadyMember() from e

        logger.info("User %s joined album %s", user_id, album.id)
        self._publish_album(joined.id, joined.members)
        await self.notifications.fan_out(
            NotificationType.MEMBER_JOINED, user_id, previous, joined,
        )
        return joined

    async def join_by_invite_code(self, code: str, user_id: str) -> AlbumView:
        album = await self.find_by_invite_code(code)
        return await self.join_album(album, user_id)

    async def invite_user(self, album_id: str, to_user_id: str, user_id: str) -> None:
        """Send an album-invite notification carrying the invite code."""
        album = await self.get_album(album_id)
        if not album.is_member(user_id):
            raise Unauthorized("Only members can invite")
        if album.is_member(to_user_id):
            raise AlreadyMember(f"{to_user_id} is already a member")
        await self.notifications.fan_out(
            NotificationType.ALBUM_INVITE, user_id, [to_user_id], album,
        )

    # --- Owner actions ---

    async def _update_owned(self, album_id: str, user_id: str, apply) -> AlbumView:
        def _update(session: Session) -> AlbumView:
            record = session.get(Album, album_id)
            if not record:
                raise NotFound("Album not found")
            if record.owner_id != user_id:
                raise Unauthorized("Only the album owner can do this")
            apply(session, record)
            record.updated_at = datetime.now(timezone.utc)
            session.add(record)
            session.flush()
            return _view(session, record)

        album = await self.store.write(_update)
        self._publish_album(album.id, album.members)
        return album

    async def update_album(
        self,
        album_id: str,
        user_id: str,
        title: Optional[str] = None,
        cover_path: Optional[str] = None,
        change_cover: bool = False,
    ) -> AlbumView:
        """Rename and/or re-cover the album in one write with one notification per member.

        title=None keeps the title; the cover is only touched when change_cover is set
        (an empty cover_path clears it).
        """
        details = []
        if title is not None:
            title = title.strip()
            if not title:
                raise InvalidInput("Album title is required")
            details.append("renamed the album")
        if change_cover:
            details.append("changed the cover photo")
        if not details:
            raise InvalidInput("Nothing to update")

        def _apply(session: Session, record: Album) -> None:
            if title is not None:
                record.title = title
            if change_cover:
                record.cover_path = cover_path or None

        album = await self._update_owned(album_id, user_id, _apply)
        await self.notifications.fan_out(
            NotificationType.ALBUM_UPDATED, user_id, album.members, album,
            detail=" and ".join(details),
        )
        return album

    async def rename_album(self, album_id: str, title: str, user_id: str) -> AlbumView:
        return await self.update_album(album_id, user_id, title=title)

    async def set_cover(self, album_id: str, cover_path: Optional[str], user_id: str) -> AlbumView:
        return await self.update_album(album_id, user_id, cover_path=cover_path, change_cover=True)

    async def transfer_ownership(self, album_id: str, new_owner_id: str, user_id: str) -> AlbumView:
        """Hand the album to another existing member."""
        def _transfer(session: Session, record: Album) -> None:
            if new_owner_id not in _member_ids(session, record.id):
                raise NotFound("New owner must already be a member")
            record.owner_id = new_owner_id

        album = await self._update_owned(album_id, user_id, _transfer)
        logger.info("Album %s ownership moved from %s to %s", album_id, user_id, new_owner_id)
        await self.notifications.fan_out(
            NotificationType.OWNERSHIP_TRANSFERRED, user_id, [new_owner_id], album,
        )
        return album
