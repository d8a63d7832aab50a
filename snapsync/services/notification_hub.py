"""Notification listing, read state and fan-out.

Every notification is one record per (event, recipient). Fan-out writers call
create() once per recipient; the actor never receives their own event.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from sqlmodel import Session, col, select

from snapsync.config import settings
from snapsync.errors import NotFound, TransientIO, Unauthorized
from snapsync.models.notification import Notification, NotificationType
from snapsync.schemas.album import AlbumView
from snapsync.schemas.media import BatchOutcome
from snapsync.schemas.notification import NotificationDraft
from snapsync.services.profiles import ProfileDirectory
from snapsync.store.documents import DocumentStore, SnapshotStream, notifications_topic

logger = logging.getLogger(__name__)

# type -> (title, message template)
TEMPLATES: dict[NotificationType, tuple[str, str]] = {
    NotificationType.PHOTO_ADDED: ("New Photo", '{actor} added {count} to "{album}"'),
    NotificationType.VIDEO_ADDED: ("New Video", '{actor} added {count} to "{album}"'),
    NotificationType.MEMBER_JOINED: ("New Member", '{actor} joined "{album}"'),
    NotificationType.ALBUM_INVITE: ("Album Invite", '{actor} invited you to "{album}" (code {code})'),
    NotificationType.ALBUM_UPDATED: ("Album Updated", '{actor} {detail} in "{album}"'),
    NotificationType.OWNERSHIP_TRANSFERRED: ("Album Ownership", '{actor} made you the owner of "{album}"'),
}


def _count_text(type: NotificationType, count: int) -> str:
    noun = "video" if type == NotificationType.VIDEO_ADDED else "photo"
    return f"a {noun}" if count == 1 else f"{count} {noun}s"


class NotificationHub:
    def __init__(self, store: DocumentStore, profiles: ProfileDirectory, list_limit: Optional[int] = None):
        self.store = store
        self.profiles = profiles
        self.list_limit = list_limit or settings.notification_list_limit

    # --- Listing ---

    def observe(self, user_id: str) -> SnapshotStream[list[Notification]]:
        """Live list of the most recent notifications addressed to user_id, newest first."""
        limit = self.list_limit

        def query(session: Session) -> list[Notification]:
            return list(session.exec(
                select(Notification)
                .where(Notification.to_user_id == user_id)
                .order_by(col(Notification.created_at).desc())
                .limit(limit)
            ).all())

        return self.store.observe(notifications_topic(user_id), query)

    # --- Writing ---

    async def create(self, draft: NotificationDraft | Notification) -> Notification:
        """Write exactly one notification. id, is_read and created_at are always reset."""
        data = draft.model_dump(exclude={"id", "is_read", "created_at"})
        notification = Notification(**data, is_read=False, created_at=datetime.now(timezone.utc))

        def _insert(session: Session) -> Notification:
            session.add(notification)
            return notification

        await self.store.write(_insert)
        self.store.publish(notifications_topic(notification.to_user_id))
        return notification

    async def fan_out(
        self,
        type: NotificationType,
        actor_id: str,
        recipients: Iterable[str],
        album: AlbumView,
        media_id: Optional[str] = None,
        detail: str = "",
        count: int = 1,
    ) -> int:
        """Write one notification per recipient, skipping the actor.

        A failed write for one recipient is logged and does not stop the
        others. Returns the number of notifications written.
        """
        title, template = TEMPLATES[type]
        try:
            actor = await self.profiles.display_name(actor_id)
        except TransientIO as e:
            logger.warning("Profile lookup for %s failed, using raw id: %s", actor_id, e)
            actor = actor_id
        message = template.format(
            actor=actor,
            album=album.title,
            code=album.invite_code,
            detail=detail,
            count=_count_text(type, count),
        )

        written = 0
        for user_id in dict.fromkeys(recipients):
            if user_id == actor_id:
                continue
            try:
                await self.create(NotificationDraft(
                    type=type,
                    title=title,
                    message=message,
                    from_user_id=actor_id,
                    to_user_id=user_id,
                    album_id=album.id,
                    media_id=media_id,
                ))
                written += 1
            except TransientIO as e:
                logger.warning("Skipping %s notification for %s: %s", type.value, user_id, e)
        return written

    # --- Read state ---

    async def mark_as_read(self, notification_id: str, user_id: str) -> None:
        """Set is_read on one notification. Already-read notifications are left untouched."""
        def _mark(session: Session) -> bool:
            notification = session.get(Notification, notification_id)
            if not notification:
                raise NotFound("Notification not found")
            if notification.to_user_id != user_id:
                raise Unauthorized("Only the recipient can change this notification")
            if notification.is_read:
                return False
            notification.is_read = True
            session.add(notification)
            return True

        if await self.store.write(_mark):
            self.store.publish(notifications_topic(user_id))

    async def mark_all_as_read(self, user_id: str) -> BatchOutcome:
        """Mark every notification that is unread right now as read, in one batch.

        Notifications created after the unread set was captured stay unread.
        The batch commits completely or not at all.
        """
        unread_ids = await self.store.read(lambda s: list(s.exec(
            select(Notification.id).where(
                Notification.to_user_id == user_id,
                Notification.is_read == False,  # noqa: E712
            )
        ).all()))
        if not unread_ids:
            return BatchOutcome(total=0)

        def _batch(session: Session) -> list[str]:
            rows = session.exec(
                select(Notification).where(col(Notification.id).in_(unread_ids))
            ).all()
            for notification in rows:
                notification.is_read = True
                session.add(notification)
            return [n.id for n in rows]

        try:
            updated = await self.store.write(_batch)
        except TransientIO:
            logger.error("Mark-all-as-read batch failed for %s (%d notifications)", user_id, len(unread_ids))
            raise

        self.store.publish(notifications_topic(user_id))
        return BatchOutcome(total=len(unread_ids), succeeded=updated)

    async def delete_notification(self, notification_id: str, user_id: str) -> None:
        """Hard-delete a notification. Deleting a missing notification is a no-op."""
        def _delete(session: Session) -> bool:
            notification = session.get(Notification, notification_id)
            if not notification:
                return False
            if notification.to_user_id != user_id:
                raise Unauthorized("Only the recipient can delete this notification")
            session.delete(notification)
            return True

        if await self.store.write(_delete):
            self.store.publish(notifications_topic(user_id))


class NotificationFeed:
    """Live notifications for one user.

    unread_count is derived from the latest snapshot on every read, so it can
    never drift from the list.
    """

    def __init__(self, hub: NotificationHub, user_id: str):
        self.hub = hub
        self.user_id = user_id
        self.notifications: list[Notification] = []
        self._stream: Optional[SnapshotStream[list[Notification]]] = None
        self._task: Optional[asyncio.Task] = None
        self._listeners: list[Callable[["NotificationFeed"], None]] = []

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.is_read)

    def add_listener(self, listener: Callable[["NotificationFeed"], None]) -> None:
        self._listeners.append(listener)

    def apply(self, snapshot: list[Notification]) -> None:
        self.notifications = list(snapshot)
        for listener in list(self._listeners):
            listener(self)

    async def start(self) -> None:
        if self._stream is not None:
            return
        self._stream = self.hub.observe(self.user_id)
        self._task = asyncio.create_task(self._consume(self._stream))

    async def _consume(self, stream: SnapshotStream[list[Notification]]) -> None:
        async for snapshot in stream:
            self.apply(snapshot)

    async def stop(self) -> None:
        if self._stream is None:
            return
        self._stream.close()
        if self._task is not None:
            await self._task
        self._stream = None
        self._task = None

    async def mark_all_as_read(self) -> BatchOutcome:
        return await self.hub.mark_all_as_read(self.user_id)

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.stop()
