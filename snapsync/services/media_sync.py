"""Per-album media listing, upload pipeline and deletion.

Upload order:
1. Put the primary blob
2. For videos, derive and put a thumbnail
3. Insert the media record
4. Notify the other album members

A blob written without a record is an orphan and is never listed; observe()
only returns complete records.
"""

import asyncio
import logging
import uuid
from typing import Awaitable, Callable, Optional, Sequence

from sqlmodel import Session, col, or_, select

from snapsync.config import settings
from snapsync.errors import InvalidMedia, NotFound, SnapSyncError, Unauthorized
from snapsync.models.album import Album, AlbumMember
from snapsync.models.media import MediaItem
from snapsync.models.notification import NotificationType
from snapsync.schemas.media import BulkUploadProgress, MediaBlob
from snapsync.services.album_directory import AlbumDirectory
from snapsync.services.notification_hub import NotificationHub
from snapsync.store.blobs import BlobStore
from snapsync.store.documents import DocumentStore, SnapshotStream, media_topic
from snapsync.utils.image import (
    IMAGE_TYPES,
    VIDEO_TYPES,
    is_valid_video_format,
    media_kind,
    verify_image,
)

logger = logging.getLogger(__name__)

Thumbnailer = Callable[[bytes], Awaitable[bytes]]


def media_paths(album_id: str, token: str, kind: str, ext: str) -> tuple[str, Optional[str]]:
    """Blob keys for one upload: (primary, thumbnail-or-None)."""
    base = f"albums/{album_id}/{token}"
    if kind == "video":
        return f"{base}/video{ext}", f"{base}/thumb.jpg"
    return f"{base}/original{ext}", None


class MediaSyncEngine:
    def __init__(
        self,
        store: DocumentStore,
        blobs: BlobStore,
        albums: AlbumDirectory,
        notifications: NotificationHub,
        thumbnailer: Thumbnailer,
    ):
        self.store = store
        self.blobs = blobs
        self.albums = albums
        self.notifications = notifications
        self.thumbnailer = thumbnailer

    # --- Listing ---

    def observe(self, album_id: str) -> SnapshotStream[list[MediaItem]]:
        """Live list of the album's media, newest first."""
        def query(session: Session) -> list[MediaItem]:
            return list(session.exec(
                select(MediaItem)
                .where(
                    MediaItem.album_id == album_id,
                    MediaItem.path != "",
                    or_(MediaItem.type == "image", col(MediaItem.thumb_path).is_not(None)),
                )
                .order_by(col(MediaItem.created_at).desc())
            ).all())

        return self.store.observe(media_topic(album_id), query)

    async def download_url(self, path: str) -> str:
        return await self.blobs.get_download_url(path)

    # --- Upload ---

    def _classify(self, blob: MediaBlob) -> tuple[str, str]:
        """Validate the blob and return (kind, extension)."""
        kind = media_kind(blob.content_type)
        if kind == "video":
            if len(blob.data) > settings.max_video_bytes:
                raise InvalidMedia(
                    f"Video is larger than {settings.max_video_bytes // (1024 * 1024)}MB"
                )
            if not is_valid_video_format(blob.data):
                raise InvalidMedia("Unsupported video format")
            ext = VIDEO_TYPES[blob.content_type]
        else:
            verify_image(blob.data)
            ext = IMAGE_TYPES[blob.content_type]
        return kind, ext

    async def upload(self, blob: MediaBlob, album_id: str, uploader_id: str) -> MediaItem:
        """Store one photo or video in the album and notify the other members."""
        album = await self.albums.get_album(album_id)
        if not album.is_member(uploader_id):
            raise Unauthorized("Only album members can upload")

        kind, ext = await asyncio.to_thread(self._classify, blob)
        path, thumb_path = media_paths(album_id, uuid.uuid4().hex, kind, ext)

        await self.blobs.put(blob.data, path)
        if thumb_path:
            thumbnail = await self.thumbnailer(blob.data)
            await self.blobs.put(thumbnail, thumb_path)

        item = MediaItem(
            album_id=album_id,
            path=path,
            thumb_path=thumb_path,
            type=kind,
            uploader_id=uploader_id,
        )

        def _insert(session: Session) -> MediaItem:
            if not session.get(Album, album_id):
                raise NotFound("Album not found")
            session.add(item)
            return item

        await self.store.write(_insert)
        logger.info("Stored %s %s in album %s (%d bytes)", kind, item.id, album_id, len(blob.data))
        self.store.publish(media_topic(album_id))

        notification_type = (
            NotificationType.VIDEO_ADDED if kind == "video" else NotificationType.PHOTO_ADDED
        )
        try:
            await self.notifications.fan_out(
                notification_type, uploader_id, album.members, album, media_id=item.id,
            )
        except SnapSyncError as e:
            # The record is already committed
            logger.warning("Notifications for media %s failed: %s", item.id, e)
        return item

    async def bulk_upload(
        self,
        blobs: Sequence[MediaBlob],
        album_id: str,
        uploader_id: str,
        progress: Optional[BulkUploadProgress] = None,
    ) -> BulkUploadProgress:
        """Upload many blobs best-effort.

        Items run with bounded concurrency; a failed item is recorded and the
        rest continue. Counter updates happen under one lock.
        """
        progress = progress or BulkUploadProgress()
        progress.total_count = len(blobs)
        semaphore = asyncio.Semaphore(max(1, settings.upload_concurrency))
        lock = asyncio.Lock()

        async def _one(index: int, blob: MediaBlob) -> None:
            label = blob.filename or f"#{index}"
            async with semaphore:
                try:
                    item = await self.upload(blob, album_id, uploader_id)
                except SnapSyncError as e:
                    logger.warning("Bulk upload item %s failed: %s", label, e)
                    async with lock:
                        progress.record_failure(label, str(e))
                    return
                except Exception as e:
                    logger.exception("Bulk upload item %s crashed", label)
                    async with lock:
                        progress.record_failure(label, str(e) or type(e).__name__)
                    return
            async with lock:
                progress.record_success(item.id)

        await asyncio.gather(*(_one(i, b) for i, b in enumerate(blobs)))
        progress.finish()
        logger.info(
            "Bulk upload to %s finished: %d/%d uploaded, %d failed",
            album_id, progress.uploaded_count, progress.total_count, len(progress.failures),
        )
        return progress

    # --- Deletion ---

    async def get_media(self, album_id: str, media_id: str) -> MediaItem:
        item = await self.store.read(lambda s: s.get(MediaItem, media_id))
        if not item or item.album_id != album_id:
            raise NotFound("Media item not found")
        return item

    async def delete_media(self, album_id: str, item: MediaItem, caller_id: str) -> None:
        """Delete a media item's blobs, then its record. Repeating the call is a no-op."""
        if item.uploader_id != caller_id:
            raise Unauthorized("Only the uploader can delete this item")

        await self.blobs.delete(item.path)
        if item.thumb_path:
            await self.blobs.delete(item.thumb_path)

        def _delete(session: Session) -> bool:
            record = session.get(MediaItem, item.id)
            if not record or record.album_id != album_id:
                return False
            session.delete(record)
            return True

        if await self.store.write(_delete):
            logger.info("Deleted media %s from album %s", item.id, album_id)
            self.store.publish(media_topic(album_id))

    async def is_member(self, album_id: str, user_id: str) -> bool:
        member = await self.store.read(lambda s: s.exec(
            select(AlbumMember.id).where(
                AlbumMember.album_id == album_id,
                AlbumMember.user_id == user_id,
            )
        ).first())
        return member is not None
