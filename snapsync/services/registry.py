"""Wiring of the store collaborators and services for one running app."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from sqlalchemy.engine import Engine

from snapsync.config import settings
from snapsync.services.album_directory import AlbumDirectory
from snapsync.services.favorites import FavoriteStore
from snapsync.services.invite_lookup import InviteCodeLookup
from snapsync.services.media_sync import MediaSyncEngine, Thumbnailer
from snapsync.services.notification_hub import NotificationFeed, NotificationHub
from snapsync.services.overlay import ClientStateOverlay
from snapsync.services.profiles import ProfileDirectory
from snapsync.store.blobs import BlobStore, LocalBlobStore
from snapsync.store.documents import DocumentStore
from snapsync.store.kv import LocalKeyValueStore
from snapsync.utils.image import FFmpegThumbnailer


@dataclass
class Services:
    store: DocumentStore
    blobs: BlobStore
    kv: LocalKeyValueStore
    profiles: ProfileDirectory
    notifications: NotificationHub
    albums: AlbumDirectory
    media: MediaSyncEngine

    @classmethod
    def build(
        cls,
        engine: Engine,
        storage_dir: Optional[Path] = None,
        kv_path: Optional[Path] = None,
        blobs: Optional[BlobStore] = None,
        thumbnailer: Optional[Thumbnailer] = None,
    ) -> "Services":
        store = DocumentStore(engine)
        blobs = blobs or LocalBlobStore(storage_dir or settings.storage_dir, settings.public_base_url)
        kv = LocalKeyValueStore(kv_path or settings.kv_path)
        profiles = ProfileDirectory(store)
        notifications = NotificationHub(store, profiles)
        albums = AlbumDirectory(store, notifications)
        media = MediaSyncEngine(
            store,
            blobs,
            albums,
            notifications,
            thumbnailer or FFmpegThumbnailer(settings.thumbnail_size),
        )
        return cls(
            store=store,
            blobs=blobs,
            kv=kv,
            profiles=profiles,
            notifications=notifications,
            albums=albums,
            media=media,
        )

    # --- Session-scoped objects ---

    def overlay(self, album_id: str, user_id: str) -> ClientStateOverlay:
        favorites = FavoriteStore(self.kv, album_id, user_id)
        return ClientStateOverlay(self.media, album_id, user_id, favorites)

    def invite_lookup(self, user_id: str) -> InviteCodeLookup:
        return InviteCodeLookup(self.albums, user_id)

    def notification_feed(self, user_id: str) -> NotificationFeed:
        return NotificationFeed(self.notifications, user_id)
