"""Session-scoped view state for one album: filter, favorites and multi-select.

All state here is owned by the thread running the event loop that created the
overlay. Live media snapshots are applied on that loop, and every mutation
checks it is running there.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Iterable, Optional

from snapsync.errors import SnapSyncError
from snapsync.models.media import MediaItem
from snapsync.schemas.media import BatchOutcome, ItemFailure
from snapsync.services.favorites import FavoriteStore
from snapsync.services.media_sync import MediaSyncEngine
from snapsync.store.documents import SnapshotStream

logger = logging.getLogger(__name__)


class MediaFilter(str, Enum):
    ALL = "all"
    PHOTOS = "photos"
    VIDEOS = "videos"
    FAVORITES = "favorites"


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    FAVORITES = "favorites"


@dataclass
class SelectionState:
    selecting: bool = False
    ids: set[str] = field(default_factory=set)


class ClientStateOverlay:
    def __init__(
        self,
        media: MediaSyncEngine,
        album_id: str,
        user_id: str,
        favorites: FavoriteStore,
    ):
        self.media = media
        self.album_id = album_id
        self.user_id = user_id
        self.favorites = favorites

        self.items: list[MediaItem] = []
        self.visible: list[MediaItem] = []
        self.filter = MediaFilter.ALL
        self.selection = SelectionState()

        # Transient UI flags
        self.is_deleting = False
        self.last_error: Optional[str] = None

        self._owner_thread = threading.get_ident()
        self._listeners: list[Callable[["ClientStateOverlay"], None]] = []
        self._stream: Optional[SnapshotStream[list[MediaItem]]] = None
        self._task: Optional[asyncio.Task] = None

    def _check_thread(self) -> None:
        if threading.get_ident() != self._owner_thread:
            raise RuntimeError("ClientStateOverlay can only be mutated from its owner thread")

    def add_listener(self, listener: Callable[["ClientStateOverlay"], None]) -> None:
        """Called once after every recomputation of the visible list."""
        self._listeners.append(listener)

    # --- Lifecycle ---

    async def start(self) -> None:
        self._check_thread()
        if self._stream is not None:
            return
        self._stream = self.media.observe(self.album_id)
        self._task = asyncio.create_task(self._consume(self._stream))

    async def _consume(self, stream: SnapshotStream[list[MediaItem]]) -> None:
        async for snapshot in stream:
            self.apply_snapshot(snapshot)

    async def stop(self) -> None:
        if self._stream is None:
            return
        self._stream.close()
        if self._task is not None:
            await self._task
        self._stream = None
        self._task = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc):
        await self.stop()

    # --- Snapshots & filtering ---

    def apply_snapshot(self, items: Iterable[MediaItem]) -> None:
        """Take a new media snapshot and reconcile selection against it."""
        self._check_thread()
        self.items = list(items)
        self._recompute()

    def set_filter(self, media_filter: MediaFilter) -> None:
        self._check_thread()
        self.filter = MediaFilter(media_filter)
        self._recompute()

    def _recompute(self) -> None:
        if self.filter == MediaFilter.PHOTOS:
            visible = [i for i in self.items if i.type == "image"]
        elif self.filter == MediaFilter.VIDEOS:
            visible = [i for i in self.items if i.type == "video"]
        elif self.filter == MediaFilter.FAVORITES:
            visible = [i for i in self.items if i.id in self.favorites]
        else:
            visible = list(self.items)
        self.visible = visible

        # Selected ids must stay a subset of what is visible
        had_selection = bool(self.selection.ids)
        self.selection.ids &= {i.id for i in visible}
        if had_selection and not self.selection.ids:
            self.selection.selecting = False

        for listener in list(self._listeners):
            listener(self)

    # --- Favorites ---

    def is_favorite(self, media_id: str) -> bool:
        return media_id in self.favorites

    def toggle_favorite(self, media_id: str) -> None:
        self._check_thread()
        if media_id in self.favorites:
            self.favorites.remove([media_id])
        else:
            self.favorites.add([media_id])
        self._recompute()

    def add_favorites(self, media_ids: Iterable[str]) -> None:
        self._check_thread()
        self.favorites.add(media_ids)
        self._recompute()

    def remove_favorites(self, media_ids: Iterable[str]) -> None:
        self._check_thread()
        self.favorites.remove(media_ids)
        self._recompute()

    def bulk_favorite_toggle(self, media_ids: Iterable[str]) -> None:
        """Toggle each id, then recompute the view once."""
        self._check_thread()
        to_add, to_remove = [], []
        for media_id in dict.fromkeys(media_ids):
            (to_remove if media_id in self.favorites else to_add).append(media_id)
        self.favorites.add(to_add)
        self.favorites.remove(to_remove)
        self._recompute()

    def bulk_favorite_remove(self, media_ids: Iterable[str]) -> None:
        self.remove_favorites(media_ids)

    # --- Selection ---

    @property
    def is_selecting(self) -> bool:
        return self.selection.selecting

    @property
    def selected_ids(self) -> frozenset[str]:
        return frozenset(self.selection.ids)

    def enter_selection_mode(self) -> None:
        self._check_thread()
        self.selection.selecting = True

    def cancel_selection(self) -> None:
        self._check_thread()
        self.selection.selecting = False
        self.selection.ids.clear()

    def toggle_selection(self, media_id: str) -> None:
        self._check_thread()
        if media_id in self.selection.ids:
            self.selection.ids.discard(media_id)
            if not self.selection.ids:
                self.selection.selecting = False
            return
        if media_id not in {i.id for i in self.visible}:
            return
        self.selection.selecting = True
        self.selection.ids.add(media_id)

    def select_all_visible(self) -> None:
        self._check_thread()
        self.selection.ids = {i.id for i in self.visible}
        self.selection.selecting = bool(self.selection.ids)

    @property
    def can_delete_selection(self) -> bool:
        """True when something is selected and all of it was uploaded by this user."""
        selected = [i for i in self.visible if i.id in self.selection.ids]
        return bool(selected) and all(i.uploader_id == self.user_id for i in selected)

    async def bulk_delete(self, media_ids: Optional[Iterable[str]] = None) -> BatchOutcome:
        """Delete the caller's own items among media_ids (default: the selection).

        Items uploaded by someone else are skipped without error. A failed
        delete is recorded and the rest continue.
        """
        self._check_thread()
        requested = list(media_ids) if media_ids is not None else list(self.selection.ids)
        by_id = {i.id: i for i in self.items}
        own = [
            by_id[media_id] for media_id in dict.fromkeys(requested)
            if media_id in by_id and by_id[media_id].uploader_id == self.user_id
        ]

        outcome = BatchOutcome(total=len(own))
        self.is_deleting = True
        try:
            for item in own:
                try:
                    await self.media.delete_media(self.album_id, item, self.user_id)
                except SnapSyncError as e:
                    logger.warning("Delete of %s failed: %s", item.id, e)
                    outcome.failures.append(ItemFailure(item=item.id, error=str(e)))
                    continue
                outcome.succeeded.append(item.id)
        finally:
            self.is_deleting = False

        self._check_thread()
        done = set(outcome.succeeded)
        self.favorites.remove(done)
        self.selection.ids -= done
        if not self.selection.ids:
            self.selection.selecting = False
        self.last_error = (
            f"{len(outcome.failures)} of {outcome.total} items could not be deleted"
            if outcome.failures else None
        )
        self._recompute()
        return outcome

    # --- Derived values ---

    @property
    def photos_count(self) -> int:
        return sum(1 for i in self.items if i.type == "image")

    @property
    def videos_count(self) -> int:
        return sum(1 for i in self.items if i.type == "video")

    @property
    def favorites_count(self) -> int:
        return sum(1 for i in self.items if i.id in self.favorites)

    def sorted_items(self, order: SortOrder = SortOrder.NEWEST) -> list[MediaItem]:
        if order == SortOrder.OLDEST:
            return sorted(self.visible, key=lambda i: i.created_at)
        newest = sorted(self.visible, key=lambda i: i.created_at, reverse=True)
        if order == SortOrder.FAVORITES:
            # stable sort keeps newest-first inside each group
            return sorted(newest, key=lambda i: i.id not in self.favorites)
        return newest
