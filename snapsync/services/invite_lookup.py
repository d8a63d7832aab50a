"""Join-by-invite-code session state with debounced lookup.

Typing into the code field calls on_input() for every change. Once six
characters are present a lookup is scheduled after a short delay; any newer
input cancels the pending lookup, and results from a superseded lookup are
never applied.
"""

import asyncio
import logging
from typing import Optional

from snapsync.config import settings
from snapsync.errors import AlreadyMember, Cancelled, InvalidInput, NotFound, SnapSyncError
from snapsync.schemas.album import AlbumView
from snapsync.services.album_directory import AlbumDirectory
from snapsync.utils.security import normalize_invite_code

logger = logging.getLogger(__name__)


class InviteCodeLookup:
    def __init__(self, albums: AlbumDirectory, user_id: str, debounce: Optional[float] = None):
        self.albums = albums
        self.user_id = user_id
        self.debounce = settings.invite_lookup_debounce if debounce is None else debounce

        self.code = ""
        self.album: Optional[AlbumView] = None
        self.error: Optional[str] = None
        self.is_loading = False
        self.joined = False

        self._generation = 0
        self._pending: Optional[asyncio.Task] = None

    @property
    def is_complete(self) -> bool:
        return len(self.code) == settings.invite_code_length

    @property
    def already_member(self) -> bool:
        return self.album is not None and self.album.is_member(self.user_id)

    def on_input(self, text: str) -> Optional[asyncio.Task]:
        """Normalize input and (re)schedule the debounced lookup."""
        self.code = normalize_invite_code(text)[: settings.invite_code_length]
        self._cancel_pending()
        if not self.is_complete:
            self.album = None
            self.error = None
            return None
        self._pending = asyncio.create_task(self._debounced(self.code, self._generation))
        return self._pending

    def _cancel_pending(self) -> None:
        self._generation += 1
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None
        self.is_loading = False

    async def _debounced(self, code: str, generation: int) -> None:
        await asyncio.sleep(self.debounce)
        try:
            await self._run(code, generation)
        except SnapSyncError as e:
            logger.debug("Debounced lookup for %s ended: %s", code, e)

    async def lookup(self, code: Optional[str] = None) -> AlbumView:
        """Look a code up right away. Raises Cancelled if newer input supersedes it."""
        if code is not None:
            self.code = normalize_invite_code(code)[: settings.invite_code_length]
        self._cancel_pending()
        return await self._run(self.code, self._generation)

    async def _run(self, code: str, generation: int) -> AlbumView:
        self.is_loading = True
        self.error = None
        self.album = None
        try:
            album = await self.albums.find_by_invite_code(code)
        except (NotFound, InvalidInput) as e:
            if generation != self._generation:
                raise Cancelled("Lookup superseded by newer input") from e
            self.error = e.message
            self.is_loading = False
            raise
        except SnapSyncError as e:
            if generation != self._generation:
                raise Cancelled("Lookup superseded by newer input") from e
            logger.warning("Invite lookup for %s failed: %s", code, e)
            self.error = f"Album lookup failed: {e.message}"
            self.is_loading = False
            raise

        if generation != self._generation:
            raise Cancelled("Lookup superseded by newer input")
        self.album = album
        self.is_loading = False
        if album.is_member(self.user_id):
            self.error = AlreadyMember().message
        return album

    async def join(self) -> AlbumView:
        """Join the album found for the current code."""
        if self.album is None:
            await self.lookup()
        if self.already_member:
            self.error = AlreadyMember().message
            raise AlreadyMember()
        self.is_loading = True
        try:
            album = await self.albums.join_album(self.album, self.user_id)
        except SnapSyncError as e:
            self.error = e.message
            raise
        finally:
            self.is_loading = False
        self.album = album
        self.joined = True
        return album

    def reset(self) -> None:
        self._cancel_pending()
        self.code = ""
        self.album = None
        self.error = None
        self.is_loading = False
        self.joined = False
