"""Blob storage: path-addressed media bytes."""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

from snapsync.errors import InvalidInput, TransientIO

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
}


class BlobStore(Protocol):
    async def put(self, data: bytes, path: str) -> None: ...

    async def get_download_url(self, path: str) -> str: ...

    async def delete(self, path: str) -> None: ...


def guess_content_type(path: str) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), "application/octet-stream")


class LocalBlobStore:
    """Blob store writing under a root directory.

    Structure: <root>/albums/<album_id>/<token>/<name>
    Download URLs point at the /blobs static mount.
    """

    def __init__(self, root: Path, base_url: str):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def _resolve(self, path: str) -> Path:
        full = (self.root / path).resolve()
        if not full.is_relative_to(self.root.resolve()):
            raise InvalidInput(f"Blob path escapes storage root: {path}")
        return full

    def _write(self, data: bytes, path: str) -> None:
        full = self._resolve(path)
        full.parent.mkdir(parents=True, exist_ok=True)
        full.write_bytes(data)

    def _unlink(self, path: str) -> None:
        full = self._resolve(path)
        full.unlink(missing_ok=True)
        # Drop the per-item directory once it is empty
        parent = full.parent
        if parent != self.root.resolve() and parent.exists() and not any(parent.iterdir()):
            parent.rmdir()

    async def put(self, data: bytes, path: str) -> None:
        try:
            await asyncio.to_thread(self._write, data, path)
        except OSError as e:
            raise TransientIO(f"Blob write failed for {path}: {e}") from e
        logger.debug("Stored blob %s (%d bytes, %s)", path, len(data), guess_content_type(path))

    async def get_download_url(self, path: str) -> str:
        self._resolve(path)
        return f"{self.base_url}/blobs/{path}"

    async def delete(self, path: str) -> None:
        """Remove a blob. Missing blobs are ignored."""
        try:
            await asyncio.to_thread(self._unlink, path)
        except OSError as e:
            raise TransientIO(f"Blob delete failed for {path}: {e}") from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()
