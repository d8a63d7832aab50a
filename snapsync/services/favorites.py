"""Per-user, per-album favorites persisted in the local key-value store."""

from snapsync.store.kv import LocalKeyValueStore


def favorites_key(album_id: str, user_id: str) -> str:
    return f"favorites_{album_id}_{user_id}"


class FavoriteStore:
    """Private favorites of one user in one album. Never leaves the device."""

    def __init__(self, kv: LocalKeyValueStore, album_id: str, user_id: str):
        self.kv = kv
        self.key = favorites_key(album_id, user_id)
        self._ids: set[str] = set(kv.get(self.key, []) or [])

    @property
    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    def __contains__(self, media_id: str) -> bool:
        return media_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, media_ids) -> None:
        before = len(self._ids)
        self._ids.update(media_ids)
        if len(self._ids) != before:
            self._save()

    def remove(self, media_ids) -> None:
        before = len(self._ids)
        self._ids.difference_update(media_ids)
        if len(self._ids) != before:
            self._save()

    def _save(self) -> None:
        if self._ids:
            self.kv.set(self.key, sorted(self._ids))
        else:
            self.kv.delete(self.key)
