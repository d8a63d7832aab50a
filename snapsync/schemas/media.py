"""Media upload and batch outcome schemas."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from pydantic import BaseModel


@dataclass
class MediaBlob:
    data: bytes
    content_type: str
    filename: Optional[str] = None


class ItemFailure(BaseModel):
    item: str  # media id, filename or index
    error: str


class BatchOutcome(BaseModel):
    """Aggregate result of a batch: full success, partial success or total failure."""

    total: int
    succeeded: list[str] = []
    failures: list[ItemFailure] = []

    @property
    def status(self) -> str:
        if not self.failures:
            return "success"
        if not self.succeeded:
            return "failed"
        return "partial"


class BatchOutcomeResponse(BaseModel):
    status: str
    total: int
    succeeded: list[str]
    failures: list[ItemFailure]

    @classmethod
    def from_outcome(cls, outcome: BatchOutcome) -> "BatchOutcomeResponse":
        return cls(
            status=outcome.status,
            total=outcome.total,
            succeeded=outcome.succeeded,
            failures=outcome.failures,
        )


@dataclass
class BulkUploadProgress:
    """Observable progress of a bulk upload.

    uploaded_count only grows and never exceeds total_count. Listeners are
    called after every change with the progress object itself.
    """

    total_count: int = 0
    uploaded_count: int = 0
    uploaded_ids: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    finished: bool = False
    _listeners: list[Callable[["BulkUploadProgress"], None]] = field(default_factory=list, repr=False)

    def subscribe(self, listener: Callable[["BulkUploadProgress"], None]) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def fraction(self) -> float:
        if not self.total_count:
            return 1.0
        return (self.uploaded_count + len(self.failures)) / self.total_count

    def record_success(self, media_id: str) -> None:
        if self.uploaded_count >= self.total_count:
            raise RuntimeError("uploaded_count would exceed total_count")
        self.uploaded_count += 1
        self.uploaded_ids.append(media_id)
        self._emit()

    def record_failure(self, item: str, error: str) -> None:
        self.failures.append(ItemFailure(item=item, error=error))
        self._emit()

    def finish(self) -> None:
        self.finished = True
        self._emit()

    def outcome(self) -> BatchOutcome:
        return BatchOutcome(
            total=self.total_count,
            succeeded=list(self.uploaded_ids),
            failures=list(self.failures),
        )

    def _emit(self) -> None:
        for listener in list(self._listeners):
            listener(self)


class MediaItemResponse(BaseModel):
    id: str
    album_id: str
    type: str
    uploader_id: str
    path: str
    thumb_path: Optional[str] = None
    url: str
    thumb_url: Optional[str] = None
    created_at: datetime


class BulkUploadResponse(BaseModel):
    total_count: int
    uploaded_count: int
    uploaded_ids: list[str]
    failures: list[ItemFailure]
    status: str
