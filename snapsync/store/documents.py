"""Document store access and live queries.

Reads and writes run in worker threads against SQLModel sessions. Live
queries are keyed by topic: after a write, services publish the topics it
touched and every listener on those topics re-runs its query and receives
the full result set again. Deliveries are marshalled onto the event loop
that opened the subscription and coalesce, so a burst of publishes results
in at most one extra re-query per listener.
"""

import asyncio
import logging
from typing import Any, Callable, Generic, Optional, TypeVar

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session

from snapsync.database import open_session
from snapsync.errors import TransientIO

logger = logging.getLogger(__name__)

T = TypeVar("T")

_CLOSED = object()


# --- Topics ---

def user_albums_topic(user_id: str) -> str:
    return f"users/{user_id}/albums"


def album_topic(album_id: str) -> str:
    return f"albums/{album_id}"


def media_topic(album_id: str) -> str:
    return f"albums/{album_id}/media"


def notifications_topic(user_id: str) -> str:
    return f"notifications/{user_id}"


class SnapshotStream(Generic[T]):
    """Async iterator of full, ordered snapshots.

    The subscription stays open until close() is called; nothing is released
    implicitly.
    """

    def __init__(self, topic: str):
        self.topic = topic
        self.latest: Optional[T] = None
        self._queue: asyncio.Queue = asyncio.Queue()
        self._listener: Optional["_Listener"] = None
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, snapshot: T) -> None:
        if self._closed:
            return
        self.latest = snapshot
        self._queue.put_nowait(snapshot)

    async def get(self) -> T:
        """Wait for the next snapshot."""
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self.get()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._listener is not None:
            self._listener.remove()
            self._listener = None
        self._queue.put_nowait(_CLOSED)

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        self.close()


class _Listener:
    def __init__(self, store: "DocumentStore", topic: str, query: Callable[[Session], Any],
                 callback: Callable[[Any], None], loop: asyncio.AbstractEventLoop):
        self.store = store
        self.topic = topic
        self.query = query
        self.callback = callback
        self.loop = loop
        self.active = True
        self.dirty = False
        self.last: Any = None
        self.task: Optional[asyncio.Task] = None

    def remove(self) -> None:
        self.store._remove(self)


class DocumentStore:
    """SQLModel-backed document store with live query support."""

    def __init__(self, engine: Engine):
        self._engine = engine
        self._listeners: dict[str, list[_Listener]] = {}

    # --- Reads & writes ---

    def _run(self, fn: Callable[[Session], T], commit: bool) -> T:
        try:
            with open_session(self._engine) as session:
                result = fn(session)
                if commit:
                    session.commit()
                return result
        except IntegrityError:
            raise
        except (SQLAlchemyError, OSError) as e:
            raise TransientIO(f"Document store failure: {e}") from e

    async def read(self, fn: Callable[[Session], T]) -> T:
        return await asyncio.to_thread(self._run, fn, False)

    async def write(self, fn: Callable[[Session], T]) -> T:
        """Run fn in one transaction. Either every change commits or none does."""
        return await asyncio.to_thread(self._run, fn, True)

    # --- Live queries ---

    def observe(self, topic: str, query: Callable[[Session], T]) -> SnapshotStream[T]:
        """Open a live query. Must be called from the consuming event loop."""
        loop = asyncio.get_running_loop()
        stream: SnapshotStream[T] = SnapshotStream(topic)
        listener = _Listener(self, topic, query, stream.push, loop)
        stream._listener = listener
        self._listeners.setdefault(topic, []).append(listener)
        self._schedule(listener)
        return stream

    def publish(self, *topics: str) -> None:
        """Signal that data behind the given topics changed."""
        for topic in topics:
            for listener in list(self._listeners.get(topic, ())):
                listener.loop.call_soon_threadsafe(self._schedule, listener)

    def listener_count(self, topic: str | None = None) -> int:
        if topic is not None:
            return len(self._listeners.get(topic, ()))
        return sum(len(v) for v in self._listeners.values())

    def _remove(self, listener: _Listener) -> None:
        listener.active = False
        listeners = self._listeners.get(listener.topic, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self._listeners.pop(listener.topic, None)
        if listener.task is not None and not listener.task.done():
            listener.task.cancel()

    def _schedule(self, listener: _Listener) -> None:
        if not listener.active:
            return
        listener.dirty = True
        if listener.task is None:
            listener.task = listener.loop.create_task(self._refresh(listener))

    async def _refresh(self, listener: _Listener) -> None:
        try:
            while listener.active and listener.dirty:
                listener.dirty = False
                try:
                    rows = await self.read(listener.query)
                except TransientIO as e:
                    logger.warning("Live query %s failed, re-delivering last snapshot: %s", listener.topic, e)
                    rows = listener.last if listener.last is not None else []
                if not listener.active:
                    return
                listener.last = rows
                listener.callback(rows)
        finally:
            listener.task = None


async def first_snapshot(stream: SnapshotStream[T]) -> T:
    """Wait for the initial snapshot of a live query, then close it."""
    async with stream:
        return await stream.get()
