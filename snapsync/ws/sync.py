"""WebSocket handler for live album, media and notification snapshots."""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from fastapi import HTTPException, WebSocket, WebSocketDisconnect

from snapsync.api.deps import user_id_from_token
from snapsync.errors import InvalidInput, SnapSyncError, Unauthorized
from snapsync.services.registry import Services
from snapsync.store.documents import SnapshotStream

logger = logging.getLogger(__name__)

CHANNELS = ("albums", "media", "notifications")


def _serialize(item: Any) -> dict:
    return item.model_dump(mode="json")


class SyncSession:
    """Live subscriptions opened by one socket. Every stream is closed on disconnect."""

    def __init__(self, ws: WebSocket, services: Services, user_id: str):
        self.ws = ws
        self.services = services
        self.user_id = user_id
        self._subscriptions: Dict[tuple[str, Optional[str]], tuple[SnapshotStream, asyncio.Task]] = {}
        self._send_lock = asyncio.Lock()

    async def send(self, message: dict) -> None:
        async with self._send_lock:
            await self.ws.send_json(message)

    async def _open(self, channel: str, album_id: Optional[str]) -> SnapshotStream:
        if channel not in CHANNELS:
            raise InvalidInput(f"Unknown channel: {channel}")
        if channel == "albums":
            return self.services.albums.observe_my_albums(self.user_id)
        if channel == "notifications":
            return self.services.notifications.observe(self.user_id)
        if not album_id:
            raise InvalidInput("album_id is required for the media channel")
        if not await self.services.media.is_member(album_id, self.user_id):
            raise Unauthorized("Only album members can watch media")
        return self.services.media.observe(album_id)

    async def subscribe(self, channel: str, album_id: Optional[str] = None) -> None:
        key = (channel, album_id if channel == "media" else None)
        if key in self._subscriptions:
            return
        stream = await self._open(channel, album_id)
        task = asyncio.create_task(self._forward(channel, key[1], stream))
        self._subscriptions[key] = (stream, task)

    async def _forward(self, channel: str, album_id: Optional[str], stream: SnapshotStream) -> None:
        async for snapshot in stream:
            message: dict = {"type": "snapshot", "channel": channel}
            if album_id:
                message["album_id"] = album_id
            message["items"] = [_serialize(i) for i in snapshot]
            try:
                await self.send(message)
            except (WebSocketDisconnect, RuntimeError) as e:
                logger.debug("Dropping %s snapshot for closed socket: %s", channel, e)
                stream.close()

    async def unsubscribe(self, channel: str, album_id: Optional[str] = None) -> None:
        key = (channel, album_id if channel == "media" else None)
        entry = self._subscriptions.pop(key, None)
        if entry is None:
            return
        stream, task = entry
        stream.close()
        await task

    async def close_all(self) -> None:
        for key in list(self._subscriptions):
            await self.unsubscribe(*key)


class ConnectionManager:
    """Tracks open sync sessions per user."""

    def __init__(self):
        self._sessions: Dict[str, list[SyncSession]] = {}  # user_id -> sessions

    async def connect(self, session: SyncSession) -> None:
        await session.ws.accept()
        self._sessions.setdefault(session.user_id, []).append(session)

    async def disconnect(self, session: SyncSession) -> None:
        await session.close_all()
        sessions = self._sessions.get(session.user_id, [])
        if session in sessions:
            sessions.remove(session)
        if not sessions:
            self._sessions.pop(session.user_id, None)

    @property
    def connection_count(self) -> int:
        return sum(len(v) for v in self._sessions.values())


async def _handle(session: SyncSession, msg: dict) -> None:
    msg_type = msg.get("type", "")
    if msg_type == "ping":
        await session.send({"type": "pong"})
    elif msg_type in ("subscribe", "unsubscribe"):
        channel = msg.get("channel", "")
        album_id = msg.get("album_id")
        try:
            if msg_type == "subscribe":
                await session.subscribe(channel, album_id)
            else:
                await session.unsubscribe(channel, album_id)
        except SnapSyncError as e:
            await session.send({"type": "error", "error": e.code, "message": e.message})
    else:
        await session.send({"type": "error", "message": f"Unknown type: {msg_type}"})


async def websocket_sync(ws: WebSocket, services: Services, manager: ConnectionManager,
                         token: str | None = None):
    """WebSocket endpoint for live snapshots."""
    # Authenticate
    if not token:
        await ws.close(code=4001, reason="Missing token")
        return
    try:
        user_id = user_id_from_token(token)
    except HTTPException:
        await ws.close(code=4001, reason="Invalid token")
        return

    session = SyncSession(ws, services, user_id)
    await manager.connect(session)

    try:
        while True:
            data = await ws.receive_text()
            try:
                msg = json.loads(data)
            except json.JSONDecodeError:
                await session.send({"type": "error", "message": "Invalid JSON"})
                continue
            if not isinstance(msg, dict):
                await session.send({"type": "error", "message": "Invalid message"})
                continue
            await _handle(session, msg)
    except WebSocketDisconnect:
        logger.debug("Sync socket for %s disconnected", user_id)
    finally:
        await manager.disconnect(session)
