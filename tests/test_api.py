"""HTTP and WebSocket integration tests through the FastAPI app."""

import itertools
import time

import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from snapsync.main import app
from snapsync.utils.security import create_access_token


_album_seq = itertools.count(1)


def auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user_id, f'{user_id}@example.com')}"}


@pytest.fixture(scope="module")
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def shared_album(client):
    """Album owned by owner-<n>, joined by guest-<n>."""
    n = next(_album_seq)
    owner, guest = f"owner-{n}", f"guest-{n}"
    r = client.post("/api/v1/albums", json={"title": "Holiday"}, headers=auth(owner))
    assert r.status_code == 201, r.text
    album = r.json()
    r = client.post("/api/v1/albums/join", json={"invite_code": album["invite_code"]}, headers=auth(guest))
    assert r.status_code == 200, r.text
    return r.json(), owner, guest


def test_root_and_health(client):
    assert client.get("/").json()["status"] == "running"
    assert client.get("/api/v1/health").json() == {"status": "ok"}


def test_requires_token(client):
    assert client.get("/api/v1/albums").status_code in (401, 403)
    r = client.get("/api/v1/albums", headers={"Authorization": "Bearer nope"})
    assert r.status_code == 401


def test_album_lifecycle(client):
    r = client.put(
        "/api/v1/users/me",
        json={"email": "ann@example.com", "display_name": "Ann"},
        headers=auth("ann"),
    )
    assert r.status_code == 200
    assert r.json()["display_name"] == "Ann"

    r = client.post("/api/v1/albums", json={"title": "Road trip"}, headers=auth("ann"))
    assert r.status_code == 201
    album = r.json()
    assert album["owner_id"] == "ann"
    assert album["members"] == ["ann"]
    assert len(album["invite_code"]) == 6

    r = client.get(f"/api/v1/albums/invite/{album['invite_code'].lower()}", headers=auth("ben"))
    assert r.status_code == 200
    assert r.json()["id"] == album["id"]

    r = client.post("/api/v1/albums/join", json={"invite_code": album["invite_code"]}, headers=auth("ben"))
    assert r.status_code == 200
    assert r.json()["members"] == ["ann", "ben"]

    r = client.post("/api/v1/albums/join", json={"invite_code": album["invite_code"]}, headers=auth("ben"))
    assert r.status_code == 409
    assert r.json()["error"] == "already_member"

    r = client.get("/api/v1/albums", headers=auth("ben"))
    assert [a["id"] for a in r.json()] == [album["id"]]

    r = client.patch(f"/api/v1/albums/{album['id']}", json={"title": "Stolen"}, headers=auth("ben"))
    assert r.status_code == 403

    r = client.patch(f"/api/v1/albums/{album['id']}", json={"title": "Coast"}, headers=auth("ann"))
    assert r.json()["title"] == "Coast"

    r = client.post(
        f"/api/v1/albums/{album['id']}/transfer", json={"new_owner_id": "ben"}, headers=auth("ann"),
    )
    assert r.json()["owner_id"] == "ben"

    r = client.get("/api/v1/notifications", headers=auth("ann"))
    body = r.json()
    assert [n["type"] for n in body["notifications"]] == ["member_joined"]
    assert body["unread_count"] == 1


def test_invite_code_errors(client):
    r = client.get("/api/v1/albums/invite/ab", headers=auth("ann"))
    assert r.status_code == 422
    r = client.get("/api/v1/albums/invite/QQQQQQ", headers=auth("ann"))
    assert r.status_code == 404
    assert r.json()["error"] == "not_found"


def test_album_hidden_from_non_members(client, shared_album):
    album, owner, guest = shared_album
    path = f"/api/v1/albums/{album['id']}"

    r = client.get(path, headers=auth("stranger"))
    assert r.status_code == 403
    assert "invite_code" not in r.json()

    # Joining needs the invite code; there is no join-by-id route
    r = client.post(f"{path}/join", headers=auth("stranger"))
    assert r.status_code in (404, 405)
    assert client.get(path, headers=auth(guest)).json()["members"] == [owner, guest]


def test_patch_title_and_cover_sends_one_notification(client, shared_album):
    album, owner, guest = shared_album
    r = client.patch(
        f"/api/v1/albums/{album['id']}",
        json={"title": "Winter", "cover_path": "albums/x/cover.jpg"},
        headers=auth(owner),
    )
    assert r.status_code == 200
    assert r.json()["title"] == "Winter"
    assert r.json()["cover_path"] == "albums/x/cover.jpg"

    inbox = client.get("/api/v1/notifications", headers=auth(guest)).json()
    updates = [n for n in inbox["notifications"] if n["type"] == "album_updated"]
    assert len(updates) == 1
    assert "renamed the album and changed the cover photo" in updates[0]["message"]

    r = client.patch(f"/api/v1/albums/{album['id']}", json={}, headers=auth(owner))
    assert r.status_code == 422


def test_invite_user(client, shared_album):
    album, owner, _ = shared_album
    r = client.post(f"/api/v1/albums/{album['id']}/invite", json={"user_id": "friend"}, headers=auth(owner))
    assert r.status_code == 204

    inbox = client.get("/api/v1/notifications", headers=auth("friend")).json()
    assert inbox["notifications"][0]["type"] == "album_invite"
    assert album["invite_code"] in inbox["notifications"][0]["message"]


def test_media_upload_list_delete(client, shared_album, png_bytes):
    album, owner, guest = shared_album
    base = f"/api/v1/albums/{album['id']}/media"

    r = client.post(base, files={"file": ("a.png", png_bytes, "image/png")}, headers=auth(guest))
    assert r.status_code == 201, r.text
    item = r.json()
    assert item["type"] == "image"
    assert item["uploader_id"] == guest
    assert item["url"].endswith(item["path"])

    r = client.get(base, headers=auth(owner))
    assert [m["id"] for m in r.json()] == [item["id"]]

    assert client.get(base, headers=auth("outsider")).status_code == 403

    blob = client.get(f"/blobs/{item['path']}")
    assert blob.status_code == 200
    assert blob.content == png_bytes

    inbox = client.get("/api/v1/notifications", headers=auth(owner)).json()
    assert "photo_added" in [n["type"] for n in inbox["notifications"]]

    r = client.delete(f"{base}/{item['id']}", headers=auth(owner))
    assert r.status_code == 403
    r = client.delete(f"{base}/{item['id']}", headers=auth(guest))
    assert r.status_code == 204
    assert client.get(base, headers=auth(owner)).json() == []
    r = client.delete(f"{base}/{item['id']}", headers=auth(guest))
    assert r.status_code == 204


def test_media_rejects_unsupported_type(client, shared_album):
    album, owner, _ = shared_album
    r = client.post(
        f"/api/v1/albums/{album['id']}/media",
        files={"file": ("notes.txt", b"hello", "text/plain")},
        headers=auth(owner),
    )
    assert r.status_code == 422
    assert r.json()["error"] == "invalid_media"


def test_bulk_upload_partial(client, shared_album, png_bytes, jpeg_bytes):
    album, owner, _ = shared_album
    r = client.post(
        f"/api/v1/albums/{album['id']}/media/bulk",
        files=[
            ("files", ("a.png", png_bytes, "image/png")),
            ("files", ("b.jpg", b"garbage", "image/jpeg")),
            ("files", ("c.jpg", jpeg_bytes, "image/jpeg")),
        ],
        headers=auth(owner),
    )
    assert r.status_code == 200, r.text
    body = r.json()
    assert body["total_count"] == 3
    assert body["uploaded_count"] == 2
    assert body["status"] == "partial"
    assert [f["item"] for f in body["failures"]] == ["b.jpg"]


def test_notification_read_state(client, shared_album):
    album, owner, _ = shared_album
    inbox = client.get("/api/v1/notifications", headers=auth(owner)).json()
    first = inbox["notifications"][0]

    r = client.post(f"/api/v1/notifications/{first['id']}/read", headers=auth("someone-else"))
    assert r.status_code == 403
    r = client.post(f"/api/v1/notifications/{first['id']}/read", headers=auth(owner))
    assert r.status_code == 204

    r = client.post("/api/v1/notifications/read-all", headers=auth(owner))
    assert r.json()["status"] == "success"
    assert client.get("/api/v1/notifications", headers=auth(owner)).json()["unread_count"] == 0

    r = client.delete(f"/api/v1/notifications/{first['id']}", headers=auth(owner))
    assert r.status_code == 204
    r = client.delete(f"/api/v1/notifications/{first['id']}", headers=auth(owner))
    assert r.status_code == 204


def test_websocket_rejects_bad_token(client):
    with pytest.raises(WebSocketDisconnect):
        with client.websocket_connect("/ws?token=bad") as ws:
            ws.receive_json()


def test_websocket_snapshots(client, shared_album, png_bytes):
    album, owner, guest = shared_album
    token = create_access_token(owner)

    with client.websocket_connect(f"/ws?token={token}") as ws:
        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}

        ws.send_json({"type": "subscribe", "channel": "media", "album_id": album["id"]})
        first = ws.receive_json()
        assert first["type"] == "snapshot"
        assert first["channel"] == "media"
        assert first["album_id"] == album["id"]
        assert first["items"] == []

        r = client.post(
            f"/api/v1/albums/{album['id']}/media",
            files={"file": ("a.png", png_bytes, "image/png")},
            headers=auth(guest),
        )
        media_id = r.json()["id"]

        for _ in range(5):
            message = ws.receive_json()
            if message["channel"] == "media" and message["items"]:
                break
        assert [m["id"] for m in message["items"]] == [media_id]

        ws.send_json({"type": "unsubscribe", "channel": "media", "album_id": album["id"]})
        ws.send_json({"type": "subscribe", "channel": "bogus"})
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["error"] == "invalid_input"

        ws.send_json({"type": "subscribe", "channel": "media", "album_id": "alb_missing"})
        assert ws.receive_json()["error"] == "unauthorized"

    store = app.state.services.store
    for _ in range(100):
        if store.listener_count() == 0 and app.state.connections.connection_count == 0:
            break
        time.sleep(0.01)
    assert store.listener_count() == 0
    assert app.state.connections.connection_count == 0
