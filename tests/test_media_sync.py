"""Media: upload pipeline, live listing, bulk progress and deletion."""

import pytest
import pytest_asyncio

from snapsync.config import settings
from snapsync.errors import InvalidMedia, NotFound, TransientIO, Unauthorized
from snapsync.models.media import MediaItem
from snapsync.models.notification import NotificationType
from snapsync.schemas.media import BulkUploadProgress, MediaBlob
from snapsync.services.media_sync import media_paths
from snapsync.store.documents import first_snapshot

pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def album(services):
    album = await services.albums.create_album("Party", "alice")
    return await services.albums.join_album(album, "bob")


async def _listing(services, album_id):
    return await first_snapshot(services.media.observe(album_id))


async def test_media_paths():
    assert media_paths("alb_1", "tok", "image", ".jpg") == ("albums/alb_1/tok/original.jpg", None)
    assert media_paths("alb_1", "tok", "video", ".mp4") == (
        "albums/alb_1/tok/video.mp4", "albums/alb_1/tok/thumb.jpg",
    )


async def test_upload_photo_stores_blob_and_notifies(services, album, jpeg_bytes):
    """Bob uploads a photo; Alice gets exactly one photo_added, Bob gets none."""
    item = await services.media.upload(MediaBlob(jpeg_bytes, "image/jpeg", "a.jpg"), album.id, "bob")

    assert item.type == "image"
    assert item.thumb_path is None
    assert item.path.endswith("/original.jpg")
    assert services.blobs.exists(item.path)

    listing = await _listing(services, album.id)
    assert [i.id for i in listing] == [item.id]

    alice = await first_snapshot(services.notifications.observe("alice"))
    photo_events = [n for n in alice if n.type == NotificationType.PHOTO_ADDED]
    assert len(photo_events) == 1
    assert photo_events[0].media_id == item.id
    bob = await first_snapshot(services.notifications.observe("bob"))
    assert bob == []


async def test_upload_video_gets_thumbnail(services, album, mp4_bytes, thumbnailer):
    item = await services.media.upload(MediaBlob(mp4_bytes, "video/mp4"), album.id, "alice")

    assert item.type == "video"
    assert item.path.endswith("/video.mp4")
    assert item.thumb_path.endswith("/thumb.jpg")
    assert services.blobs.exists(item.thumb_path)
    assert thumbnailer.calls == [len(mp4_bytes)]

    bob = await first_snapshot(services.notifications.observe("bob"))
    assert bob[0].type == NotificationType.VIDEO_ADDED


async def test_upload_requires_membership(services, album, png_bytes):
    with pytest.raises(Unauthorized):
        await services.media.upload(MediaBlob(png_bytes, "image/png"), album.id, "mallory")
    with pytest.raises(NotFound):
        await services.media.upload(MediaBlob(png_bytes, "image/png"), "alb_missing", "alice")


async def test_upload_rejects_bad_media(services, album, png_bytes, monkeypatch):
    with pytest.raises(InvalidMedia):
        await services.media.upload(MediaBlob(b"%PDF-1.4", "application/pdf"), album.id, "alice")
    with pytest.raises(InvalidMedia):
        await services.media.upload(MediaBlob(b"not an image", "image/jpeg"), album.id, "alice")
    with pytest.raises(InvalidMedia):
        await services.media.upload(MediaBlob(b"\x00" * 64, "video/mp4"), album.id, "alice")

    monkeypatch.setattr(settings, "max_video_bytes", 16)
    with pytest.raises(InvalidMedia):
        await services.media.upload(
            MediaBlob(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64, "video/mp4"), album.id, "alice",
        )

    assert await _listing(services, album.id) == []


async def test_failed_blob_write_leaves_no_record(services, album, png_bytes, monkeypatch):
    async def broken_put(data, path):
        raise TransientIO("disk full")

    monkeypatch.setattr(services.blobs, "put", broken_put)
    with pytest.raises(TransientIO):
        await services.media.upload(MediaBlob(png_bytes, "image/png"), album.id, "alice")
    assert await _listing(services, album.id) == []


async def test_listing_hides_incomplete_records(services, album):
    def _insert(session):
        session.add(MediaItem(album_id=album.id, path="albums/x/v.mp4", type="video", uploader_id="alice"))
        session.add(MediaItem(album_id=album.id, path="", type="image", uploader_id="alice"))

    await services.store.write(_insert)
    assert await _listing(services, album.id) == []


async def test_listing_is_newest_first_and_live(services, album, png_bytes, jpeg_bytes, next_snapshot):
    stream = services.media.observe(album.id)
    assert await stream.get() == []

    first = await services.media.upload(MediaBlob(png_bytes, "image/png"), album.id, "alice")
    second = await services.media.upload(MediaBlob(jpeg_bytes, "image/jpeg"), album.id, "bob")

    snapshot = await next_snapshot(stream, lambda s: len(s) == 2)
    assert [i.id for i in snapshot] == [second.id, first.id]
    stream.close()


async def test_bulk_upload_counts_and_failures(services, album, png_bytes, jpeg_bytes):
    progress = BulkUploadProgress()
    seen = []
    progress.subscribe(lambda p: seen.append((p.uploaded_count, len(p.failures))))

    blobs = [
        MediaBlob(png_bytes, "image/png", "one.png"),
        MediaBlob(b"broken", "image/jpeg", "two.jpg"),
        MediaBlob(jpeg_bytes, "image/jpeg", "three.jpg"),
    ]
    result = await services.media.bulk_upload(blobs, album.id, "alice", progress)

    assert result is progress
    assert progress.total_count == 3
    assert progress.uploaded_count == 2
    assert len(progress.uploaded_ids) == 2
    assert [f.item for f in progress.failures] == ["two.jpg"]
    assert progress.finished
    assert progress.fraction == 1.0
    assert progress.outcome().status == "partial"

    counts = [c for c, _ in seen]
    assert counts == sorted(counts)
    assert max(counts) <= progress.total_count
    assert len(await _listing(services, album.id)) == 2


async def test_progress_refuses_to_overcount():
    progress = BulkUploadProgress(total_count=1)
    progress.record_success("med_1")
    with pytest.raises(RuntimeError):
        progress.record_success("med_2")


async def test_delete_media_is_uploader_only(services, album, png_bytes):
    item = await services.media.upload(MediaBlob(png_bytes, "image/png"), album.id, "bob")

    with pytest.raises(Unauthorized):
        await services.media.delete_media(album.id, item, "alice")
    assert services.blobs.exists(item.path)


async def test_delete_media_is_idempotent(services, album, mp4_bytes):
    item = await services.media.upload(MediaBlob(mp4_bytes, "video/mp4"), album.id, "bob")

    await services.media.delete_media(album.id, item, "bob")
    await services.media.delete_media(album.id, item, "bob")

    assert not services.blobs.exists(item.path)
    assert not services.blobs.exists(item.thumb_path)
    assert await _listing(services, album.id) == []
    with pytest.raises(NotFound):
        await services.media.get_media(album.id, item.id)


async def test_download_url_points_at_blob_mount(services, album, png_bytes):
    item = await services.media.upload(MediaBlob(png_bytes, "image/png"), album.id, "alice")
    url = await services.media.download_url(item.path)
    assert url.endswith(f"/blobs/{item.path}")


async def test_profile_outage_does_not_fail_upload(services, album, png_bytes, monkeypatch):
    async def broken_display_name(user_id):
        raise TransientIO("profiles down")

    monkeypatch.setattr(services.profiles, "display_name", broken_display_name)
    progress = await services.media.bulk_upload(
        [MediaBlob(png_bytes, "image/png", "a.png")], album.id, "alice",
    )

    assert progress.uploaded_count == 1
    assert progress.failures == []
    assert len(await _listing(services, album.id)) == 1
    bob = await first_snapshot(services.notifications.observe("bob"))
    assert bob[0].message.startswith("alice ")


async def test_upload_survives_failed_notifications(services, album, png_bytes, monkeypatch):
    async def broken_fan_out(*args, **kwargs):
        raise TransientIO("notification store down")

    monkeypatch.setattr(services.notifications, "fan_out", broken_fan_out)
    item = await services.media.upload(MediaBlob(png_bytes, "image/png"), album.id, "alice")
    assert [i.id for i in await _listing(services, album.id)] == [item.id]


async def test_bulk_upload_records_unexpected_errors(services, album, png_bytes, mp4_bytes, monkeypatch):
    async def crashing_thumbnailer(video_data):
        raise ValueError("decoder crashed")

    monkeypatch.setattr(services.media, "thumbnailer", crashing_thumbnailer)
    blobs = [
        MediaBlob(mp4_bytes, "video/mp4", "clip.mp4"),
        MediaBlob(png_bytes, "image/png", "pic.png"),
    ]
    progress = await services.media.bulk_upload(blobs, album.id, "alice")

    assert progress.total_count == 2
    assert progress.uploaded_count == 1
    assert [(f.item, f.error) for f in progress.failures] == [("clip.mp4", "decoder crashed")]
    assert progress.uploaded_count + len(progress.failures) == progress.total_count
    assert progress.finished
