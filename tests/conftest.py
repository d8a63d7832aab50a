"""Shared fixtures. Environment is pointed at temp dirs before the package is imported."""

import asyncio
import os
import tempfile
from io import BytesIO

# Setup environment for testing
_ROOT = tempfile.mkdtemp(prefix="snapsync-test-")
os.environ["SNAPSYNC_DATA_DIR"] = os.path.join(_ROOT, "data")
os.environ["SNAPSYNC_STORAGE_DIR"] = os.path.join(_ROOT, "blobs")
os.environ["SNAPSYNC_DB_PATH"] = os.path.join(_ROOT, "data", "test.db")
os.environ["SNAPSYNC_KV_PATH"] = os.path.join(_ROOT, "data", "local_state.json")
os.environ["SNAPSYNC_JWT_SECRET"] = "test-secret"
os.environ["SNAPSYNC_INVITE_LOOKUP_DEBOUNCE"] = "0.01"

import pytest  # noqa: E402
from PIL import Image  # noqa: E402

from snapsync.database import create_db_engine, init_db  # noqa: E402
from snapsync.services.registry import Services  # noqa: E402
from snapsync.store.documents import DocumentStore  # noqa: E402


def _image_bytes(fmt: str, color=(200, 40, 40)) -> bytes:
    out = BytesIO()
    Image.new("RGB", (32, 24), color).save(out, fmt)
    return out.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return _image_bytes("PNG")


@pytest.fixture
def jpeg_bytes() -> bytes:
    return _image_bytes("JPEG", (10, 120, 200))


@pytest.fixture
def mp4_bytes() -> bytes:
    # Minimal ISO-BMFF header: box size + 'ftyp' + brand
    return b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 256


@pytest.fixture
def thumbnailer():
    calls = []

    async def fake_thumbnailer(video_data: bytes) -> bytes:
        calls.append(len(video_data))
        return _image_bytes("JPEG", (0, 0, 0))

    fake_thumbnailer.calls = calls
    return fake_thumbnailer


@pytest.fixture
def engine(tmp_path):
    engine = create_db_engine(tmp_path / "test.db")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine) -> DocumentStore:
    return DocumentStore(engine)


@pytest.fixture
def services(engine, tmp_path, thumbnailer) -> Services:
    return Services.build(
        engine,
        storage_dir=tmp_path / "blobs",
        kv_path=tmp_path / "local_state.json",
        thumbnailer=thumbnailer,
    )


@pytest.fixture
def eventually():
    """Poll an (optionally async) predicate until it is truthy."""

    async def _eventually(predicate, timeout: float = 3.0, interval: float = 0.01):
        deadline = asyncio.get_running_loop().time() + timeout
        while True:
            result = predicate()
            if asyncio.iscoroutine(result):
                result = await result
            if result:
                return result
            if asyncio.get_running_loop().time() > deadline:
                raise AssertionError("condition not met in time")
            await asyncio.sleep(interval)

    return _eventually


@pytest.fixture
def next_snapshot():
    """Read snapshots from a stream until one satisfies the predicate."""

    async def _next(stream, predicate=lambda s: True, timeout: float = 3.0):
        async def _wait():
            while True:
                snapshot = await stream.get()
                if predicate(snapshot):
                    return snapshot

        return await asyncio.wait_for(_wait(), timeout)

    return _next
