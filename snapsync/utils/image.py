"""Media inspection: type detection, image validation, video thumbnails."""

import asyncio
import subprocess
import tempfile
from io import BytesIO
from pathlib import Path

from PIL import Image, UnidentifiedImageError

from snapsync.errors import InvalidMedia

# Supported MIME types
IMAGE_TYPES = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/webp": ".webp",
    "image/gif": ".gif",
}

VIDEO_TYPES = {
    "video/mp4": ".mp4",
    "video/quicktime": ".mov",
}

FTYP = b"ftyp"

# Frame offsets tried in order when grabbing a video thumbnail
THUMBNAIL_OFFSETS = (1.0, 0.5, 0.1)


def media_kind(content_type: str) -> str:
    """Map a MIME type onto 'image' or 'video'."""
    if content_type in VIDEO_TYPES:
        return "video"
    if content_type in IMAGE_TYPES:
        return "image"
    raise InvalidMedia(f"Unsupported file type: {content_type or 'unknown'}")


def is_valid_video_format(data: bytes) -> bool:
    """Check for an ISO base media (MP4/QuickTime) 'ftyp' box header."""
    return len(data) >= 8 and data[4:8] == FTYP


def verify_image(image_data: bytes) -> tuple[int, int]:
    """Validate image bytes with Pillow and return (width, height)."""
    try:
        with Image.open(BytesIO(image_data)) as img:
            size = img.size
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise InvalidMedia(f"Not a readable image: {e}") from e
    return size


def render_thumbnail(frame_data: bytes, max_side: int) -> bytes:
    """Downscale a frame to fit max_side x max_side and encode as JPEG."""
    img = Image.open(BytesIO(frame_data))
    img = _auto_orient(img)
    img.thumbnail((max_side, max_side), Image.LANCZOS)

    # Convert to RGB if needed (RGBA, P, etc.)
    if img.mode not in ("RGB", "L"):
        img = img.convert("RGB")

    out = BytesIO()
    img.save(out, "JPEG", quality=80)
    return out.getvalue()


def extract_video_frame(video_data: bytes, offset: float) -> bytes | None:
    """Grab a single PNG frame at offset seconds using FFmpeg.

    Returns None when FFmpeg produced nothing for that offset.
    """
    with tempfile.TemporaryDirectory() as tmp:
        src = Path(tmp) / "input.mp4"
        out = Path(tmp) / "frame.png"
        src.write_bytes(video_data)
        try:
            subprocess.run(
                [
                    "ffmpeg", "-ss", f"{offset:.2f}", "-i", str(src),
                    "-frames:v", "1", "-y", str(out),
                ],
                capture_output=True,
                timeout=30,
            )
        except FileNotFoundError as e:
            raise InvalidMedia("FFmpeg is not installed; cannot derive video thumbnail") from e
        except subprocess.TimeoutExpired:
            return None
        if out.exists() and out.stat().st_size > 0:
            return out.read_bytes()
    return None


class FFmpegThumbnailer:
    """Derive a JPEG thumbnail from video bytes."""

    def __init__(self, max_side: int = 400):
        self.max_side = max_side

    def _generate(self, video_data: bytes) -> bytes:
        for offset in THUMBNAIL_OFFSETS:
            frame = extract_video_frame(video_data, offset)
            if frame:
                return render_thumbnail(frame, self.max_side)
        raise InvalidMedia("Could not extract a thumbnail frame from video")

    async def __call__(self, video_data: bytes) -> bytes:
        return await asyncio.to_thread(self._generate, video_data)


def _auto_orient(img: Image.Image) -> Image.Image:
    """Auto-rotate image based on EXIF orientation tag."""
    orientation = img.getexif().get(0x0112)  # Orientation tag
    if orientation == 3:
        img = img.rotate(180, expand=True)
    elif orientation == 6:
        img = img.rotate(270, expand=True)
    elif orientation == 8:
        img = img.rotate(90, expand=True)
    return img
