"""Album media endpoints: listing, upload and deletion."""

import logging

from fastapi import APIRouter, Depends, File, UploadFile, status

from snapsync.api.deps import get_current_user_id, get_services
from snapsync.errors import InvalidInput, NotFound, Unauthorized
from snapsync.models.media import MediaItem
from snapsync.schemas.media import BulkUploadResponse, MediaBlob, MediaItemResponse
from snapsync.services.registry import Services
from snapsync.store.documents import first_snapshot

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/albums/{album_id}/media", tags=["media"])


async def _to_response(item: MediaItem, services: Services) -> MediaItemResponse:
    return MediaItemResponse(
        id=item.id,
        album_id=item.album_id,
        type=item.type,
        uploader_id=item.uploader_id,
        path=item.path,
        thumb_path=item.thumb_path,
        url=await services.media.download_url(item.path),
        thumb_url=await services.media.download_url(item.thumb_path) if item.thumb_path else None,
        created_at=item.created_at,
    )


async def _to_blob(file: UploadFile) -> MediaBlob:
    return MediaBlob(
        data=await file.read(),
        content_type=file.content_type or "application/octet-stream",
        filename=file.filename,
    )


async def _require_member(services: Services, album_id: str, user_id: str) -> None:
    await services.albums.get_album(album_id)
    if not await services.media.is_member(album_id, user_id):
        raise Unauthorized("Only album members can view media")


@router.get("", response_model=list[MediaItemResponse])
async def list_media(
    album_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Complete media records of the album, newest first."""
    await _require_member(services, album_id, user_id)
    items = await first_snapshot(services.media.observe(album_id))
    return [await _to_response(i, services) for i in items]


@router.post("", response_model=MediaItemResponse, status_code=201)
async def upload_media(
    album_id: str,
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Upload one photo or video (multipart/form-data)."""
    item = await services.media.upload(await _to_blob(file), album_id, user_id)
    return await _to_response(item, services)


@router.post("/bulk", response_model=BulkUploadResponse)
async def bulk_upload_media(
    album_id: str,
    files: list[UploadFile] = File(...),
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Upload many files; failed items are reported, the rest are kept."""
    if not files:
        raise InvalidInput("No files uploaded")
    blobs = [await _to_blob(f) for f in files]
    progress = await services.media.bulk_upload(blobs, album_id, user_id)
    return BulkUploadResponse(
        total_count=progress.total_count,
        uploaded_count=progress.uploaded_count,
        uploaded_ids=progress.uploaded_ids,
        failures=progress.failures,
        status=progress.outcome().status,
    )


@router.delete("/{media_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_media(
    album_id: str,
    media_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Delete an item the caller uploaded. Deleting a missing item succeeds."""
    try:
        item = await services.media.get_media(album_id, media_id)
    except NotFound:
        logger.debug("Media %s already gone from album %s", media_id, album_id)
        return
    await services.media.delete_media(album_id, item, user_id)
