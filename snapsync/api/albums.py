"""Album API endpoints: creation, invite codes, membership and owner actions."""

from fastapi import APIRouter, Depends, status

from snapsync.api.deps import get_current_user_id, get_services
from snapsync.errors import Unauthorized
from snapsync.schemas.album import (
    AlbumCreateRequest,
    AlbumInviteRequest,
    AlbumJoinRequest,
    AlbumTransferRequest,
    AlbumUpdateRequest,
    AlbumView,
)
from snapsync.services.registry import Services
from snapsync.store.documents import first_snapshot

router = APIRouter(prefix="/albums", tags=["albums"])


@router.post("", response_model=AlbumView, status_code=201)
async def create_album(
    request: AlbumCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Create a new album owned by the caller."""
    return await services.albums.create_album(request.title, user_id)


@router.get("", response_model=list[AlbumView])
async def list_albums(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Albums the caller belongs to, most recently updated first."""
    return await first_snapshot(services.albums.observe_my_albums(user_id))


@router.get("/invite/{code}", response_model=AlbumView)
async def find_by_invite_code(
    code: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return await services.albums.find_by_invite_code(code)


@router.post("/join", response_model=AlbumView)
async def join_by_invite_code(
    request: AlbumJoinRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Join the album behind an invite code."""
    return await services.albums.join_by_invite_code(request.invite_code, user_id)


@router.get("/{album_id}", response_model=AlbumView)
async def get_album(
    album_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Album details, members only. Others join through an invite code."""
    album = await services.albums.get_album(album_id)
    if not album.is_member(user_id):
        raise Unauthorized("Only album members can view this album")
    return album


@router.patch("/{album_id}", response_model=AlbumView)
async def update_album(
    album_id: str,
    request: AlbumUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Rename the album and/or change its cover (owner only)."""
    fields = request.model_fields_set
    return await services.albums.update_album(
        album_id,
        user_id,
        title=(request.title or "") if "title" in fields else None,
        cover_path=request.cover_path,
        change_cover="cover_path" in fields,
    )


@router.post("/{album_id}/transfer", response_model=AlbumView)
async def transfer_ownership(
    album_id: str,
    request: AlbumTransferRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    return await services.albums.transfer_ownership(album_id, request.new_owner_id, user_id)


@router.post("/{album_id}/invite", status_code=status.HTTP_204_NO_CONTENT)
async def invite_user(
    album_id: str,
    request: AlbumInviteRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Send another user an invite notification for this album."""
    await services.albums.invite_user(album_id, request.user_id, user_id)
