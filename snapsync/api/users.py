"""Profile endpoint for the signed-in user."""

from fastapi import APIRouter, Depends

from snapsync.api.deps import get_current_user_id, get_services
from snapsync.models.user import UserProfile
from snapsync.schemas.album import ProfileUpdateRequest
from snapsync.services.registry import Services

router = APIRouter(prefix="/users", tags=["users"])


@router.put("/me", response_model=UserProfile)
async def update_me(
    request: ProfileUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Store the caller's email and display name, used in notification text."""
    return await services.profiles.upsert(user_id, request.email, request.display_name)
