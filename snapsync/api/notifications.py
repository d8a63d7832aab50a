"""Notification endpoints for the signed-in user."""

from fastapi import APIRouter, Depends, status

from snapsync.api.deps import get_current_user_id, get_services
from snapsync.schemas.media import BatchOutcomeResponse
from snapsync.schemas.notification import NotificationListResponse
from snapsync.services.registry import Services
from snapsync.store.documents import first_snapshot

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    """Most recent notifications, newest first, with the unread count of that list."""
    notifications = await first_snapshot(services.notifications.observe(user_id))
    return NotificationListResponse(
        notifications=notifications,
        unread_count=sum(1 for n in notifications if not n.is_read),
    )


@router.post("/read-all", response_model=BatchOutcomeResponse)
async def mark_all_as_read(
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    outcome = await services.notifications.mark_all_as_read(user_id)
    return BatchOutcomeResponse.from_outcome(outcome)


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_as_read(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    await services.notifications.mark_as_read(notification_id, user_id)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification(
    notification_id: str,
    user_id: str = Depends(get_current_user_id),
    services: Services = Depends(get_services),
):
    await services.notifications.delete_notification(notification_id, user_id)
