"""SnapSync Database Models."""

from snapsync.models.user import UserProfile
from snapsync.models.album import Album, AlbumMember
from snapsync.models.media import MediaItem
from snapsync.models.notification import Notification, NotificationType

__all__ = [
    "UserProfile",
    "Album",
    "AlbumMember",
    "MediaItem",
    "Notification",
    "NotificationType",
]
