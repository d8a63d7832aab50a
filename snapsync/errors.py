"""Error taxonomy shared by the services and the HTTP layer."""


class SnapSyncError(Exception):
    """Base class for every failure surfaced to callers."""

    code = "error"
    status_code = 500

    def __init__(self, message: str = ""):
        self.message = message or (self.__doc__ or self.code).strip()
        super().__init__(self.message)


class NotFound(SnapSyncError):
    """Requested album, invite code or notification does not exist."""

    code = "not_found"
    status_code = 404


class AlreadyMember(SnapSyncError):
    """User is already a member of this album."""

    code = "already_member"
    status_code = 409


class Unauthorized(SnapSyncError):
    """Caller is not allowed to perform this action."""

    code = "unauthorized"
    status_code = 403


class TransientIO(SnapSyncError):
    """Store or network failure; the action may succeed if tried again."""

    code = "transient_io"
    status_code = 503


class Cancelled(SnapSyncError):
    """Operation was superseded by a newer request."""

    code = "cancelled"
    status_code = 409


class ResourceExhausted(SnapSyncError):
    """Could not allocate a unique invite code."""

    code = "resource_exhausted"
    status_code = 503


class InvalidInput(SnapSyncError):
    """Request data is malformed."""

    code = "invalid_input"
    status_code = 422


class InvalidMedia(SnapSyncError):
    """Uploaded file is not a supported photo or video."""

    code = "invalid_media"
    status_code = 422
