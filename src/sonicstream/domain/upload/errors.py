"""Upload outcome classification."""

from dataclasses import dataclass
from enum import Enum

from ..remote.errors import RecordError, RemoteError, StorageError


class NotAuthenticated(Exception):
    """Raised when an upload is attempted without a guest or user session."""

    def __init__(self, message: str = "Please sign in to upload music."):
        super().__init__(message)


class UploadErrorKind(Enum):
    STORAGE_PERMISSION = "storage_permission"
    DATABASE_PERMISSION = "database_permission"
    NOT_CONFIGURED = "not_configured"
    NETWORK = "network"
    GENERIC = "generic"


@dataclass(frozen=True)
class UploadError:
    """Why cloud sync did not happen for an upload that still produced a song."""

    kind: UploadErrorKind
    message: str
    source: str  # "storage" | "record" | "other"


def classify_upload_error(error: Exception) -> UploadError:
    """Map a persistence failure to the notice the user should see."""
    message = str(error) or error.__class__.__name__

    if isinstance(error, StorageError):
        source = "storage"
    elif isinstance(error, RecordError):
        source = "record"
    else:
        source = "other"

    if isinstance(error, RemoteError):
        if error.network:
            return UploadError(UploadErrorKind.NETWORK, message, source)
        if error.permission_denied:
            kind = (
                UploadErrorKind.STORAGE_PERMISSION
                if source == "storage"
                else UploadErrorKind.DATABASE_PERMISSION
            )
            return UploadError(kind, message, source)
        if error.not_configured:
            return UploadError(UploadErrorKind.NOT_CONFIGURED, message, source)

    return UploadError(UploadErrorKind.GENERIC, message, source)
