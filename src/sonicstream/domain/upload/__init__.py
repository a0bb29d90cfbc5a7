"""Upload domain - from a selected file to a playable song."""

from .errors import NotAuthenticated, UploadError, UploadErrorKind, classify_upload_error
from .pipeline import UploadPipeline, UploadResult

__all__ = [
    "NotAuthenticated",
    "UploadError",
    "UploadErrorKind",
    "classify_upload_error",
    "UploadPipeline",
    "UploadResult",
]
