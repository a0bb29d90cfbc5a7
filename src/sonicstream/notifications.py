"""
User-facing notices.

Internal error classifications are turned into one message each, here and
nowhere else. Sinks decide how a notice is shown (toast, desktop popup,
test recorder).
"""

import shutil
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Literal, Optional

from sonicstream.core.config import NotificationsConfig
from sonicstream.core.output import log
from sonicstream.domain.upload.errors import UploadError, UploadErrorKind

Level = Literal["error", "success", "info"]


class NoticeKind(Enum):
    SIGN_IN_REQUIRED = "sign_in_required"
    UPLOAD_SYNCED = "upload_synced"
    STORAGE_PERMISSION = "storage_permission"
    DATABASE_PERMISSION = "database_permission"
    BACKEND_NOT_CONFIGURED = "backend_not_configured"
    CLOUD_ERROR = "cloud_error"
    AUTOPLAY_BLOCKED = "autoplay_blocked"
    PLAYBACK_ERROR = "playback_error"


@dataclass(frozen=True)
class Notice:
    kind: NoticeKind
    level: Level
    message: str


NoticeSink = Callable[[Notice], None]

_LEVELS: dict[NoticeKind, Level] = {
    NoticeKind.SIGN_IN_REQUIRED: "info",
    NoticeKind.UPLOAD_SYNCED: "success",
    NoticeKind.STORAGE_PERMISSION: "error",
    NoticeKind.DATABASE_PERMISSION: "error",
    NoticeKind.BACKEND_NOT_CONFIGURED: "error",
    NoticeKind.CLOUD_ERROR: "error",
    NoticeKind.AUTOPLAY_BLOCKED: "info",
    NoticeKind.PLAYBACK_ERROR: "error",
}

_UPLOAD_KINDS: dict[UploadErrorKind, NoticeKind] = {
    UploadErrorKind.STORAGE_PERMISSION: NoticeKind.STORAGE_PERMISSION,
    UploadErrorKind.DATABASE_PERMISSION: NoticeKind.DATABASE_PERMISSION,
    UploadErrorKind.NOT_CONFIGURED: NoticeKind.BACKEND_NOT_CONFIGURED,
    UploadErrorKind.NETWORK: NoticeKind.CLOUD_ERROR,
    UploadErrorKind.GENERIC: NoticeKind.CLOUD_ERROR,
}


def render_message(kind: NoticeKind, detail: Optional[str] = None) -> str:
    """User-visible text for a notice."""
    if kind is NoticeKind.SIGN_IN_REQUIRED:
        return "Please sign in to upload music."
    if kind is NoticeKind.UPLOAD_SYNCED:
        return "Track uploaded & synced successfully"
    if kind is NoticeKind.STORAGE_PERMISSION:
        return "Upload failed (Storage Permissions). Playing locally."
    if kind is NoticeKind.DATABASE_PERMISSION:
        return "Sync failed (Database Permissions). Playing locally."
    if kind is NoticeKind.BACKEND_NOT_CONFIGURED:
        return "Setup Error: 'audio' bucket missing. Playing locally."
    if kind is NoticeKind.CLOUD_ERROR:
        return f"Playing locally. Cloud error: {detail or 'Unknown error'}"
    if kind is NoticeKind.AUTOPLAY_BLOCKED:
        return "Playback was blocked. Press play to start."
    if kind is NoticeKind.PLAYBACK_ERROR:
        return "This track could not be played (unsupported format or playback error)."
    return detail or kind.value


def notice_for_upload_error(error: UploadError) -> NoticeKind:
    return _UPLOAD_KINDS.get(error.kind, NoticeKind.CLOUD_ERROR)


def desktop_sink(notice: Notice) -> None:
    """Show a notice as a desktop notification using notify-send.

    Silently skips the notification if notify-send is not available.
    """
    if not shutil.which("notify-send"):
        return

    urgency = "critical" if notice.level == "error" else "normal"
    title = "✗ SonicStream" if notice.level == "error" else "✓ SonicStream"
    try:
        subprocess.run(
            ["notify-send", "--urgency", urgency, "--app-name", "SonicStream", title, notice.message],
            check=False,  # Don't raise on error
            timeout=2.0,
            capture_output=True,
        )
    except (subprocess.TimeoutExpired, OSError):
        # Notifications are nice-to-have
        pass


class NotificationRouter:
    """Renders notices once and fans them out to the registered sinks."""

    def __init__(self, config: Optional[NotificationsConfig] = None):
        self._config = config or NotificationsConfig()
        self._sinks: list[NoticeSink] = []
        self.last: Optional[Notice] = None

    def add_sink(self, sink: NoticeSink) -> Callable[[], None]:
        self._sinks.append(sink)
        return lambda: self._sinks.remove(sink)

    def _should_show(self, notice: Notice) -> bool:
        if not self._config.enabled:
            return False
        if notice.level == "success":
            return self._config.show_success
        if notice.level == "error":
            return self._config.show_errors
        return True

    def notify(self, kind: NoticeKind, detail: Optional[str] = None) -> Notice:
        notice = Notice(kind=kind, level=_LEVELS.get(kind, "info"), message=render_message(kind, detail))
        log(notice.message, "error" if notice.level == "error" else "info")
        self.last = notice

        if self._should_show(notice):
            for sink in list(self._sinks):
                sink(notice)
        return notice

    def notify_upload_error(self, error: UploadError) -> Notice:
        return self.notify(notice_for_upload_error(error), error.message)
