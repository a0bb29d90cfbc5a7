"""
Session-local playable resources.

Stands in for browser object URLs: an uploaded file (or extracted cover art)
is registered under a "blob:" locator that lives only as long as the process.
Nothing here is persisted across restarts.
"""

import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from loguru import logger

from .models import LOCAL_URL_SCHEME

LOCATOR_PREFIX = f"{LOCAL_URL_SCHEME}sonicstream/"


class ResourceRevokedError(Exception):
    """Raised when resolving a locator that was revoked or never allocated."""

    def __init__(self, locator: str):
        self.locator = locator
        super().__init__(f"Local resource is no longer available: {locator}")


@dataclass(frozen=True)
class _Entry:
    path: Optional[Path] = None
    data: Optional[bytes] = None
    mime: Optional[str] = None


class LocalResources:
    """Registry of locally allocated resources keyed by locator."""

    def __init__(self):
        self._entries: dict[str, _Entry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    @staticmethod
    def is_local(locator: Optional[str]) -> bool:
        return bool(locator) and locator.startswith(LOCAL_URL_SCHEME)

    def allocate_file(self, path: Union[str, Path]) -> str:
        """Register a file on disk and return its locator."""
        locator = f"{LOCATOR_PREFIX}{uuid.uuid4()}"
        self._entries[locator] = _Entry(path=Path(path))
        logger.debug(f"Allocated local resource {locator} -> {path}")
        return locator

    def allocate_bytes(self, data: bytes, mime: str = "application/octet-stream") -> str:
        """Register an in-memory payload (e.g. embedded cover art)."""
        locator = f"{LOCATOR_PREFIX}{uuid.uuid4()}"
        self._entries[locator] = _Entry(data=bytes(data), mime=mime)
        return locator

    def resolve(self, locator: str) -> Union[Path, bytes]:
        """Return the file path or payload behind a locator.

        Raises:
            ResourceRevokedError: If the locator is unknown or was revoked
        """
        entry = self._entries.get(locator)
        if entry is None:
            raise ResourceRevokedError(locator)
        return entry.path if entry.path is not None else entry.data

    def mime_type(self, locator: str) -> Optional[str]:
        entry = self._entries.get(locator)
        return entry.mime if entry else None

    def revoke(self, locator: Optional[str]) -> bool:
        """Invalidate a locator. Returns False if it was not registered."""
        if not locator or locator not in self._entries:
            return False
        del self._entries[locator]
        logger.debug(f"Revoked local resource {locator}")
        return True
