"""Library domain - songs, local resources, tag extraction and the library store."""

from .metadata import MetadataExtractor, read_tags, title_from_filename
from .models import DEFAULT_ARTIST, GUEST_OWNER_ID, Song
from .resources import LocalResources, ResourceRevokedError
from .store import LibraryStatus, LibraryStore

__all__ = [
    "DEFAULT_ARTIST",
    "GUEST_OWNER_ID",
    "Song",
    "LocalResources",
    "ResourceRevokedError",
    "MetadataExtractor",
    "read_tags",
    "title_from_filename",
    "LibraryStatus",
    "LibraryStore",
]
