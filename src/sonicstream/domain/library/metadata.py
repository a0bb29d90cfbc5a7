"""
Best-effort tag extraction for uploaded audio files.

Reads title, artist, duration and embedded cover art using Mutagen.
Extraction never fails the caller: missing or unreadable tags yield an
empty result and the upload falls back to filename-derived values.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional, Union

from loguru import logger
from mutagen import File as MutagenFile
from mutagen.mp4 import MP4Cover

from .resources import LocalResources

TITLE_TAGS = ["TIT2", "\xa9nam", "TITLE", "title"]
ARTIST_TAGS = ["TPE1", "\xa9ART", "ARTIST", "artist"]


def get_tag_value(audio_file: Any, tag_names: list[str]) -> Optional[str]:
    """Get tag value, trying multiple possible tag names."""
    for tag_name in tag_names:
        try:
            value = audio_file.get(tag_name)
            if value:
                # Handle different formats
                if isinstance(value, list) and value:
                    return str(value[0]).strip() or None
                return str(value).strip() or None
        except (KeyError, ValueError):
            # Some formats (like Vorbis) raise ValueError for non-existent keys
            continue
    return None


def title_from_filename(path: Union[str, Path]) -> str:
    """Filename without its extension, used when no title tag exists."""
    name = Path(path).name
    stem = name.rsplit(".", 1)[0] if "." in name else name
    return stem or name


def _read_cover(audio_file: Any) -> Optional[tuple[bytes, str]]:
    """Return (data, mime) for the first embedded picture, if any."""
    # FLAC keeps pictures outside the tag dict
    pictures = getattr(audio_file, "pictures", None)
    if pictures:
        picture = pictures[0]
        return picture.data, picture.mime or "image/jpeg"

    tags = getattr(audio_file, "tags", None)
    if tags is None:
        return None

    # ID3 (MP3)
    if hasattr(tags, "getall"):
        frames = tags.getall("APIC")
        if frames:
            return frames[0].data, frames[0].mime or "image/jpeg"
        return None

    # MP4 (M4A)
    covers = tags.get("covr") if hasattr(tags, "get") else None
    if covers:
        cover = covers[0]
        mime = "image/png" if cover.imageformat == MP4Cover.FORMAT_PNG else "image/jpeg"
        return bytes(cover), mime

    return None


def read_tags(path: Union[str, Path]) -> dict[str, Any]:
    """Read raw tag data from an audio file (blocking).

    Returns:
        Dictionary with any of: title, artist, duration, cover (data, mime)
    """
    audio_file = MutagenFile(str(path))
    if audio_file is None:
        return {}

    result: dict[str, Any] = {}

    title = get_tag_value(audio_file, TITLE_TAGS)
    if title:
        result["title"] = title

    artist = get_tag_value(audio_file, ARTIST_TAGS)
    if artist:
        result["artist"] = artist

    if hasattr(audio_file, "info"):
        duration = getattr(audio_file.info, "length", None)
        if duration:
            result["duration"] = float(duration)

    cover = _read_cover(audio_file)
    if cover:
        result["cover"] = cover

    return result


class MetadataExtractor:
    """Extracts {title, artist, cover_image_url, duration} from local files."""

    def __init__(self, resources: LocalResources):
        self._resources = resources

    async def extract(self, path: Union[str, Path]) -> dict[str, Any]:
        """Extract tag data without blocking the event loop.

        Never raises. Cover art is registered as a session-local resource.
        """
        try:
            raw = await asyncio.to_thread(read_tags, path)
        except Exception as e:
            logger.debug(f"Metadata extraction info for {path}: {e}")
            return {}

        if not raw:
            logger.debug(f"No tags found in {path}")
            return {}

        tags: dict[str, Any] = {
            key: raw[key] for key in ("title", "artist", "duration") if key in raw
        }
        if "cover" in raw:
            data, mime = raw["cover"]
            tags["cover_image_url"] = self._resources.allocate_bytes(data, mime)

        return tags
