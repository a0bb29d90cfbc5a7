"""Tests for best-effort tag extraction."""

from unittest.mock import patch

import pytest

from sonicstream.domain.library import MetadataExtractor, read_tags, title_from_filename
from sonicstream.domain.library.metadata import ARTIST_TAGS, TITLE_TAGS, get_tag_value


class TestGetTagValue:
    """Tests for multi-format tag lookup."""

    def test_id3_style_list_value(self):
        assert get_tag_value({"TIT2": ["  Night Bus  "]}, TITLE_TAGS) == "Night Bus"

    def test_falls_through_to_later_names(self):
        assert get_tag_value({"ARTIST": ["Burial"]}, ARTIST_TAGS) == "Burial"

    def test_missing_and_blank_values(self):
        assert get_tag_value({}, TITLE_TAGS) is None
        assert get_tag_value({"TIT2": ["   "]}, TITLE_TAGS) is None


class TestTitleFromFilename:
    def test_strips_extension(self):
        assert title_from_filename("/music/My Song.mp3") == "My Song"

    def test_keeps_inner_dots(self):
        assert title_from_filename("a.b.flac") == "a.b"

    def test_no_extension(self):
        assert title_from_filename("README") == "README"


def test_read_tags_on_unrecognized_file(tmp_path):
    path = tmp_path / "notes.txt"
    path.write_text("plain text")
    assert read_tags(path) == {}


@pytest.mark.anyio
async def test_extract_registers_cover_as_local_resource(resources, audio_file):
    raw = {
        "title": "Midnight Drive",
        "artist": "Nightcrawler",
        "duration": 241.3,
        "cover": (b"\xff\xd8jpeg", "image/jpeg"),
    }
    with patch("sonicstream.domain.library.metadata.read_tags", return_value=raw):
        tags = await MetadataExtractor(resources).extract(audio_file)

    assert tags["title"] == "Midnight Drive"
    assert tags["artist"] == "Nightcrawler"
    assert tags["duration"] == 241.3
    assert resources.resolve(tags["cover_image_url"]) == b"\xff\xd8jpeg"
    assert resources.mime_type(tags["cover_image_url"]) == "image/jpeg"


@pytest.mark.anyio
async def test_extract_never_raises(resources, audio_file):
    with patch(
        "sonicstream.domain.library.metadata.read_tags",
        side_effect=ValueError("corrupt header"),
    ):
        assert await MetadataExtractor(resources).extract(audio_file) == {}


@pytest.mark.anyio
async def test_extract_on_garbage_file(resources, audio_file):
    assert await MetadataExtractor(resources).extract(audio_file) == {}
    assert len(resources) == 0
