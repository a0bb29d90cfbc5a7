"""AI domain - best-effort track analysis."""

from .vibe import (
    EMPTY_MESSAGE,
    FAILURE_MESSAGE,
    MISSING_KEY_MESSAGE,
    build_vibe_prompt,
    generate_song_vibe,
    get_api_key,
)

__all__ = [
    "EMPTY_MESSAGE",
    "FAILURE_MESSAGE",
    "MISSING_KEY_MESSAGE",
    "build_vibe_prompt",
    "generate_song_vibe",
    "get_api_key",
]
