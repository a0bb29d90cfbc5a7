"""
Track vibe analysis using the OpenAI Responses API.

Best-effort: every failure turns into a fixed fallback sentence so the
player never has to handle an error from this call.
"""

import os
from typing import Optional

import openai
from loguru import logger

from sonicstream.core.config import AIConfig

MISSING_KEY_MESSAGE = "AI insights unavailable (Missing API Key)"
EMPTY_MESSAGE = "No analysis available."
FAILURE_MESSAGE = "Could not generate analysis."


def get_api_key(config: AIConfig) -> Optional[str]:
    """Get OpenAI API key from config or environment variable."""
    return config.openai_api_key or os.getenv("OPENAI_API_KEY")


def build_vibe_prompt(query: str) -> str:
    return (
        "Provide a concise, technical 1-sentence analysis of the likely musical style, "
        f'key instrumentation, and production era for a track titled "{query}". '
        "Do not use poetic metaphors."
    )


async def generate_song_vibe(
    query: str,
    config: AIConfig,
    client: Optional[openai.AsyncOpenAI] = None,
) -> str:
    """Describe a track's likely style in one sentence.

    Args:
        query: "Title by Artist" or just the title
        config: AI configuration
        client: Optional pre-built client (tests)

    Returns:
        The analysis, or a fallback message. Never raises.
    """
    api_key = get_api_key(config)
    if client is None and (not api_key or not config.enabled):
        return MISSING_KEY_MESSAGE

    try:
        client = client or openai.AsyncOpenAI(api_key=api_key)
        response = await client.responses.create(
            model=config.model, input=build_vibe_prompt(query)
        )
        text = (response.output_text or "").strip()
    except openai.OpenAIError as e:
        logger.error(f"Vibe analysis failed: {e}")
        return FAILURE_MESSAGE
    except Exception:
        logger.exception("Unexpected error during vibe analysis")
        return FAILURE_MESSAGE

    return text or EMPTY_MESSAGE
