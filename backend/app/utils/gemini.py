"""Gemini text-generation client used for keyword extraction.

The google-genai SDK call is synchronous; callers run it with
``asyncio.to_thread`` under an explicit timeout so a slow model never holds
a search request open.
"""

from __future__ import annotations

import structlog
from google import genai
from google.genai import types

from app.config import settings
from app.utils.tracing import wrap_gemini

logger = structlog.get_logger()

KEYWORD_CONFIG = types.GenerateContentConfig(
    temperature=0.2,
    max_output_tokens=20,
    top_k=1,
    top_p=0.8,
)


def get_client() -> genai.Client | None:
    """Create a Gemini client, or None when no API key is configured."""
    if not settings.google_ai_api_key:
        logger.info("gemini_client_disabled", reason="GOOGLE_AI_API_KEY not set")
        return None
    return wrap_gemini(genai.Client(api_key=settings.google_ai_api_key))


def extract_text(response: types.GenerateContentResponse) -> str:
    """Join all text parts of the first candidate."""
    if not response.candidates:
        return ""
    content = response.candidates[0].content
    if content is None or content.parts is None:
        return ""
    texts = []
    for part in content.parts:
        if part.text is not None:
            texts.append(part.text)
    return "\n".join(texts)
