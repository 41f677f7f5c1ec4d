"""Keyword normalizer: free-text shopping request -> marketplace search phrase.

Gemini does the extraction; a deterministic regex transform covers every
failure mode (no API key, timeout, SDK error, empty or junk output).
``normalize_keywords`` never raises and never returns an empty string.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from app.config import settings
from app.pipeline.outcomes import ErrorKind, Outcome
from app.utils.gemini import KEYWORD_CONFIG, extract_text
from app.utils.llm_cache import get_cached, set_cached

if TYPE_CHECKING:
    from google import genai

log = structlog.get_logger("pipeline.keywords")

PROMPTS_DIR = Path(__file__).resolve().parent.parent / "prompts"

_STOP_PHRASES_RE = re.compile(
    r"\b(i need|i want|i'm|im|looking for|best|find me|show me|get me|good|great)\b",
    re.IGNORECASE,
)
_STOP_WORDS_RE = re.compile(r"\b(a|an|the|for|to|in|on|at|with)\b", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")
_NEWLINES_QUOTES_RE = re.compile(r'[\n"]')

_prompt_cache: str | None = None


def _load_prompt(raw_query: str) -> str:
    """Fill the keyword extraction template (template cached after first read)."""
    global _prompt_cache  # noqa: PLW0603
    if _prompt_cache is None:
        _prompt_cache = (PROMPTS_DIR / "keyword_extraction.txt").read_text()
    return _prompt_cache.format(query=raw_query)


def fallback_keywords(raw_query: str) -> str:
    """Local deterministic transform used whenever the model path fails."""
    text = raw_query.lower()
    text = _STOP_PHRASES_RE.sub("", text)
    text = _STOP_WORDS_RE.sub(" ", text)
    text = text.replace(",", " ")
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text or raw_query


def clean_model_output(text: str) -> str:
    text = _NEWLINES_QUOTES_RE.sub(" ", text)
    return _WHITESPACE_RE.sub(" ", text).strip()


async def _generate_keywords(client: genai.Client, raw_query: str) -> Outcome[str]:
    cache_key = [settings.gemini_model, raw_query]
    try:
        cached = get_cached("gemini_keywords", cache_key)
    except OSError as exc:
        log.warning("keywords_cache_read_failed", error=str(exc)[:200])
        cached = None
    if isinstance(cached, str) and cached:
        return Outcome.success(cached)

    try:
        prompt = _load_prompt(raw_query)
    except (OSError, KeyError, IndexError, ValueError) as exc:
        return Outcome.failure(ErrorKind.PARSE, f"Keyword prompt unavailable: {exc}")

    try:
        async with asyncio.timeout(settings.keyword_timeout_seconds):
            response = await asyncio.to_thread(
                client.models.generate_content,
                model=settings.gemini_model,
                contents=prompt,
                config=KEYWORD_CONFIG,
            )
    except TimeoutError:
        return Outcome.failure(
            ErrorKind.TIMEOUT, f"Gemini timed out after {settings.keyword_timeout_seconds}s"
        )
    except Exception as exc:
        return Outcome.failure(ErrorKind.MODEL_UNAVAILABLE, f"{type(exc).__name__}: {exc}")

    try:
        cleaned = clean_model_output(extract_text(response))
    except Exception as exc:
        return Outcome.failure(ErrorKind.PARSE, f"Unreadable Gemini response: {exc}")
    if not cleaned:
        return Outcome.failure(ErrorKind.EMPTY, "Gemini returned no text")

    try:
        set_cached("gemini_keywords", cache_key, cleaned)
    except OSError as exc:
        log.warning("keywords_cache_write_failed", error=str(exc)[:200])
    return Outcome.success(cleaned)


async def normalize_keywords(raw_query: str, client: genai.Client | None = None) -> str:
    """Turn ``raw_query`` into a short search phrase. Never fails."""
    if client is None:
        keywords = fallback_keywords(raw_query)
        log.info("keywords_fallback", reason="no_client", query=raw_query, keywords=keywords)
        return keywords

    outcome = await _generate_keywords(client, raw_query)
    if outcome.ok:
        log.info("keywords_extracted", query=raw_query, keywords=outcome.value)
        return outcome.unwrap_or(raw_query)

    keywords = fallback_keywords(raw_query)
    log.warning(
        "keywords_fallback",
        reason=outcome.error,
        detail=outcome.detail[:200],
        query=raw_query,
        keywords=keywords,
    )
    return keywords
