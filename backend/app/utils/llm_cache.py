"""Disk cache for keyword-model responses during development.

Enabled by pointing LLM_CACHE_DIR at a directory; unset in production.
Entries are JSON files named by a hash of the inputs, so changing the prompt
or the query simply produces a new file.
"""

from __future__ import annotations

import hashlib
import json
import os
from pathlib import Path
from typing import Any

import structlog

logger = structlog.get_logger()

_CACHE_DIR: str | None = os.environ.get("LLM_CACHE_DIR")


def _cache_path(namespace: str, key_parts: list[str]) -> Path | None:
    """Return the cache file path, or None if caching is disabled."""
    if not _CACHE_DIR:
        return None
    raw = "|".join(key_parts)
    digest = hashlib.sha256(raw.encode()).hexdigest()[:20]
    cache_dir = Path(_CACHE_DIR) / namespace
    cache_dir.mkdir(parents=True, exist_ok=True)
    return cache_dir / f"{digest}.json"


def get_cached(namespace: str, key_parts: list[str]) -> Any | None:
    path = _cache_path(namespace, key_parts)
    if path and path.exists():
        try:
            data = json.loads(path.read_text())
            logger.info("llm_cache_hit", namespace=namespace)
            return data
        except (json.JSONDecodeError, OSError):
            logger.warning("llm_cache_unreadable", namespace=namespace, path=str(path))
    return None


def set_cached(namespace: str, key_parts: list[str], value: Any) -> None:
    path = _cache_path(namespace, key_parts)
    if path:
        try:
            path.write_text(json.dumps(value))
            logger.info("llm_cache_saved", namespace=namespace)
        except (OSError, TypeError):
            logger.warning("llm_cache_write_failed", namespace=namespace)
