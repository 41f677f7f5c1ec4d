"""LangSmith tracing for Gemini calls and pipeline stages.

Zero-cost when LANGSMITH_API_KEY is unset. The env var and the import are
checked on first use; if tracing is requested but langsmith is missing (it
lives in the optional ``tracing`` extra) we log a warning and run untraced.
"""

from __future__ import annotations

import os
from typing import Any

import structlog

_log = structlog.get_logger("tracing")

_INSTALL_HINT = (
    "LANGSMITH_API_KEY is set but langsmith is not installed; "
    "install with: pip install 'shopsense[tracing]'"
)


def _tracing_enabled() -> bool:
    return bool(os.environ.get("LANGSMITH_API_KEY", "").strip())


def _noop(fn: Any) -> Any:
    return fn


def wrap_gemini(client: Any) -> Any:
    """Wrap a google-genai client for auto-tracing. No-op without LANGSMITH_API_KEY."""
    if not _tracing_enabled():
        return client
    try:
        from langsmith.wrappers import wrap_gemini as _wrap
    except ImportError:
        _log.warning("langsmith_not_installed", reason=_INSTALL_HINT)
        return client
    try:
        return _wrap(client)
    except Exception as exc:
        _log.error(
            "langsmith_wrap_gemini_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return client


def traceable(**kwargs: Any) -> Any:
    """Decorator for tracing a pipeline stage. No-op without LANGSMITH_API_KEY."""
    if not _tracing_enabled():
        return _noop
    try:
        from langsmith import traceable as _traceable
    except ImportError:
        _log.warning("langsmith_not_installed", reason=_INSTALL_HINT)
        return _noop
    try:
        return _traceable(**kwargs)
    except Exception as exc:
        _log.error(
            "langsmith_traceable_failed",
            error=str(exc),
            error_type=type(exc).__name__,
        )
        return _noop
