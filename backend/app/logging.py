"""structlog setup for the search API.

Every event is stamped with the service name and environment. String values
longer than ``LOG_MAX_VALUE_CHARS`` are clipped: upstream error bodies and
scraped fragments end up in warning events, and a single blocked page should
not produce a multi-kilobyte log line. LOG_FILE mirrors each rendered line
into a JSON-lines file alongside stdout.
"""

from __future__ import annotations

import logging
import sys
from typing import IO, Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

SERVICE_NAME = "shopsense"

_LEVELS = {
    name: getattr(logging, name) for name in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
}


def service_context(environment: str) -> Processor:
    def add(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
        event_dict.setdefault("service", SERVICE_NAME)
        event_dict.setdefault("environment", environment)
        return event_dict

    return add


def clip_long_values(limit: int) -> Processor:
    """Truncate oversized string values; the event name is never touched."""

    def clip(_logger: Any, _method: str, event_dict: EventDict) -> EventDict:
        for key, value in event_dict.items():
            if key != "event" and isinstance(value, str) and len(value) > limit:
                event_dict[key] = f"{value[:limit]}...[+{len(value) - limit} chars]"
        return event_dict

    return clip


def _open_log_file(path: str) -> IO[str] | None:
    try:
        return open(path, "a")  # noqa: SIM115
    except OSError as exc:
        # structlog is not configured yet at this point
        print(
            f"WARNING: Could not open log file {path!r}: {exc}. Logging to stdout only.",
            file=sys.stderr,
        )
        return None


class _LogFileMirror:
    """stdout stand-in for PrintLogger that also appends to LOG_FILE.

    The file side is dropped after the first I/O error; stdout is unaffected.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self.file = _open_log_file(path)

    def write(self, data: str) -> None:
        sys.stdout.write(data)
        self._mirror("write", data)

    def flush(self) -> None:
        sys.stdout.flush()
        self._mirror("flush")

    def _mirror(self, action: str, data: str | None = None) -> None:
        if self.file is None:
            return
        try:
            if data is not None:
                self.file.write(data)
            self.file.flush()
        except (OSError, ValueError):
            self.file = None
            print(
                f"WARNING: Log file {action} failed for {self.path!r}. File logging disabled.",
                file=sys.stderr,
            )


def build_processors(environment: str, max_value_chars: int) -> list[Processor]:
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        service_context(environment),
        clip_long_values(max_value_chars),
    ]
    if environment == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors += [structlog.processors.dict_tracebacks, structlog.processors.JSONRenderer()]
    return processors


def configure_logging() -> None:
    """Configure structlog from settings. Safe to call again (tests do)."""
    level = _LEVELS.get(settings.log_level.upper(), logging.INFO)
    output = _LogFileMirror(settings.log_file) if settings.log_file else None

    structlog.configure(
        processors=build_processors(settings.environment, settings.log_max_value_chars),
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=output),  # type: ignore[arg-type]
        cache_logger_on_first_use=True,
    )
