"""Typed stage outcomes and the fallback policy table.

Every stage that touches something unreliable (marketplace fetches, the
keyword model, the cache store) returns an ``Outcome`` instead of raising.
What happens next is decided in one place, ``FALLBACK_POLICY``, so the
degradation behaviour of the whole pipeline can be read off a single table.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Generic, TypeVar

T = TypeVar("T")


class ErrorKind(StrEnum):
    TIMEOUT = "timeout"
    NETWORK = "network"
    HTTP_STATUS = "http_status"
    EMPTY = "empty"
    PARSE = "parse"
    MODEL_UNAVAILABLE = "model_unavailable"
    CACHE_UNAVAILABLE = "cache_unavailable"
    VALIDATION = "validation"


class Fallback(StrEnum):
    DEGRADE = "degrade"  # substitute the stage's fallback value
    SKIP_RECORD = "skip_record"  # drop the record, siblings continue
    TREAT_AS_MISS = "treat_as_miss"  # behave as if the cache had nothing
    REJECT = "reject"  # surface to the caller as a client error


FALLBACK_POLICY: dict[ErrorKind, Fallback] = {
    ErrorKind.TIMEOUT: Fallback.DEGRADE,
    ErrorKind.NETWORK: Fallback.DEGRADE,
    ErrorKind.HTTP_STATUS: Fallback.DEGRADE,
    ErrorKind.EMPTY: Fallback.DEGRADE,
    ErrorKind.MODEL_UNAVAILABLE: Fallback.DEGRADE,
    ErrorKind.PARSE: Fallback.SKIP_RECORD,
    ErrorKind.CACHE_UNAVAILABLE: Fallback.TREAT_AS_MISS,
    ErrorKind.VALIDATION: Fallback.REJECT,
}


def fallback_for(kind: ErrorKind) -> Fallback:
    return FALLBACK_POLICY[kind]


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Either a value or an ErrorKind with a short human-readable detail."""

    value: T | None = None
    error: ErrorKind | None = None
    detail: str = ""

    @classmethod
    def success(cls, value: T) -> Outcome[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str = "") -> Outcome[T]:
        return cls(error=kind, detail=detail)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def fallback(self) -> Fallback | None:
        return None if self.error is None else fallback_for(self.error)

    def unwrap_or(self, default: T) -> T:
        if self.error is None and self.value is not None:
            return self.value
        return default
