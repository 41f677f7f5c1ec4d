"""Search result cache: a TTL'd key/value store keyed by normalized query.

Caching is best-effort. A failed read is a miss and a failed write is logged
and dropped; neither ever fails the search request. Entries are never
deleted: expiry is a timestamp filter applied on read, and writes upsert.
Concurrent identical searches may both miss and both write; the last write
wins, which is fine for a cache.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta
from typing import Any, Protocol

import structlog
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import select, text
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from app.models.contracts import CacheEntry, Product
from app.models.db import SearchCacheRow
from app.pipeline.outcomes import ErrorKind, Outcome

log = structlog.get_logger("pipeline.cache")

_PRODUCT_LIST = TypeAdapter(list[Product])


def cache_key(query: str) -> str:
    return query.lower().strip()


class CacheStore(Protocol):
    async def get(self, key: str, not_before: datetime) -> CacheEntry | None:
        """Entry for ``key`` created at or after ``not_before``, else None."""
        ...

    async def upsert(self, key: str, results: list[dict[str, Any]], created_at: datetime) -> None:
        """Insert, or overwrite results and timestamp of an existing key."""
        ...

    async def ping(self) -> str:
        """Connectivity label for the health endpoint."""
        ...


class InMemoryCacheStore:
    """Process-local store for development and tests."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str, not_before: datetime) -> CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None or entry.created_at < not_before:
            return None
        return entry

    async def upsert(self, key: str, results: list[dict[str, Any]], created_at: datetime) -> None:
        self._entries[key] = CacheEntry(query=key, results=results, created_at=created_at)

    async def ping(self) -> str:
        return "memory"

    def clear(self) -> None:
        self._entries.clear()


class PostgresCacheStore:
    """``search_cache`` table via SQLAlchemy async + asyncpg.

    Upserts rely on Postgres' ``INSERT ... ON CONFLICT`` atomicity; there is
    no application-level locking.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine
        self._sessions = async_sessionmaker(engine, expire_on_commit=False)

    @classmethod
    def from_url(cls, database_url: str) -> PostgresCacheStore:
        return cls(create_async_engine(database_url, pool_pre_ping=True))

    async def get(self, key: str, not_before: datetime) -> CacheEntry | None:
        stmt = select(SearchCacheRow).where(
            SearchCacheRow.query == key,
            SearchCacheRow.created_at >= not_before,
        )
        async with self._sessions() as session:
            row = (await session.execute(stmt)).scalar_one_or_none()
        if row is None:
            return None
        return CacheEntry(query=row.query, results=row.results, created_at=row.created_at)

    async def upsert(self, key: str, results: list[dict[str, Any]], created_at: datetime) -> None:
        stmt = build_upsert(key, results, created_at)
        async with self._sessions() as session:
            await session.execute(stmt)
            await session.commit()

    async def ping(self, timeout: float = 3.0) -> str:
        try:
            async with asyncio.timeout(timeout), self._engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            return "connected"
        except Exception as exc:
            log.debug("cache_ping_failed", error=str(exc))
            return "disconnected"

    async def close(self) -> None:
        await self._engine.dispose()


def build_upsert(key: str, results: list[dict[str, Any]], created_at: datetime) -> Any:
    """INSERT ... ON CONFLICT (query) DO UPDATE for one cache row."""
    stmt = pg_insert(SearchCacheRow).values(query=key, results=results, created_at=created_at)
    return stmt.on_conflict_do_update(
        index_elements=[SearchCacheRow.query],
        set_={"results": stmt.excluded.results, "created_at": stmt.excluded.created_at},
    )


async def _lookup(
    store: CacheStore, key: str, now: datetime, ttl: timedelta
) -> Outcome[list[Product]]:
    try:
        entry = await store.get(key, now - ttl)
    except Exception as exc:
        return Outcome.failure(ErrorKind.CACHE_UNAVAILABLE, f"{type(exc).__name__}: {exc}")
    if entry is None or now - entry.created_at >= ttl:
        return Outcome.failure(ErrorKind.EMPTY, "not found")
    try:
        return Outcome.success(_PRODUCT_LIST.validate_python(entry.results))
    except ValidationError as exc:
        return Outcome.failure(ErrorKind.PARSE, f"Corrupt cache entry: {exc.error_count()} errors")


async def read_cache(
    store: CacheStore, query: str, now: datetime, ttl: timedelta
) -> list[Product] | None:
    """Cached products for ``query`` if a fresh entry exists; None on any miss."""
    key = cache_key(query)
    outcome = await _lookup(store, key, now, ttl)
    if outcome.ok:
        log.info("search_cache_hit", key=key)
        return outcome.value
    if outcome.error is ErrorKind.EMPTY:
        log.info("search_cache_miss", key=key)
    else:
        log.warning("search_cache_read_failed", key=key, reason=outcome.error, detail=outcome.detail)
    return None


async def write_cache(
    store: CacheStore, query: str, products: list[Product], now: datetime
) -> None:
    """Upsert the result set for ``query``; failures are logged and dropped."""
    key = cache_key(query)
    results = [p.model_dump(mode="json", by_alias=True) for p in products]
    try:
        await store.upsert(key, results, now)
    except Exception as exc:
        log.warning(
            "search_cache_write_failed",
            key=key,
            error=str(exc)[:200],
            error_type=type(exc).__name__,
            reason=ErrorKind.CACHE_UNAVAILABLE,
        )
        return
    log.info("search_cache_saved", key=key, count=len(products))


def build_cache_store(backend: str, database_url: str) -> CacheStore:
    """Store selected by the CACHE_BACKEND setting."""
    if backend == "postgres":
        return PostgresCacheStore.from_url(database_url)
    return InMemoryCacheStore()
