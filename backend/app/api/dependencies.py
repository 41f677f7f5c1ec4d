"""FastAPI dependencies resolving the shared clients held on ``app.state``.

The lifespan handler in ``app.main`` creates them once per process; tests
replace them through ``app.dependency_overrides``.
"""

from __future__ import annotations

from fastapi import Depends, Request

from app.pipeline.cache import CacheStore
from app.pipeline.search import SearchDependencies


def get_cache_store(request: Request) -> CacheStore:
    return request.app.state.cache_store


def get_search_dependencies(
    request: Request,
    cache_store: CacheStore = Depends(get_cache_store),
) -> SearchDependencies:
    return SearchDependencies(
        http_client=request.app.state.http_client,
        cache_store=cache_store,
        gemini_client=request.app.state.gemini_client,
    )
