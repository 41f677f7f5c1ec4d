"""Shared fixtures: in-memory cache, fake marketplace and an ASGI test client."""

from __future__ import annotations

import httpx
import pytest

from app.api.dependencies import get_cache_store, get_search_dependencies
from app.config import settings
from app.main import app
from app.pipeline.cache import InMemoryCacheStore
from app.pipeline.search import SearchDependencies
from tests.html_fixtures import FakeMarketplace


@pytest.fixture(autouse=True)
def _direct_marketplace(monkeypatch):
    """Fetch the marketplace directly even if SCRAPER_API_KEY is set locally."""
    monkeypatch.setattr(settings, "scraper_api_key", "")


@pytest.fixture
def cache_store() -> InMemoryCacheStore:
    return InMemoryCacheStore()


@pytest.fixture
async def marketplace():
    fake = FakeMarketplace()
    yield fake
    await fake.client.aclose()


@pytest.fixture
def search_deps(marketplace, cache_store) -> SearchDependencies:
    """Pipeline collaborators with no Gemini client and no review delay."""
    return SearchDependencies(
        http_client=marketplace.client,
        cache_store=cache_store,
        gemini_client=None,
        review_delay=0,
    )


@pytest.fixture
async def client(search_deps, cache_store):
    """HTTP client bound to the FastAPI app with fake collaborators."""
    app.dependency_overrides[get_search_dependencies] = lambda: search_deps
    app.dependency_overrides[get_cache_store] = lambda: cache_store
    transport = httpx.ASGITransport(app=app, raise_app_exceptions=False)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
