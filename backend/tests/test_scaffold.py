"""Tests verifying the service scaffold: health, middleware, handlers, lifespan."""

import uuid
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from app.api.dependencies import get_search_dependencies
from app.main import app, lifespan
from app.models.contracts import ErrorResponse
from app.pipeline.cache import InMemoryCacheStore, PostgresCacheStore


class TestHealthEndpoint:
    """Verify the health endpoint returns the expected shape."""

    @pytest.mark.asyncio
    async def test_health_returns_200(self, client):
        """Health endpoint returns 200 with status, version, environment and service fields."""
        resp = await client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["version"] == "0.1.0"
        assert "environment" in body
        assert body["cache"] == "memory"
        assert body["gemini"] in ("configured", "disabled")

    @pytest.mark.asyncio
    async def test_health_reports_gemini_state(self, client, monkeypatch):
        """Gemini is reported as configured only when a client was created at startup."""
        monkeypatch.setattr(app.state, "gemini_client", None, raising=False)
        assert (await client.get("/health")).json()["gemini"] == "disabled"

        monkeypatch.setattr(app.state, "gemini_client", MagicMock())
        assert (await client.get("/health")).json()["gemini"] == "configured"

    @pytest.mark.asyncio
    async def test_health_cache_disconnected(self, client, cache_store):
        """A failing cache probe still returns 200, with the cache marked disconnected."""
        cache_store.ping = AsyncMock(side_effect=ConnectionError("db down"))
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["cache"] == "disconnected"


class TestCacheProbe:
    """Unit tests for the Postgres connectivity probe."""

    @pytest.mark.asyncio
    async def test_ping_disconnected_when_connect_fails(self):
        """ping() reports 'disconnected' instead of raising."""
        engine = MagicMock()
        engine.connect.side_effect = OSError("connection refused")
        store = PostgresCacheStore(engine)
        assert await store.ping(timeout=0.5) == "disconnected"

    @pytest.mark.asyncio
    async def test_ping_connected(self):
        """ping() reports 'connected' after a successful SELECT 1."""
        conn = AsyncMock()
        ctx = AsyncMock()
        ctx.__aenter__.return_value = conn
        engine = MagicMock()
        engine.connect.return_value = ctx
        store = PostgresCacheStore(engine)
        assert await store.ping() == "connected"
        conn.execute.assert_awaited_once()


class TestRequestIdMiddleware:
    """Verify request ID middleware adds correlation IDs."""

    @pytest.mark.asyncio
    async def test_response_includes_request_id_header(self, client):
        """Every response includes an X-Request-ID header."""
        resp = await client.get("/health")
        uuid.UUID(resp.headers["X-Request-ID"])

    @pytest.mark.asyncio
    async def test_client_provided_request_id_echoed(self, client):
        """Client-provided X-Request-ID is echoed back."""
        custom_id = "client-trace-12345"
        resp = await client.get("/health", headers={"X-Request-ID": custom_id})
        assert resp.headers["X-Request-ID"] == custom_id

    @pytest.mark.asyncio
    async def test_request_id_on_400_response(self, client):
        """Rejected searches still carry X-Request-ID."""
        resp = await client.post("/api/search", json={"query": " "})
        assert resp.status_code == 400
        assert "X-Request-ID" in resp.headers

    @pytest.mark.asyncio
    async def test_request_id_on_422_response(self, client):
        """Validation errors include X-Request-ID."""
        custom_id = "web-error-trace-abc123"
        resp = await client.post("/api/search", json={}, headers={"X-Request-ID": custom_id})
        assert resp.status_code == 422
        assert resp.headers["X-Request-ID"] == custom_id


class TestAccessLogging:
    """Verify HTTP access logging in the request_id middleware."""

    @pytest.mark.asyncio
    async def test_access_log_emitted(self, client):
        """Every HTTP request produces an http_request log entry."""
        with patch("app.main.logger") as mock_logger:
            await client.get("/health")
        event, = [c for c in mock_logger.info.call_args_list if c.args == ("http_request",)]
        assert event.kwargs["method"] == "GET"
        assert event.kwargs["path"] == "/health"
        assert event.kwargs["status"] == 200
        assert event.kwargs["duration_ms"] >= 0

    @pytest.mark.asyncio
    async def test_access_log_records_error_status(self, client):
        """Access log carries the status code of error responses."""
        with patch("app.main.logger") as mock_logger:
            await client.post("/api/search", json={"query": ""})
        statuses = [
            c.kwargs["status"]
            for c in mock_logger.info.call_args_list
            if c.args == ("http_request",)
        ]
        assert statuses == [400]


class TestLifespan:
    """Verify FastAPI lifespan creates and releases shared clients."""

    @pytest.mark.asyncio
    async def test_lifespan_creates_shared_state(self):
        """Startup stores the HTTP client, Gemini client and cache store on app.state."""
        gemini = MagicMock()
        store = InMemoryCacheStore()
        with (
            patch("app.main.get_client", return_value=gemini),
            patch("app.main.build_cache_store", return_value=store),
            patch("app.main.logger"),
        ):
            async with lifespan(app):
                assert isinstance(app.state.http_client, httpx.AsyncClient)
                assert app.state.gemini_client is gemini
                assert app.state.cache_store is store
            assert app.state.http_client.is_closed

    @pytest.mark.asyncio
    async def test_lifespan_closes_postgres_store(self):
        """Shutdown disposes the Postgres engine."""
        store = MagicMock(spec=PostgresCacheStore)
        store.close = AsyncMock()
        with (
            patch("app.main.get_client", return_value=None),
            patch("app.main.build_cache_store", return_value=store),
            patch("app.main.logger"),
        ):
            async with lifespan(app):
                pass
        store.close.assert_awaited_once()


class TestExceptionHandler:
    """Verify unhandled exceptions return consistent ErrorResponse JSON."""

    @pytest.mark.asyncio
    async def test_unhandled_exception_returns_500_json(self, client):
        """A fault outside the search route returns 500 with ErrorResponse shape, not HTML."""

        def broken_dependencies():
            raise RuntimeError("unexpected bug")

        app.dependency_overrides[get_search_dependencies] = broken_dependencies
        resp = await client.post("/api/search", json={"query": "water bottle"})
        assert resp.status_code == 500
        er = ErrorResponse.model_validate(resp.json())
        assert er.error == "internal_error"
        assert er.retryable is True
        assert er.details == "unexpected bug"
        uuid.UUID(resp.headers["X-Request-ID"])


class TestValidationErrorHandler:
    """Verify Pydantic validation errors return ErrorResponse JSON (not FastAPI's default)."""

    @pytest.mark.asyncio
    async def test_missing_query_returns_error_response_shape(self, client):
        """Missing required field returns 422 with ErrorResponse shape, not a detail array."""
        resp = await client.post("/api/search", json={})
        assert resp.status_code == 422
        er = ErrorResponse.model_validate(resp.json())
        assert er.error == "validation_error"
        assert er.retryable is False
        assert "query" in er.message

    @pytest.mark.asyncio
    async def test_invalid_sort_returns_error_response_shape(self, client):
        """Unknown sort option is rejected with the field location in the message."""
        resp = await client.post("/api/search", json={"query": "mug", "sort": "newest"})
        assert resp.status_code == 422
        er = ErrorResponse.model_validate(resp.json())
        assert er.error == "validation_error"
        assert "sort" in er.message


class TestOpenAPISchema:
    """Verify the OpenAPI schema exposes the public surface."""

    def test_paths_and_methods(self):
        schema = app.openapi()
        methods = {path: set(ops) for path, ops in schema["paths"].items()}
        assert methods == {"/health": {"get"}, "/api/search": {"post"}}

    def test_key_models_in_schema(self):
        schema_names = set(app.openapi()["components"]["schemas"])
        for model in ("SearchRequest", "SearchResponse", "Product", "Review", "ErrorResponse"):
            assert (
                model in schema_names
                or f"{model}-Input" in schema_names
                or f"{model}-Output" in schema_names
            ), model


class TestAppImports:
    """Verify the application modules import cleanly."""

    def test_config_importable(self):
        """Settings loads with sensible defaults."""
        from app.config import Settings

        s = Settings(_env_file=None)
        assert s.cache_ttl_hours == 24
        assert s.cache_backend in ("memory", "postgres")
        assert s.review_fetch_delay_seconds == pytest.approx(1.2)

    def test_db_base_importable(self):
        """SQLAlchemy Base exists for ORM models."""
        from app.models.db import Base

        assert Base is not None
