"""Search pipeline: query -> ranked, review-enriched product list.

RECEIVED -> CACHE_CHECK -> CACHE_HIT -> DONE
                        -> NORMALIZE -> EXTRACT -> SCORE -> FILTER -> SORT
                           -> TRUNCATE -> REVIEW_ENRICH -> CACHE_WRITE -> DONE

Collaborators (HTTP client, keyword model client, cache store) are passed in
via ``SearchDependencies`` so tests can swap in fakes. Upstream failures
degrade to fallbacks inside each stage; the only error that escapes is an
invalid (empty) query.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import StrEnum
from typing import TYPE_CHECKING

import structlog

from app.config import settings
from app.models.contracts import Product, SearchFilters
from app.pipeline.cache import CacheStore, read_cache, write_cache
from app.pipeline.keywords import normalize_keywords
from app.pipeline.outcomes import ErrorKind
from app.pipeline.products import search_products
from app.pipeline.ranking import apply_filters, sort_products, truncate
from app.pipeline.relevance import annotate_relevance
from app.pipeline.reviews import enrich_with_reviews
from app.utils.tracing import traceable

if TYPE_CHECKING:
    import httpx
    from google import genai

log = structlog.get_logger("pipeline.search")


class SearchStage(StrEnum):
    RECEIVED = "received"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    NORMALIZE = "normalize"
    EXTRACT = "extract"
    SCORE = "score"
    FILTER = "filter"
    SORT = "sort"
    TRUNCATE = "truncate"
    REVIEW_ENRICH = "review_enrich"
    CACHE_WRITE = "cache_write"
    DONE = "done"


class InvalidQueryError(ValueError):
    """The query is empty or whitespace-only."""

    kind = ErrorKind.VALIDATION


@dataclass
class SearchDependencies:
    http_client: httpx.AsyncClient
    cache_store: CacheStore
    gemini_client: genai.Client | None = None
    review_delay: float | None = None  # None -> settings.review_fetch_delay_seconds


@dataclass
class SearchResult:
    products: list[Product]
    cached: bool
    keywords: str | None = None


def _stage(stage: SearchStage, **context: object) -> None:
    log.debug("search_stage", stage=stage, **context)


@traceable(name="search_pipeline")
async def run_search(
    query: str,
    filters: SearchFilters,
    deps: SearchDependencies,
    now: datetime | None = None,
) -> SearchResult:
    """Run one search request through the cache and the extraction pipeline."""
    _stage(SearchStage.RECEIVED, query=query)
    if not query or not query.strip():
        raise InvalidQueryError("Query is required")

    now = now or datetime.now(UTC)
    ttl = timedelta(hours=settings.cache_ttl_hours)

    _stage(SearchStage.CACHE_CHECK)
    cached = await read_cache(deps.cache_store, query, now, ttl)
    if cached is not None:
        _stage(SearchStage.CACHE_HIT, count=len(cached))
        _stage(SearchStage.DONE, cached=True)
        return SearchResult(products=cached, cached=True)

    log.info(
        "search_pipeline_start",
        query=query,
        min_rating=filters.min_rating,
        min_reviews=filters.min_reviews,
        max_results=filters.max_results,
    )

    _stage(SearchStage.NORMALIZE)
    keywords = await normalize_keywords(query, deps.gemini_client)

    _stage(SearchStage.EXTRACT, keywords=keywords)
    products = await search_products(deps.http_client, keywords)

    _stage(SearchStage.SCORE, count=len(products))
    products = annotate_relevance(products, keywords)

    _stage(SearchStage.FILTER)
    products = apply_filters(products, filters)

    _stage(SearchStage.SORT, count=len(products))
    products = sort_products(products)

    _stage(SearchStage.TRUNCATE)
    products = truncate(products, filters.max_results or 0)

    _stage(SearchStage.REVIEW_ENRICH, count=len(products))
    products = await enrich_with_reviews(deps.http_client, products, now, deps.review_delay)

    _stage(SearchStage.CACHE_WRITE)
    await write_cache(deps.cache_store, query, products, now)

    log.info("search_pipeline_complete", query=query, keywords=keywords, returned=len(products))
    _stage(SearchStage.DONE, cached=False)
    return SearchResult(products=products, cached=False, keywords=keywords)
