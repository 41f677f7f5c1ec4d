"""Search contract models shared by the pipeline, the cache and the API.

Wire format is camelCase (``reviewCount``, ``imageUrl``...) because the
browser front end consumes these payloads directly. Python code uses the
snake_case attribute names; both are accepted on input.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

DEFAULT_MIN_RATING = 4.0
DEFAULT_MIN_REVIEWS = 50
DEFAULT_MAX_RESULTS = 5
DEFAULT_PRICE_MIN = 0.0
DEFAULT_PRICE_MAX = 1000.0

SortOption = Literal[
    "relevance",
    "price-high",
    "price-low",
    "rating-high",
    "rating-low",
    "reviews-high",
    "reviews-low",
]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Extracted records ===


class Review(_CamelModel):
    rating: float = Field(gt=0, le=5)
    title: str = ""
    body: str = ""
    reviewer: str = "Amazon Customer"
    date: str = "Recent"  # "Mon D, YYYY", "Recent" or "N/A"


class Product(_CamelModel):
    """One marketplace listing parsed from a search-results page."""

    id: str
    asin: str
    title: str = Field(min_length=1)
    price: float = Field(ge=0)
    rating: float = Field(ge=0, le=5, default=0.0)  # 0 = unknown
    review_count: int = Field(ge=0, default=0)  # 0 = unknown
    image_url: str = ""
    amazon_link: str = ""
    relevance_score: int = Field(ge=0, default=0)
    reviews: list[Review] = []


# === API ===


class SearchFilters(_CamelModel):
    """Server-side thresholds. Missing or zero values mean "use the default"."""

    min_rating: float | None = None
    min_reviews: int | None = None
    max_results: int | None = None

    @model_validator(mode="after")
    def _apply_defaults(self) -> SearchFilters:
        if not self.min_rating:
            self.min_rating = DEFAULT_MIN_RATING
        if not self.min_reviews:
            self.min_reviews = DEFAULT_MIN_REVIEWS
        if not self.max_results or self.max_results < 0:
            self.max_results = DEFAULT_MAX_RESULTS
        return self


class SearchRequest(_CamelModel):
    query: str
    filters: SearchFilters | None = None
    # Presentation options; when absent the raw pipeline output is returned.
    sort: SortOption | None = None
    price_min: float | None = None
    price_max: float | None = None

    def resolved_filters(self) -> SearchFilters:
        return self.filters or SearchFilters()


class SearchResponse(_CamelModel):
    products: list[Product]
    cached: bool


class CacheEntry(BaseModel):
    """A stored search result set, keyed by the normalized query."""

    query: str
    results: list[dict[str, Any]]
    created_at: datetime


class ErrorResponse(BaseModel):
    error: str
    message: str
    retryable: bool
    details: str | None = None
