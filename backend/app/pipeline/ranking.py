"""Threshold filtering with a relaxation ladder, ordering and truncation."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import structlog

from app.models.contracts import Product, SearchFilters, SortOption

log = structlog.get_logger("pipeline.ranking")

# Over-fetch so the client-side price window still has candidates to show.
OVERFETCH_FACTOR = 3

ProductPredicate = Callable[[Product], bool]


def relaxation_ladder(filters: SearchFilters) -> list[tuple[str, ProductPredicate]]:
    """Filters from strictest to loosest; the last rung accepts everything."""
    min_rating = filters.min_rating or 0.0
    min_reviews = filters.min_reviews or 0
    return [
        (
            "strict",
            lambda p: p.rating >= min_rating and p.review_count >= min_reviews,
        ),
        ("relaxed", lambda p: p.review_count > 10 or p.rating > 0),
        ("unfiltered", lambda p: True),
    ]


def apply_filters(products: list[Product], filters: SearchFilters) -> list[Product]:
    """Walk the ladder until a rung keeps at least one product."""
    if not products:
        return []
    for rung, predicate in relaxation_ladder(filters):
        kept = [p for p in products if predicate(p)]
        if kept:
            log.info("products_filtered", rung=rung, before=len(products), after=len(kept))
            return kept
    return list(products)


def relevance_key(p: Product) -> tuple[Any, ...]:
    """Relevance desc, then rating desc, then review count desc."""
    return (-p.relevance_score, -p.rating, -p.review_count)


_SORT_KEYS: dict[str, Callable[[Product], tuple[Any, ...]]] = {
    "relevance": relevance_key,
    "price-high": lambda p: (-p.price, -p.relevance_score),
    "price-low": lambda p: (p.price, -p.relevance_score),
    "rating-high": lambda p: (-p.rating, -p.relevance_score),
    "rating-low": lambda p: (p.rating, -p.relevance_score),
    "reviews-high": lambda p: (-p.review_count, -p.relevance_score),
    "reviews-low": lambda p: (p.review_count, -p.relevance_score),
}


def sort_products(products: list[Product], option: SortOption = "relevance") -> list[Product]:
    """Stable sort; non-relevance orders fall back to relevance on ties."""
    return sorted(products, key=_SORT_KEYS.get(option, relevance_key))


def truncate(products: list[Product], max_results: int) -> list[Product]:
    return products[: max_results * OVERFETCH_FACTOR]


def apply_price_range(
    products: list[Product],
    price_min: float | None = None,
    price_max: float | None = None,
) -> list[Product]:
    """Inclusive price window; a missing bound is open."""
    return [
        p
        for p in products
        if (price_min is None or p.price >= price_min)
        and (price_max is None or p.price <= price_max)
    ]


def rank_products(products: list[Product], filters: SearchFilters) -> list[Product]:
    """filter -> relevance sort -> truncate to max_results x OVERFETCH_FACTOR."""
    filtered = apply_filters(products, filters)
    ranked = sort_products(filtered)
    return truncate(ranked, filters.max_results or 0)
