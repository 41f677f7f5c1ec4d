"""Tests for the review extractor and the sequential review enrichment."""

from __future__ import annotations

import threading
from datetime import date
from unittest.mock import AsyncMock, call, patch

import pytest

from app.models.contracts import Product
from app.pipeline import reviews as reviews_mod
from app.pipeline.reviews import (
    enrich_with_reviews,
    extract_reviews,
    fetch_reviews,
    format_review_date,
    months_before,
    parse_review_date,
    placeholder_review,
)
from tests.html_fixtures import NOW, review_node, review_page


def _product(asin: str = "B0TEST", rating: float = 4.4) -> Product:
    return Product(
        id=asin,
        asin=asin,
        title="Steel Water Bottle",
        price=20.0,
        rating=rating,
        review_count=120,
    )


class TestDates:
    """Calendar-month cutoff and date formatting."""

    def test_months_before_same_day(self):
        assert months_before(date(2026, 10, 19), 3) == date(2026, 7, 19)

    def test_months_before_crosses_year(self):
        assert months_before(date(2026, 2, 10), 3) == date(2025, 11, 10)

    def test_months_before_clamps_to_month_end(self):
        assert months_before(date(2026, 5, 31), 3) == date(2026, 2, 28)

    def test_parse_full_month_name(self):
        text = "Reviewed in the United States on March 3, 2026"
        assert parse_review_date(text) == date(2026, 3, 3)

    def test_parse_abbreviated_month(self):
        assert parse_review_date("Reviewed on Sept 20, 2026") == date(2026, 9, 20)

    def test_unparseable_date(self):
        assert parse_review_date("Reviewed recently") is None

    def test_format(self):
        assert format_review_date(date(2026, 9, 5)) == "Sep 5, 2026"
        assert format_review_date(None) == "Recent"


class TestExtractReviews:
    """Parsing a review page into at most three recent reviews."""

    def test_parses_single_review(self):
        (review,) = extract_reviews(review_page(review_node()), NOW)
        assert review.rating == 5.0
        assert review.title == "Keeps water cold all day"
        assert review.body == "Bought this for hiking and it has been great."
        assert review.reviewer == "Jamie"
        assert review.date == "Sep 20, 2026"

    def test_caps_at_three(self):
        html = review_page(*[review_node(title=f"Review {i}") for i in range(6)])
        reviews = extract_reviews(html, NOW)
        assert [r.title for r in reviews] == ["Review 0", "Review 1", "Review 2"]

    def test_scans_only_first_eight_nodes(self):
        stale = "Reviewed in the United States on January 2, 2024"
        nodes = [review_node(date=stale) for _ in range(8)]
        nodes.append(review_node(title="Ninth"))
        assert extract_reviews(review_page(*nodes), NOW) == []

    def test_skips_zero_rating(self):
        html = review_page(review_node(rating=None), review_node(title="Rated"))
        assert [r.title for r in extract_reviews(html, NOW)] == ["Rated"]

    def test_drops_reviews_older_than_three_months(self):
        html = review_page(
            review_node(title="Old", date="Reviewed in the United States on July 18, 2026"),
            review_node(title="Edge", date="Reviewed in the United States on July 19, 2026"),
        )
        assert [r.title for r in extract_reviews(html, NOW)] == ["Edge"]

    def test_undated_review_kept_as_recent(self):
        (review,) = extract_reviews(review_page(review_node(date="Reviewed recently")), NOW)
        assert review.date == "Recent"

    def test_long_body_truncated(self):
        (review,) = extract_reviews(review_page(review_node(body="x" * 450)), NOW)
        assert review.body == "x" * 300 + "..."

    def test_read_more_suffix_removed(self):
        (review,) = extract_reviews(review_page(review_node(body="Solid lid. Read more")), NOW)
        assert review.body == "Solid lid."

    def test_default_reviewer(self):
        (review,) = extract_reviews(review_page(review_node(reviewer=None)), NOW)
        assert review.reviewer == "Amazon Customer"

    def test_empty_title_and_body_skipped(self):
        assert extract_reviews(review_page(review_node(title=None, body=None)), NOW) == []

    def test_cmps_rating_hook(self):
        html = review_page(review_node()).replace("review-star-rating", "cmps-review-star-rating")
        (review,) = extract_reviews(html, NOW)
        assert review.rating == 5.0

    def test_no_review_nodes(self):
        assert extract_reviews("<html><body>Sign in</body></html>", NOW) == []


class TestPlaceholderReview:
    def test_uses_product_rating(self):
        review = placeholder_review(_product(rating=4.2))
        assert review.rating == 4.2
        assert review.title == "No recent reviews"
        assert review.body == ""
        assert review.reviewer == "System"
        assert review.date == "N/A"

    def test_unknown_rating_defaults(self):
        assert placeholder_review(_product(rating=0.0)).rating == 4.5


class TestFetchReviews:
    """Network failures become an empty list, never an exception."""

    @pytest.mark.asyncio
    async def test_fetches_recent_first_page(self, marketplace):
        marketplace.reviews["B0TEST"] = review_page(review_node())
        reviews = await fetch_reviews(marketplace.client, "B0TEST", NOW)
        assert len(reviews) == 1
        (request,) = marketplace.review_requests
        assert request.url.path == "/product-reviews/B0TEST/"
        assert request.url.params["sortBy"] == "recent"

    @pytest.mark.asyncio
    async def test_http_error_returns_empty(self, marketplace):
        assert await fetch_reviews(marketplace.client, "MISSING", NOW) == []

    @pytest.mark.asyncio
    async def test_parses_in_worker_thread(self, marketplace):
        marketplace.reviews["B0TEST"] = review_page(review_node())
        real = reviews_mod.extract_reviews
        parse_threads = []

        def recording(html, now):
            parse_threads.append(threading.get_ident())
            return real(html, now)

        with patch.object(reviews_mod, "extract_reviews", recording):
            reviews = await fetch_reviews(marketplace.client, "B0TEST", NOW)

        assert len(reviews) == 1
        assert parse_threads and parse_threads[0] != threading.get_ident()


class TestEnrichWithReviews:
    """Every product leaves enrichment with one to three reviews."""

    @pytest.mark.asyncio
    async def test_attaches_reviews_and_placeholder(self, marketplace):
        marketplace.reviews["A1"] = review_page(*[review_node() for _ in range(5)])
        products = [_product("A1"), _product("A2", rating=3.9)]

        enriched = await enrich_with_reviews(marketplace.client, products, NOW, delay=0)

        assert [p.asin for p in enriched] == ["A1", "A2"]
        assert len(enriched[0].reviews) == 3
        (placeholder,) = enriched[1].reviews
        assert placeholder.title == "No recent reviews"
        assert placeholder.rating == 3.9
        assert products[0].reviews == []

    @pytest.mark.asyncio
    async def test_fetches_sequentially_in_order(self, marketplace):
        products = [_product(f"A{i}") for i in range(3)]
        await enrich_with_reviews(marketplace.client, products, NOW, delay=0)
        paths = [r.url.path for r in marketplace.review_requests]
        assert paths == [f"/product-reviews/A{i}/" for i in range(3)]

    @pytest.mark.asyncio
    async def test_sleeps_before_each_fetch(self, marketplace):
        with patch.object(reviews_mod.asyncio, "sleep", new_callable=AsyncMock) as sleep:
            await enrich_with_reviews(
                marketplace.client, [_product("A1"), _product("A2")], NOW, delay=1.2
            )
        sleep.assert_has_awaits([call(1.2), call(1.2)])

    @pytest.mark.asyncio
    async def test_zero_delay_does_not_sleep(self, marketplace):
        with patch.object(reviews_mod.asyncio, "sleep", new_callable=AsyncMock) as sleep:
            await enrich_with_reviews(marketplace.client, [_product("A1")], NOW, delay=0)
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_empty_product_list(self, marketplace):
        assert await enrich_with_reviews(marketplace.client, [], NOW, delay=0) == []
