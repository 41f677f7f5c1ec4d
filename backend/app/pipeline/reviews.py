"""Review extractor: product review-page HTML -> up to 3 recent reviews.

Only the first ``MAX_REVIEW_CANDIDATES`` review nodes are inspected and
extraction stops as soon as ``MAX_REVIEWS`` have been accepted. Reviews dated
more than three calendar months before the reference time are dropped;
reviews without a parseable date are kept and shown as "Recent".
"""

from __future__ import annotations

import asyncio
import calendar
import re
from datetime import date, datetime
from typing import TYPE_CHECKING

import structlog
from bs4 import BeautifulSoup, Tag

from app.config import settings
from app.models.contracts import Product, Review
from app.pipeline.outcomes import ErrorKind, fallback_for
from app.utils.http import fetch_html, reviews_url

if TYPE_CHECKING:
    import httpx

log = structlog.get_logger("pipeline.reviews")

MAX_REVIEWS = 3
MAX_REVIEW_CANDIDATES = 8
RECENCY_MONTHS = 3
MAX_BODY_CHARS = 300
DEFAULT_REVIEWER = "Amazon Customer"

REVIEW_NODE_SELECTOR = '[data-hook="review"]'
_DATE_SELECTOR = '[data-hook="review-date"]'
_RATING_SELECTOR = '[data-hook="review-star-rating"], [data-hook="cmps-review-star-rating"]'
_TITLE_SELECTOR = '[data-hook="review-title"]'
_BODY_SELECTOR = '[data-hook="review-body"]'
_REVIEWER_SELECTOR = ".a-profile-name"

_DATE_RE = re.compile(r"on\s+([A-Za-z]+)\s+(\d{1,2}),\s*(\d{4})")
_RATING_RE = re.compile(r"([\d.]+)\s*out\s*of", re.IGNORECASE)
_TITLE_STARS_PREFIX_RE = re.compile(r"^\s*[\d.]+\s*out\s*of\s*5\s*stars\s*", re.IGNORECASE)
_READ_MORE_RE = re.compile(r"\s*Read more\s*$", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


def months_before(reference: date, months: int) -> date:
    """Same day ``months`` calendar months earlier, clamped to month end."""
    month_index = reference.year * 12 + (reference.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(reference.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def parse_review_date(text: str) -> date | None:
    """Parse "Reviewed in the United States on March 3, 2025" style strings."""
    match = _DATE_RE.search(text)
    if not match:
        return None
    try:
        return datetime.strptime(
            f"{match.group(1)} {match.group(2)} {match.group(3)}", "%B %d %Y"
        ).date()
    except ValueError:
        pass
    try:
        return datetime.strptime(
            f"{match.group(1)[:3]} {match.group(2)} {match.group(3)}", "%b %d %Y"
        ).date()
    except ValueError:
        return None


def format_review_date(value: date | None) -> str:
    if value is None:
        return "Recent"
    return f"{value.strftime('%b')} {value.day}, {value.year}"


def _text(node: Tag, selector: str) -> str:
    el = node.select_one(selector)
    if el is None:
        return ""
    return _WHITESPACE_RE.sub(" ", el.get_text(" ")).strip()


def _clean_title(raw: str) -> str:
    return _TITLE_STARS_PREFIX_RE.sub("", raw).strip()


def _clean_body(raw: str) -> str:
    body = _READ_MORE_RE.sub("", raw).strip()
    if len(body) > MAX_BODY_CHARS:
        body = body[:MAX_BODY_CHARS].rstrip() + "..."
    return body


def parse_review_node(node: Tag, cutoff: date) -> Review | None:
    """Build a Review from one review node, or None if it should be skipped."""
    review_date = parse_review_date(_text(node, _DATE_SELECTOR))
    if review_date is not None and review_date < cutoff:
        return None

    match = _RATING_RE.search(_text(node, _RATING_SELECTOR))
    rating = float(match.group(1)) if match else 0.0
    if not 0 < rating <= 5:
        return None

    title = _clean_title(_text(node, _TITLE_SELECTOR))
    body = _clean_body(_text(node, _BODY_SELECTOR))
    if not title and not body:
        return None

    return Review(
        rating=rating,
        title=title,
        body=body,
        reviewer=_text(node, _REVIEWER_SELECTOR) or DEFAULT_REVIEWER,
        date=format_review_date(review_date),
    )


def extract_reviews(html: str, now: datetime) -> list[Review]:
    """Up to MAX_REVIEWS recent, well-formed reviews from a review page."""
    cutoff = months_before(now.date(), RECENCY_MONTHS)
    soup = BeautifulSoup(html, "html.parser")
    candidates = soup.select(REVIEW_NODE_SELECTOR)[:MAX_REVIEW_CANDIDATES]

    reviews: list[Review] = []
    for node in candidates:
        try:
            review = parse_review_node(node, cutoff)
        except Exception as exc:
            log.warning(
                "review_parse_failed",
                error=str(exc)[:200],
                error_type=type(exc).__name__,
                action=fallback_for(ErrorKind.PARSE),
            )
            continue
        if review is not None:
            reviews.append(review)
        if len(reviews) >= MAX_REVIEWS:
            break
    return reviews


def placeholder_review(product: Product) -> Review:
    """Stand-in shown when a product has no recent reviews."""
    return Review(
        rating=product.rating or 4.5,
        title="No recent reviews",
        body="",
        reviewer="System",
        date="N/A",
    )


async def fetch_reviews(client: httpx.AsyncClient, asin: str, now: datetime) -> list[Review]:
    """Fetch and parse the review page for ``asin``. Empty list on any failure."""
    outcome = await fetch_html(client, reviews_url(asin), settings.review_timeout_seconds)
    if not outcome.ok:
        log.warning(
            "reviews_fetch_failed",
            asin=asin,
            reason=outcome.error,
            detail=outcome.detail,
            action=outcome.fallback,
        )
        return []
    try:
        return await asyncio.to_thread(extract_reviews, outcome.unwrap_or(""), now)
    except Exception as exc:
        log.warning(
            "reviews_extraction_failed",
            asin=asin,
            error=str(exc)[:200],
            error_type=type(exc).__name__,
        )
        return []


async def enrich_with_reviews(
    client: httpx.AsyncClient,
    products: list[Product],
    now: datetime,
    delay: float | None = None,
) -> list[Product]:
    """Attach reviews to each product, one fetch at a time.

    Fetches are sequential with a fixed pause before each one to stay under
    the marketplace's rate limit. Every product ends up with 1-3 reviews.
    """
    pause = settings.review_fetch_delay_seconds if delay is None else delay
    enriched: list[Product] = []
    for product in products:
        if pause > 0:
            await asyncio.sleep(pause)
        reviews = await fetch_reviews(client, product.asin, now)
        if not reviews:
            reviews = [placeholder_review(product)]
        log.info("reviews_attached", asin=product.asin, count=len(reviews))
        enriched.append(product.model_copy(update={"reviews": reviews}))
    return enriched
