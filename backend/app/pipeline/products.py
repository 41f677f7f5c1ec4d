"""Product extractor: marketplace search-results HTML -> list[Product].

Markup on the results page changes often and varies between layouts, so
every field is read through an ordered chain of small strategy functions
(``Tag -> value | None``); the first strategy that produces a value wins.
Candidate nodes are located the same way, trying the most specific selector
first.

A node that is missing its identifier, title or price is skipped. A node that
blows up while parsing is logged and skipped; its siblings still get parsed.
If nothing usable comes out of the page, the canned sample set is returned.
"""

from __future__ import annotations

import asyncio
import re
from collections.abc import Callable, Sequence
from typing import TYPE_CHECKING, TypeVar

import structlog
from bs4 import BeautifulSoup, Tag

from app.config import settings
from app.models.contracts import Product
from app.pipeline.outcomes import ErrorKind, fallback_for
from app.utils.http import fetch_html, product_link, search_url

if TYPE_CHECKING:
    import httpx

log = structlog.get_logger("pipeline.products")

T = TypeVar("T")
Strategy = Callable[[Tag], T | None]

PRODUCT_SELECTORS: tuple[str, ...] = (
    '[data-component-type="s-search-result"]',
    ".s-result-item[data-asin]",
    'div[data-asin]:not([data-asin=""])',
)

_PRICE_RE = re.compile(r"\$([\d,.]+)")
_ARIA_RATING_RE = re.compile(r"([\d.]+)\s*out\s*of\s*5\s*stars", re.IGNORECASE)
_LEADING_NUMBER_RE = re.compile(r"([\d.]+)")
_TEXT_RATING_RE = re.compile(r"([\d.]+)\s*out\s*of\s*5", re.IGNORECASE)
_ARIA_COUNT_RE = re.compile(r"([\d,]+)\s*(rating|review)s?", re.IGNORECASE)
_TEXT_COUNT_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"([\d,]+)\s*ratings?", re.IGNORECASE),
    re.compile(r"([\d,]+)\s*reviews?", re.IGNORECASE),
    re.compile(r"\(([\d,]+)\)"),
)
_WHITESPACE_RE = re.compile(r"\s+")


def first_match(strategies: Sequence[Strategy[T]], node: Tag) -> T | None:
    """Apply strategies in order; return the first non-None result."""
    for strategy in strategies:
        value = strategy(node)
        if value is not None:
            return value
    return None


def _to_float(text: str) -> float | None:
    try:
        return float(text)
    except ValueError:
        return None


def _to_int(text: str) -> int | None:
    digits = text.replace(",", "")
    return int(digits) if digits.isdigit() else None


def _joined_text(node: Tag, selector: str) -> str | None:
    text = " ".join(el.get_text() for el in node.select(selector))
    text = _WHITESPACE_RE.sub(" ", text).strip()
    return text or None


def _first_text(node: Tag, selector: str) -> str:
    el = node.select_one(selector)
    return el.get_text().strip() if el else ""


def _aria_labels(node: Tag) -> list[str]:
    return [str(el.get("aria-label", "")) for el in node.select("[aria-label]")]


def _valid_rating(value: float | None) -> float | None:
    if value is None or not 0 < value <= 5:
        return None
    return value


# === Title ===


def _title_from_heading_link(node: Tag) -> str | None:
    return _joined_text(node, "h2 a span")


def _title_from_heading(node: Tag) -> str | None:
    return _joined_text(node, "h2 span")


def _title_from_normal_text(node: Tag) -> str | None:
    return _joined_text(node, ".a-text-normal")


TITLE_STRATEGIES: tuple[Strategy[str], ...] = (
    _title_from_heading_link,
    _title_from_heading,
    _title_from_normal_text,
)


# === Price ===


def _price_from_parts(node: Tag) -> float | None:
    """``.a-price-whole`` + ``.a-price-fraction`` -> whole.fraction."""
    whole = _first_text(node, ".a-price-whole").replace(",", "").replace("$", "")
    # The whole part usually carries the decimal point as a child span ("24.")
    whole = whole.rstrip(".").strip()
    if not whole:
        return None
    fraction = _first_text(node, ".a-price-fraction") or "00"
    return _to_float(f"{whole}.{fraction}")


def _price_from_offscreen(node: Tag) -> float | None:
    match = _PRICE_RE.search(_first_text(node, ".a-price .a-offscreen"))
    if not match:
        return None
    return _to_float(match.group(1).replace(",", ""))


PRICE_STRATEGIES: tuple[Strategy[float], ...] = (
    _price_from_parts,
    _price_from_offscreen,
)


# === Rating ===


def _rating_from_aria_labels(node: Tag) -> float | None:
    for label in _aria_labels(node):
        match = _ARIA_RATING_RE.search(label)
        if match:
            return _valid_rating(_to_float(match.group(1)))
    return None


def _rating_from_icon_alt(node: Tag) -> float | None:
    match = _LEADING_NUMBER_RE.search(_first_text(node, ".a-icon-star-small .a-icon-alt"))
    return _valid_rating(_to_float(match.group(1))) if match else None


def _rating_from_text(node: Tag) -> float | None:
    match = _TEXT_RATING_RE.search(node.get_text(" "))
    return _valid_rating(_to_float(match.group(1))) if match else None


RATING_STRATEGIES: tuple[Strategy[float], ...] = (
    _rating_from_aria_labels,
    _rating_from_icon_alt,
    _rating_from_text,
)


# === Review count ===


def _review_count_from_aria_labels(node: Tag) -> int | None:
    """Largest "N ratings"/"N reviews" count across all labels.

    Result cards can carry several labels (e.g. a per-variant count next to
    the listing total); the largest one is the listing total.
    """
    best = 0
    for label in _aria_labels(node):
        match = _ARIA_COUNT_RE.search(label)
        if match:
            best = max(best, _to_int(match.group(1)) or 0)
    return best or None


def _review_count_from_text(node: Tag) -> int | None:
    text = node.get_text(" ")
    for pattern in _TEXT_COUNT_PATTERNS:
        match = pattern.search(text)
        if match:
            count = _to_int(match.group(1))
            if count is not None:
                return count
    return None


REVIEW_COUNT_STRATEGIES: tuple[Strategy[int], ...] = (
    _review_count_from_aria_labels,
    _review_count_from_text,
)


# === Image ===


def _image_from_result_class(node: Tag) -> str | None:
    el = node.select_one(".s-image")
    src = el.get("src") if el else None
    return str(src) if src else None


def _image_from_first_img(node: Tag) -> str | None:
    el = node.find("img")
    src = el.get("src") if isinstance(el, Tag) else None
    return str(src) if src else None


IMAGE_STRATEGIES: tuple[Strategy[str], ...] = (
    _image_from_result_class,
    _image_from_first_img,
)


# === Fallback sample set ===

_FALLBACK_PRODUCTS: tuple[dict, ...] = (
    {
        "asin": "B08N5WRWNW",
        "title": "YETI Rambler 36 oz Vacuum Insulated Stainless Steel Bottle",
        "price": 50.00,
        "rating": 4.8,
        "review_count": 12543,
        "image_url": "https://images.unsplash.com/photo-1602143407151-7111542de6e8?w=400",
    },
    {
        "asin": "B07VNSVY31",
        "title": "Hydro Flask Water Bottle - Stainless Steel Insulated",
        "price": 44.95,
        "rating": 4.7,
        "review_count": 8932,
        "image_url": "https://images.unsplash.com/photo-1523362628745-0c100150b504?w=400",
    },
    {
        "asin": "B09KLJN3TR",
        "title": "CamelBak Chute Mag BPA Free Water Bottle - 32 oz",
        "price": 35.00,
        "rating": 4.6,
        "review_count": 5421,
        "image_url": "https://images.unsplash.com/photo-1590879491867-b8e2e5e5b1c2?w=400",
    },
    {
        "asin": "B083QDVPS1",
        "title": "Nalgene Tritan Wide Mouth BPA-Free Water Bottle",
        "price": 12.99,
        "rating": 4.5,
        "review_count": 3456,
        "image_url": "https://images.unsplash.com/photo-1612464040571-d4ed9b7eb579?w=400",
    },
)


def fallback_products() -> list[Product]:
    """Fresh copies of the canned sample products."""
    return [
        Product(id=p["asin"], amazon_link=product_link(p["asin"]), **p)
        for p in _FALLBACK_PRODUCTS
    ]


# === Extraction ===


def find_product_nodes(soup: BeautifulSoup) -> list[Tag]:
    """Candidate nodes from the first selector that matches anything."""
    for selector in PRODUCT_SELECTORS:
        nodes = soup.select(selector)
        if nodes:
            log.debug("product_nodes_found", selector=selector, count=len(nodes))
            return nodes
    return []


def parse_product_node(node: Tag) -> Product | None:
    """Build a Product from one result card, or None if it isn't usable."""
    asin = str(node.get("data-asin") or "").strip()
    if not asin:
        return None

    title = first_match(TITLE_STRATEGIES, node)
    if not title:
        return None

    price = first_match(PRICE_STRATEGIES, node) or 0.0
    if price <= 0:
        return None

    rating = first_match(RATING_STRATEGIES, node) or 0.0
    review_count = first_match(REVIEW_COUNT_STRATEGIES, node) or 0
    if rating <= 0 and review_count <= 0:
        return None

    return Product(
        id=asin,
        asin=asin,
        title=title,
        price=price,
        rating=rating,
        review_count=review_count,
        image_url=first_match(IMAGE_STRATEGIES, node) or "",
        amazon_link=product_link(asin),
    )


def parse_search_results(html: str) -> list[Product]:
    """Every usable product on the page, in document order. May be empty."""
    soup = BeautifulSoup(html, "html.parser")
    nodes = find_product_nodes(soup)

    products: list[Product] = []
    seen: set[str] = set()
    skipped = 0
    for node in nodes:
        try:
            product = parse_product_node(node)
        except Exception as exc:
            log.warning(
                "product_parse_failed",
                asin=node.get("data-asin"),
                error=str(exc)[:200],
                error_type=type(exc).__name__,
                action=fallback_for(ErrorKind.PARSE),
            )
            skipped += 1
            continue
        if product is None or product.asin in seen:
            skipped += 1
            continue
        seen.add(product.asin)
        products.append(product)

    log.info("products_parsed", candidates=len(nodes), parsed=len(products), skipped=skipped)
    return products


def extract_products(html: str) -> list[Product]:
    """Parse a results page; fall back to the sample set if nothing parses."""
    try:
        products = parse_search_results(html)
    except Exception as exc:
        log.error(
            "product_extraction_failed",
            error=str(exc)[:200],
            error_type=type(exc).__name__,
        )
        products = []

    if not products:
        log.warning("products_fallback", reason="no_usable_products")
        return fallback_products()
    return products


async def search_products(client: httpx.AsyncClient, keywords: str) -> list[Product]:
    """Fetch the marketplace results page for ``keywords`` and extract products."""
    url = search_url(keywords)
    outcome = await fetch_html(client, url, settings.search_timeout_seconds)
    if not outcome.ok:
        log.warning(
            "products_fallback",
            reason=outcome.error,
            detail=outcome.detail,
            action=outcome.fallback,
        )
        return fallback_products()
    # Parsing a full results page blocks; keep it off the event loop.
    return await asyncio.to_thread(extract_products, outcome.unwrap_or(""))
