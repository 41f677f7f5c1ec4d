"""Marketplace HTTP helpers shared by the product and review scrapers.

All fetches go through ``fetch_html`` which never raises for transport
problems: timeouts, network errors, HTTP error statuses and blank bodies come
back as a failed ``Outcome`` so each caller can apply its own fallback.
"""

from __future__ import annotations

import urllib.parse
from typing import TYPE_CHECKING

import structlog

from app.config import settings
from app.pipeline.outcomes import ErrorKind, Outcome

if TYPE_CHECKING:
    import httpx

logger = structlog.get_logger()

SCRAPER_API_URL = "http://api.scraperapi.com"
PRODUCT_LINK_BASE = "https://amazon.com/dp/"

_BROWSER_HEADERS: dict[str, str] = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/121.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.5",
    "Accept-Encoding": "gzip, deflate, br",
    "Connection": "keep-alive",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest": "document",
    "Sec-Fetch-Mode": "navigate",
    "Sec-Fetch-Site": "none",
}


def browser_headers() -> dict[str, str]:
    """Headers for direct marketplace requests (copy, safe to mutate)."""
    return dict(_BROWSER_HEADERS)


def search_url(keywords: str) -> str:
    base = settings.marketplace_base_url.rstrip("/")
    return f"{base}/s?k={urllib.parse.quote(keywords, safe='')}"


def reviews_url(asin: str) -> str:
    base = settings.marketplace_base_url.rstrip("/")
    return f"{base}/product-reviews/{urllib.parse.quote(asin, safe='')}/?sortBy=recent"


def product_link(asin: str) -> str:
    return f"{PRODUCT_LINK_BASE}{asin}"


def build_fetch_url(target_url: str) -> str:
    """Route through the scraping proxy when SCRAPER_API_KEY is configured."""
    if not settings.scraper_api_key:
        return target_url
    params = urllib.parse.urlencode(
        {"api_key": settings.scraper_api_key, "url": target_url, "country_code": "us"}
    )
    return f"{SCRAPER_API_URL}?{params}"


async def fetch_html(client: httpx.AsyncClient, url: str, timeout: float) -> Outcome[str]:
    """GET a marketplace page, bounded by ``timeout`` seconds."""
    import httpx

    proxied = bool(settings.scraper_api_key)
    headers = {} if proxied else browser_headers()
    try:
        response = await client.get(
            build_fetch_url(url),
            headers=headers,
            timeout=timeout,
            follow_redirects=True,
        )
    except httpx.TimeoutException:
        logger.warning("marketplace_fetch_timeout", url=url[:120], timeout=timeout)
        return Outcome.failure(ErrorKind.TIMEOUT, f"Timed out after {timeout}s: {url[:120]}")
    except httpx.RequestError as exc:
        logger.warning(
            "marketplace_fetch_network_error",
            url=url[:120],
            error_type=type(exc).__name__,
        )
        return Outcome.failure(ErrorKind.NETWORK, f"{type(exc).__name__}: {url[:120]}")

    if response.status_code >= 400:
        logger.warning("marketplace_fetch_http_error", url=url[:120], status=response.status_code)
        return Outcome.failure(ErrorKind.HTTP_STATUS, f"HTTP {response.status_code}: {url[:120]}")

    html = response.text
    if not html.strip():
        logger.warning("marketplace_fetch_empty_body", url=url[:120])
        return Outcome.failure(ErrorKind.EMPTY, f"Empty body: {url[:120]}")

    logger.debug(
        "marketplace_fetch_ok",
        url=url[:120],
        proxied=proxied,
        content_length=len(html),
    )
    return Outcome.success(html)
