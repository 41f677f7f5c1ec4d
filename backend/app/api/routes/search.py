"""Search endpoint: validates the request and runs the search pipeline.

Without presentation options the response is the raw pipeline output (up to
``maxResults x 3`` products so the client can price-filter locally). When
``sort``, ``priceMin`` or ``priceMax`` is supplied the route applies them and
trims to ``maxResults`` itself.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from app.api.dependencies import get_search_dependencies
from app.models.contracts import ErrorResponse, SearchRequest, SearchResponse
from app.pipeline.ranking import apply_price_range, sort_products
from app.pipeline.search import InvalidQueryError, SearchDependencies, run_search

logger = structlog.get_logger()

router = APIRouter(tags=["search"])


def _error(status_code: int, body: ErrorResponse) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=body.model_dump())


def _invalid_query(message: str) -> JSONResponse:
    return _error(
        400,
        ErrorResponse(error="invalid_query", message=message, retryable=False),
    )


@router.post(
    "/search",
    response_model=SearchResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def search(
    body: SearchRequest,
    deps: SearchDependencies = Depends(get_search_dependencies),
) -> SearchResponse | JSONResponse:
    """Search the marketplace for products matching a free-text request."""
    if not body.query.strip():
        return _invalid_query("Query is required")

    filters = body.resolved_filters()
    logger.info(
        "search_request",
        query=body.query,
        min_rating=filters.min_rating,
        min_reviews=filters.min_reviews,
        max_results=filters.max_results,
        sort=body.sort,
    )

    try:
        result = await run_search(body.query, filters, deps)
    except InvalidQueryError as exc:
        return _invalid_query(str(exc))
    except Exception as exc:
        logger.error(
            "search_failed",
            query=body.query,
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        return _error(
            500,
            ErrorResponse(
                error="search_failed",
                message="Failed to process search",
                retryable=True,
                details=str(exc),
            ),
        )

    products = result.products
    if body.sort is not None or body.price_min is not None or body.price_max is not None:
        products = apply_price_range(products, body.price_min, body.price_max)
        products = sort_products(products, body.sort or "relevance")
        products = products[: filters.max_results]

    return SearchResponse(products=products, cached=result.cached)
