"""
Repair Quote API Routes

Base URL: /api/v1/
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status

from repairquote import __version__
from repairquote.api.schemas import (
    BudgetResponse,
    ErrorResponse,
    HealthResponse,
    RateResponse,
    SourceInfo,
)
from repairquote.computation.budget import BudgetCalculator
from repairquote.computation.money import format_rate
from repairquote.models import BudgetRequest, Resolution
from repairquote.providers.resolver import RateResolver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", tags=["Repair Quote"])


def get_resolver(request: Request) -> RateResolver:
    """Resolver built once at startup (see main.create_app)."""
    return request.app.state.resolver


def get_calculator(request: Request) -> BudgetCalculator:
    return request.app.state.calculator


def _internal_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": {
                "code": "REPAIRQUOTE_INTERNAL_ERROR",
                "message": message,
                "details": None,
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        }
    )


def _to_rate_response(resolution: Resolution, pair: str) -> RateResponse:
    quote = resolution.quote
    return RateResponse(
        value_str=format_rate(quote.value),
        value=float(quote.value),
        pair=pair,
        origin=quote.origin,
        origin_label=quote.origin_label,
        level=resolution.status.level,
        message=resolution.status.message,
        is_error=resolution.status.is_error,
        acquired_at=quote.acquired_at
    )


@router.get(
    "/rate",
    response_model=RateResponse,
    summary="Resolve the current exchange rate",
    description="Estimate → rate sources → reference → default. Always returns a rate.",
    responses={
        500: {"model": ErrorResponse, "description": "Internal server error"},
    }
)
async def get_rate(resolver: RateResolver = Depends(get_resolver)) -> RateResponse:
    try:
        resolution = await resolver.resolve_with_trace()
    except Exception as e:
        logger.error(f"Error resolving rate: {e}")
        raise _internal_error("Failed to resolve exchange rate")

    return _to_rate_response(resolution, resolver.config.pair_label)


@router.post(
    "/quote",
    response_model=BudgetResponse,
    summary="Compute a repair quote",
    description=(
        "Converts the USD part cost to BRL, adds shipping and labour and returns "
        "the shareable message. Resolves a rate when none is supplied."
    ),
    responses={
        500: {"model": ErrorResponse, "description": "Internal server error"},
    }
)
async def create_quote(
    body: BudgetRequest,
    resolver: RateResolver = Depends(get_resolver),
    calculator: BudgetCalculator = Depends(get_calculator)
) -> BudgetResponse:
    rate_origin_label = None

    try:
        if not body.exchange_rate:
            quote = await resolver.resolve()
            body = body.model_copy(update={"exchange_rate": quote.value})
            rate_origin_label = quote.origin_label

        budget = calculator.calculate(body)

    except Exception as e:
        logger.error(f"Error computing quote for {body.customer_name}: {e}")
        raise _internal_error("Failed to compute quote")

    return BudgetResponse(
        customer_name=budget.customer_name,
        service=budget.service,
        device_model=budget.device_model,
        part_cost_usd=format_rate(budget.part_cost_usd),
        exchange_rate=format_rate(budget.exchange_rate),
        rate_origin_label=rate_origin_label,
        shipping=format_rate(budget.shipping),
        labor=format_rate(budget.labor),
        part_cost_brl=format_rate(budget.part_cost_brl),
        subtotal=format_rate(budget.subtotal),
        total=format_rate(budget.total),
        text=budget.text
    )


@router.get(
    "/sources",
    response_model=list[SourceInfo],
    summary="List rate sources in fallback order"
)
async def list_sources(resolver: RateResolver = Depends(get_resolver)) -> list[SourceInfo]:
    return [
        SourceInfo(
            order=idx,
            name=source.name,
            kind=source.kind,
            url=source.url,
            base_currency=source.base_currency,
            quote_currency=source.quote_currency
        )
        for idx, source in enumerate(resolver.registry.list_sources(), start=1)
    ]


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Liveness; with ?deep=true also checks every rate source"
)
async def health_check(
    deep: bool = False,
    resolver: RateResolver = Depends(get_resolver)
) -> HealthResponse:
    sources = None
    health = "healthy"

    if deep:
        sources = await resolver.health_check_all()
        # Rates still resolve without any source, so this never becomes a 503
        if not any(sources.values()):
            health = "degraded"

    return HealthResponse(
        status=health,
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        sources=sources
    )
