"""
Repair Quote API Response Schemas

Money and rates are exposed as 2-decimal strings; the float `value` on
RateResponse is a convenience for dashboards only.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from repairquote.models import QuoteOrigin, StatusLevel


class RateResponse(BaseModel):
    """Response schema for /api/v1/rate"""

    value_str: str = Field(
        description="Rate rounded half-up to 2 decimals",
        pattern=r"^\d+\.\d{2}$",
        examples=["5.60"]
    )
    value: float = Field(
        description="Approximate float of the unrounded rate"
    )
    pair: str = Field(examples=["USD/BRL"])
    origin: QuoteOrigin
    origin_label: str = Field(
        description="Source name, or the kind of synthetic rate used",
        examples=["AwesomeAPI-BRL", "Regional estimate", "Reference rate"]
    )
    level: StatusLevel
    message: str
    is_error: bool
    acquired_at: datetime


class BudgetResponse(BaseModel):
    """Response schema for POST /api/v1/quote"""

    customer_name: str
    service: str
    device_model: str
    part_cost_usd: str
    exchange_rate: str
    rate_origin_label: str | None = Field(
        default=None,
        description="Set when the rate was resolved by the server"
    )
    shipping: str
    labor: str
    part_cost_brl: str
    subtotal: str = Field(description="Total without labour")
    total: str
    text: str = Field(description="Shareable quote message")


class SourceInfo(BaseModel):
    """One entry of the rate source registry."""

    order: int
    name: str
    kind: str
    url: str
    base_currency: str
    quote_currency: str


class HealthResponse(BaseModel):
    """Response schema for /api/v1/health"""

    status: str = Field(description="healthy | degraded")
    version: str
    timestamp: datetime
    sources: dict[str, bool] | None = Field(
        default=None,
        description="Per-source reachability, only with ?deep=true"
    )


class ErrorDetail(BaseModel):
    """Error detail structure."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: ErrorDetail
