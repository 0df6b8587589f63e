"""
Repair Quote Data Models

Rates and money are carried as decimal.Decimal end to end; floats only appear
in API convenience fields.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field, field_validator


# === Enums ===

class QuoteOrigin(str, Enum):
    """Where a resolved rate came from, in decreasing order of confidence."""
    PROVIDER = "provider"    # accepted from a registered rate source
    ESTIMATE = "estimate"    # stage 1 local estimate
    REFERENCE = "reference"  # perturbed reference after all sources failed
    DEFAULT = "default"      # static configured rate


class StatusLevel(str, Enum):
    """Status line severity shown by the presentation layer."""
    LOADING = "loading"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


# === Rate Resolution ===

class RateQuote(BaseModel):
    """A resolved exchange rate with provenance. Never persisted."""

    value: Decimal = Field(gt=Decimal("0"))
    origin_label: str
    origin: QuoteOrigin
    acquired_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = {"frozen": True}

    @field_validator("value")
    @classmethod
    def _finite(cls, v: Decimal) -> Decimal:
        if not v.is_finite():
            raise ValueError("rate must be finite")
        return v


class ResolutionAttempt(BaseModel):
    """One request against one source. Kept only for the trace of a resolve() call."""

    source: str
    attempt_number: int = Field(ge=1)
    success: bool
    value: Decimal | None = None
    error_type: str | None = None
    reason: str | None = None
    latency_ms: int = 0


class RateStatus(BaseModel):
    """Notification for the presentation collaborator: (quote, origin label, is_error)."""

    level: StatusLevel
    message: str
    quote: RateQuote | None = None

    @property
    def is_error(self) -> bool:
        return self.level is StatusLevel.ERROR

    @property
    def origin_label(self) -> str | None:
        return self.quote.origin_label if self.quote else None


class Resolution(BaseModel):
    """Full outcome of one resolve() call."""

    quote: RateQuote
    status: RateStatus
    attempts: list[ResolutionAttempt] = Field(default_factory=list)


# === Budget ===

class BudgetRequest(BaseModel):
    """
    Raw form values for a repair quote.

    Missing numeric fields default to zero. A missing or zero exchange rate is
    resolved (or replaced by the default rate) by the caller.
    """

    customer_name: str = Field(min_length=1)
    service: str = Field(min_length=1)
    device_model: str = Field(min_length=1)
    part_cost_usd: Decimal = Field(default=Decimal("0"), ge=0)
    exchange_rate: Decimal | None = Field(default=None, ge=0)
    shipping: Decimal = Field(default=Decimal("0"), ge=0)
    labor: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator("customer_name", "service", "device_model", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        return v.strip() if isinstance(v, str) else v


class Budget(BaseModel):
    """Computed quote with the shareable message text."""

    customer_name: str
    service: str
    device_model: str
    part_cost_usd: Decimal
    exchange_rate: Decimal
    shipping: Decimal
    labor: Decimal
    part_cost_brl: Decimal
    subtotal: Decimal
    total: Decimal
    text: str
