"""
Base Rate Source Interface

All rates are returned as decimal.Decimal. A source either yields a number
or raises one of the RateSourceError subclasses below; it never returns None.
"""

from abc import ABC, abstractmethod
from decimal import Decimal, InvalidOperation
from typing import Any

from pydantic import BaseModel


class RateSourceError(Exception):
    """Base exception for rate source errors."""

    def __init__(
        self,
        message: str,
        source: str,
        error_type: str = "UNKNOWN",
        details: dict[str, Any] | None = None
    ):
        super().__init__(message)
        self.source = source
        self.error_type = error_type
        self.details = details or {}


class NetworkFailure(RateSourceError):
    """Source unreachable, timed out or answered with an HTTP error."""


class ExtractionFailure(RateSourceError):
    """Source answered, but the expected field is missing or malformed."""


class ValidationFailure(RateSourceError):
    """Extracted value is non-numeric, non-positive or outside the plausible range."""


class RateSource(BaseModel, ABC):
    """
    Declarative description of one exchange-rate provider.

    Subclasses form a closed set of tagged variants; each implements
    extract() for its own response shape so the resolver needs no
    provider-specific branching.
    """

    kind: str
    name: str
    url: str
    base_currency: str = "USD"
    quote_currency: str = "BRL"

    model_config = {"frozen": True}

    @property
    def expected_pair(self) -> tuple[str, str]:
        return self.base_currency, self.quote_currency

    @abstractmethod
    def extract(self, payload: Any) -> Decimal:
        """
        Pull the rate out of a parsed JSON body.

        Raises:
            ExtractionFailure: expected field missing or wrong shape
            ValidationFailure: field present but not a number
        """

    def _missing(self, field: str, payload: Any) -> ExtractionFailure:
        return ExtractionFailure(
            message=f"field not found: {field}",
            source=self.name,
            error_type="MISSING_FIELD",
            details={"field": field, "payload_type": type(payload).__name__}
        )

    def _to_decimal(self, value: Any) -> Decimal:
        """
        Convert a JSON scalar to an exact Decimal.

        Goes through str() so floats keep their shortest repr. Accepts a comma
        decimal separator.
        """
        if isinstance(value, bool) or value is None:
            raise ValidationFailure(
                message=f"non-numeric rate: {value!r}",
                source=self.name,
                error_type="INVALID_RATE"
            )
        if isinstance(value, Decimal):
            return value
        try:
            return Decimal(str(value).strip().replace(",", "."))
        except InvalidOperation as e:
            raise ValidationFailure(
                message=f"non-numeric rate: {value!r}",
                source=self.name,
                error_type="INVALID_RATE"
            ) from e


def validate_rate(
    value: Decimal,
    source: str,
    lower: Decimal | None = None,
    upper: Decimal | None = None
) -> Decimal:
    """Reject NaN, infinities, zero, negatives and values outside [lower, upper]."""
    if not value.is_finite() or value <= 0:
        raise ValidationFailure(
            message=f"invalid rate received: {value}",
            source=source,
            error_type="INVALID_RATE",
            details={"value": str(value)}
        )
    if (lower is not None and value < lower) or (upper is not None and value > upper):
        raise ValidationFailure(
            message=f"rate {value} outside plausible range [{lower}, {upper}]",
            source=source,
            error_type="OUT_OF_RANGE",
            details={"value": str(value), "lower": str(lower), "upper": str(upper)}
        )
    return value
