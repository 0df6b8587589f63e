"""
Repair Quote Configuration Management

Settings are read once at the application edge (environment / .env).
The rate resolver only ever sees the immutable ResolverConfig derived from them.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings

EstimatorKind = Literal["regional", "last_known_good", "none"]

# Registry order is the fallback order.
DEFAULT_SOURCE_URLS: dict[str, str] = {
    "AwesomeAPI-BRL": "https://economia.awesomeapi.com.br/last/USD-BRL",
    "BancoCentral-BR": (
        "https://api.bcb.gov.br/dados/serie/bcdata.sgs.1/dados/ultimos/1?formato=json"
    ),
    "ExchangeRate-API": "https://open.er-api.com/v6/latest/USD",
    "CurrencyAPI-Free": (
        "https://cdn.jsdelivr.net/gh/fawazahmed0/currency-api@1/latest/currencies/usd/brl.json"
    ),
    "Vatcomply-API": "https://api.vatcomply.com/rates?base=USD",
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # === Currency Pair ===
    base_currency: str = Field(default="USD", description="Currency of the part cost")
    quote_currency: str = Field(default="BRL", description="Currency of the final quote")

    # === Reference / Fallback Rates ===
    reference_rate: Decimal = Field(
        default=Decimal("5.60"),
        description="Reference USD/BRL rate for the eastern Paraguay region market"
    )
    default_rate: Decimal = Field(
        default=Decimal("5.60"),
        description="Static rate returned when everything else fails"
    )
    estimate_variation: Decimal = Field(
        default=Decimal("0.20"),
        description="Full width of the random perturbation (reference ± variation/2)"
    )
    estimate_min: Decimal = Field(default=Decimal("5.40"))
    estimate_max: Decimal = Field(default=Decimal("5.80"))
    estimate_tolerance: Decimal = Field(
        default=Decimal("0.20"),
        description="Max distance from the reference for an estimate to be accepted"
    )
    estimator: EstimatorKind = Field(
        default="regional",
        description="Stage 1 estimator: regional | last_known_good | none"
    )
    last_known_good_ttl_seconds: int = Field(default=3600)

    # === Plausibility Bounds (optional) ===
    plausible_min: Decimal | None = Field(default=None)
    plausible_max: Decimal | None = Field(default=None)

    # === Network Policy ===
    request_timeout_ms: int = Field(default=5000)
    retry_attempts: int = Field(default=3)
    retry_delay_ms: int = Field(default=1000)
    user_agent: str = Field(
        default="Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    )
    coalesce_requests: bool = Field(default=False)

    # === Rate Source URLs ===
    awesomeapi_url: str = Field(default=DEFAULT_SOURCE_URLS["AwesomeAPI-BRL"])
    bcb_url: str = Field(default=DEFAULT_SOURCE_URLS["BancoCentral-BR"])
    exchangerate_api_url: str = Field(default=DEFAULT_SOURCE_URLS["ExchangeRate-API"])
    currency_api_url: str = Field(default=DEFAULT_SOURCE_URLS["CurrencyAPI-Free"])
    vatcomply_url: str = Field(default=DEFAULT_SOURCE_URLS["Vatcomply-API"])

    # === API Configuration ===
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=8000)

    # === Logging ===
    log_level: str = Field(default="INFO")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "REPAIRQUOTE_",
        "case_sensitive": False,
    }


class ResolverConfig(BaseModel):
    """
    Immutable configuration handed to RateResolver.

    Validated once at construction; resolve() never fails on configuration.
    """

    base_currency: str = "USD"
    quote_currency: str = "BRL"

    reference_rate: Decimal = Field(default=Decimal("5.60"), gt=0)
    default_rate: Decimal = Field(default=Decimal("5.60"), gt=0)
    estimate_variation: Decimal = Field(default=Decimal("0.20"), ge=0)
    estimate_min: Decimal = Field(default=Decimal("5.40"), gt=0)
    estimate_max: Decimal = Field(default=Decimal("5.80"), gt=0)
    estimate_tolerance: Decimal = Field(default=Decimal("0.20"), ge=0)
    estimator: EstimatorKind = "regional"
    last_known_good_ttl_seconds: int = Field(default=3600, ge=0)

    plausible_min: Decimal | None = None
    plausible_max: Decimal | None = None

    request_timeout_ms: int = Field(default=5000, gt=0)
    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=1000, ge=0)
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    coalesce_requests: bool = False

    # name → URL; names match the registry variants, an empty URL disables a source
    source_urls: dict[str, str] = Field(
        default_factory=lambda: dict(DEFAULT_SOURCE_URLS)
    )

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def _check_bounds(self) -> "ResolverConfig":
        if self.estimate_min > self.estimate_max:
            raise ValueError(
                f"estimate_min ({self.estimate_min}) must not exceed "
                f"estimate_max ({self.estimate_max})"
            )
        if not self.estimate_min <= self.reference_rate <= self.estimate_max:
            raise ValueError(
                f"reference_rate ({self.reference_rate}) must lie within "
                f"[{self.estimate_min}, {self.estimate_max}]"
            )
        if (
            self.plausible_min is not None
            and self.plausible_max is not None
            and self.plausible_min > self.plausible_max
        ):
            raise ValueError("plausible_min must not exceed plausible_max")
        return self

    @property
    def pair_label(self) -> str:
        return f"{self.base_currency}/{self.quote_currency}"

    @property
    def timeout_seconds(self) -> float:
        return self.request_timeout_ms / 1000

    @classmethod
    def from_settings(cls, settings: Settings) -> "ResolverConfig":
        """Build the resolver configuration from application settings."""
        return cls(
            base_currency=settings.base_currency.upper(),
            quote_currency=settings.quote_currency.upper(),
            reference_rate=settings.reference_rate,
            default_rate=settings.default_rate,
            estimate_variation=settings.estimate_variation,
            estimate_min=settings.estimate_min,
            estimate_max=settings.estimate_max,
            estimate_tolerance=settings.estimate_tolerance,
            estimator=settings.estimator,
            last_known_good_ttl_seconds=settings.last_known_good_ttl_seconds,
            plausible_min=settings.plausible_min,
            plausible_max=settings.plausible_max,
            request_timeout_ms=settings.request_timeout_ms,
            retry_attempts=settings.retry_attempts,
            retry_delay_ms=settings.retry_delay_ms,
            user_agent=settings.user_agent,
            coalesce_requests=settings.coalesce_requests,
            source_urls={
                "AwesomeAPI-BRL": settings.awesomeapi_url,
                "BancoCentral-BR": settings.bcb_url,
                "ExchangeRate-API": settings.exchangerate_api_url,
                "CurrencyAPI-Free": settings.currency_api_url,
                "Vatcomply-API": settings.vatcomply_url,
            },
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
