"""
Rate Source Registry

Fixed priority order: AwesomeAPI → Banco Central → ExchangeRate-API →
CurrencyAPI → Vatcomply. No I/O happens here.
"""

from repairquote.config import ResolverConfig
from repairquote.providers.base import RateSource
from repairquote.providers.sources import (
    AwesomeAPISource,
    BancoCentralSource,
    CurrencyAPISource,
    ExchangeRateAPISource,
    VatcomplySource,
)

SOURCE_TYPES: tuple[type[RateSource], ...] = (
    AwesomeAPISource,
    BancoCentralSource,
    ExchangeRateAPISource,
    CurrencyAPISource,
    VatcomplySource,
)


class RateSourceRegistry:
    """Ordered, immutable list of rate sources built once from configuration."""

    def __init__(self, config: ResolverConfig):
        sources: list[RateSource] = []
        for source_type in SOURCE_TYPES:
            name = source_type.model_fields["name"].default
            url = config.source_urls.get(name)
            if not url:
                continue
            sources.append(
                source_type(
                    url=url,
                    base_currency=config.base_currency,
                    quote_currency=config.quote_currency,
                )
            )
        self._sources: tuple[RateSource, ...] = tuple(sources)

    def list_sources(self) -> tuple[RateSource, ...]:
        return self._sources

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self):
        return iter(self._sources)
