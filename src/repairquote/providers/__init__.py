"""
Rate Source Providers Module

Fallback hierarchy: AwesomeAPI → Banco Central → ExchangeRate-API →
CurrencyAPI → Vatcomply
"""

from repairquote.providers.base import (
    ExtractionFailure,
    NetworkFailure,
    RateSource,
    RateSourceError,
    ValidationFailure,
)
from repairquote.providers.registry import RateSourceRegistry
from repairquote.providers.resolver import RateResolver

__all__ = [
    "RateSource",
    "RateSourceError",
    "NetworkFailure",
    "ExtractionFailure",
    "ValidationFailure",
    "RateSourceRegistry",
    "RateResolver",
]
