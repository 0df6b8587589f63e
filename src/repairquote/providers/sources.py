"""
Rate Source Variants

One class per registered provider. Each knows only its own documented
response shape.
"""

from decimal import Decimal
from typing import Any, Literal

from repairquote.providers.base import RateSource


class AwesomeAPISource(RateSource):
    """
    AwesomeAPI (economia.awesomeapi.com.br), primary source.

    Response format: {"USDBRL": {"code": "USD", "codein": "BRL", "bid": "5.6012", ...}}
    """

    kind: Literal["awesomeapi"] = "awesomeapi"
    name: str = "AwesomeAPI-BRL"

    def extract(self, payload: Any) -> Decimal:
        key = f"{self.base_currency}{self.quote_currency}"
        if not isinstance(payload, dict) or not isinstance(payload.get(key), dict):
            raise self._missing(key, payload)
        if "bid" not in payload[key]:
            raise self._missing(f"{key}.bid", payload)
        return self._to_decimal(payload[key]["bid"])


class BancoCentralSource(RateSource):
    """
    Banco Central do Brasil SGS series 1 (USD/BRL, PTAX sell).

    Response format: [{"data": "17/10/2026", "valor": "5.6012"}]
    """

    kind: Literal["bcb"] = "bcb"
    name: str = "BancoCentral-BR"

    def extract(self, payload: Any) -> Decimal:
        if not isinstance(payload, list) or not payload:
            raise self._missing("[0]", payload)
        row = payload[0]
        if not isinstance(row, dict) or "valor" not in row:
            raise self._missing("[0].valor", payload)
        return self._to_decimal(row["valor"])


class ExchangeRateAPISource(RateSource):
    """
    open.er-api.com latest rates.

    Response format: {"result": "success", "base_code": "USD", "rates": {"BRL": 5.6012, ...}}
    """

    kind: Literal["exchangerate_api"] = "exchangerate_api"
    name: str = "ExchangeRate-API"

    def extract(self, payload: Any) -> Decimal:
        return _rates_table(self, payload)


class CurrencyAPISource(RateSource):
    """
    fawazahmed0 currency-api on jsDelivr.

    Response format: {"date": "2026-10-17", "brl": 5.6012}
    """

    kind: Literal["currency_api"] = "currency_api"
    name: str = "CurrencyAPI-Free"

    def extract(self, payload: Any) -> Decimal:
        key = self.quote_currency.lower()
        if not isinstance(payload, dict) or key not in payload:
            raise self._missing(key, payload)
        return self._to_decimal(payload[key])


class VatcomplySource(RateSource):
    """
    api.vatcomply.com rates (ECB based).

    Response format: {"date": "2026-10-17", "base": "USD", "rates": {"BRL": 5.6012, ...}}
    """

    kind: Literal["vatcomply"] = "vatcomply"
    name: str = "Vatcomply-API"

    def extract(self, payload: Any) -> Decimal:
        return _rates_table(self, payload)


def _rates_table(source: RateSource, payload: Any) -> Decimal:
    """Shared shape: {"rates": {"<QUOTE>": value}}."""
    if not isinstance(payload, dict) or not isinstance(payload.get("rates"), dict):
        raise source._missing("rates", payload)
    rates = payload["rates"]
    if source.quote_currency not in rates:
        raise source._missing(f"rates.{source.quote_currency}", payload)
    return source._to_decimal(rates[source.quote_currency])
