"""
Rate Resolver Tests

Network is replaced by httpx.MockTransport; backoff sleeps are recorded
instead of awaited.
"""

import asyncio
import json
import random
from decimal import Decimal

import httpx
import pytest

from repairquote.computation.estimator import (
    LastKnownGoodEstimator,
    NullEstimator,
    RateEstimator,
    RegionalEstimator,
)
from repairquote.config import ResolverConfig
from repairquote.models import QuoteOrigin, StatusLevel
from repairquote.providers.registry import RateSourceRegistry
from repairquote.providers.resolver import RateResolver


# ═══════════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════════

HOSTS = {
    "economia.awesomeapi.com.br": "AwesomeAPI-BRL",
    "api.bcb.gov.br": "BancoCentral-BR",
    "open.er-api.com": "ExchangeRate-API",
    "cdn.jsdelivr.net": "CurrencyAPI-Free",
    "api.vatcomply.com": "Vatcomply-API",
}


def body_for(source: str, value) -> object:
    """Successful response body of each source carrying `value`."""
    if source == "AwesomeAPI-BRL":
        return {"USDBRL": {"code": "USD", "codein": "BRL", "bid": value}}
    if source == "BancoCentral-BR":
        return [{"data": "16/10/2026", "valor": value}]
    if source == "ExchangeRate-API":
        return {"result": "success", "base_code": "USD", "rates": {"BRL": value}}
    if source == "CurrencyAPI-Free":
        return {"date": "2026-10-16", "brl": value}
    return {"date": "2026-10-16", "base": "USD", "rates": {"BRL": value}}


class FakeNetwork:
    """
    Route requests by host to per-source handlers.

    A handler receives (request, call_number) and returns an httpx.Response
    (or raises). Sources without a handler answer 503.
    """

    def __init__(self, handlers: dict | None = None):
        self.handlers = handlers or {}
        self.calls: list[str] = []
        self.requests: list[httpx.Request] = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        source = HOSTS[request.url.host]
        self.calls.append(source)
        self.requests.append(request)
        handler = self.handlers.get(source)
        if handler is None:
            return httpx.Response(503)
        result = handler(request, self.calls.count(source))
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self)


def ok(source: str, value) -> httpx.Response:
    return httpx.Response(200, json=body_for(source, value))


class RecordingSleep:
    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def walk_config(**overrides) -> ResolverConfig:
    """Configuration that skips the estimate stage."""
    values = {"estimator": "none", "request_timeout_ms": 200}
    values.update(overrides)
    return ResolverConfig(**values)


def make_resolver(config: ResolverConfig, network: FakeNetwork, **kwargs) -> RateResolver:
    kwargs.setdefault("sleep", RecordingSleep())
    return RateResolver(config, transport=network.transport(), **kwargs)


# ═══════════════════════════════════════════════════════════════════════════════
#  Stage 1: estimate
# ═══════════════════════════════════════════════════════════════════════════════

class TestEstimateStage:

    def test_regional_estimate_short_circuits_network(self):
        """Default configuration answers from the regional estimate without I/O."""
        network = FakeNetwork()
        resolver = make_resolver(ResolverConfig(), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert network.calls == []
        assert resolution.quote.origin == QuoteOrigin.ESTIMATE
        assert resolution.quote.origin_label == "Regional estimate"
        assert Decimal("5.40") <= resolution.quote.value <= Decimal("5.80")
        assert resolution.status.level == StatusLevel.SUCCESS
        assert resolution.attempts == []

    def test_estimate_outside_tolerance_walks_sources(self):
        """An estimate further than tolerance from the reference is not accepted."""
        class FarEstimator(RateEstimator):
            def estimate(self):
                return Decimal("6.50")

        config = ResolverConfig(estimate_tolerance=Decimal("0.20"))
        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.4321")})
        resolver = make_resolver(config, network, estimator=FarEstimator())

        quote = asyncio.run(resolver.resolve())

        assert quote.origin == QuoteOrigin.PROVIDER
        assert quote.origin_label == "AwesomeAPI-BRL"
        assert quote.value == Decimal("5.4321")

    def test_failing_estimator_is_absorbed(self):
        class Broken(NullEstimator):
            def estimate(self):
                raise RuntimeError("boom")

        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.50")})
        resolver = make_resolver(walk_config(), network, estimator=Broken())

        quote = asyncio.run(resolver.resolve())

        assert quote.origin_label == "AwesomeAPI-BRL"

    def test_last_known_good_replays_provider_rate(self):
        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.5500")})
        estimator = LastKnownGoodEstimator(ttl_seconds=60)
        resolver = make_resolver(walk_config(), network, estimator=estimator)

        first = asyncio.run(resolver.resolve())
        second = asyncio.run(resolver.resolve())

        assert first.origin == QuoteOrigin.PROVIDER
        assert second.origin == QuoteOrigin.ESTIMATE
        assert second.origin_label == "Last known rate"
        assert second.value == Decimal("5.5500")
        assert network.calls == ["AwesomeAPI-BRL"]


# ═══════════════════════════════════════════════════════════════════════════════
#  Stage 2: provider walk
# ═══════════════════════════════════════════════════════════════════════════════

class TestProviderWalk:

    def test_first_source_wins(self):
        network = FakeNetwork({
            "AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.6012"),
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.70"),
        })
        resolver = make_resolver(walk_config(), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.quote.value == Decimal("5.6012")
        assert resolution.quote.origin_label == "AwesomeAPI-BRL"
        assert resolution.status.message == "Rate updated (AwesomeAPI-BRL)"
        assert network.calls == ["AwesomeAPI-BRL"]
        assert len(resolution.attempts) == 1
        assert resolution.attempts[0].success is True

    def test_request_headers(self):
        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.60")})
        resolver = make_resolver(walk_config(user_agent="quote-test/1.0"), network)

        asyncio.run(resolver.resolve())

        request = network.requests[0]
        assert request.method == "GET"
        assert request.headers["accept"] == "application/json"
        assert request.headers["user-agent"] == "quote-test/1.0"

    @pytest.mark.parametrize("bad_value", ["0", "-5", "NaN", 0, -5, "abc", None])
    def test_invalid_rate_advances_to_next_source(self, bad_value):
        """Zero, negative, NaN and non-numeric rates are never returned."""
        network = FakeNetwork({
            "AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", bad_value),
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.6543"),
        })
        resolver = make_resolver(walk_config(), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.quote.origin_label == "BancoCentral-BR"
        assert resolution.quote.value == Decimal("5.6543")
        failed = [a for a in resolution.attempts if a.source == "AwesomeAPI-BRL"]
        assert len(failed) == 3
        assert all(a.error_type == "INVALID_RATE" for a in failed)

    def test_timeouts_then_success_within_retry_ceiling(self):
        """Attempts 1 and 2 time out, attempt 3 succeeds: same source wins."""
        async def slow_then_fast(request, n):
            if n < 3:
                await asyncio.sleep(5)
            return ok("AwesomeAPI-BRL", "5.61")

        network = FakeNetwork({
            "AwesomeAPI-BRL": slow_then_fast,
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "9.99"),
        })
        resolver = make_resolver(walk_config(request_timeout_ms=50, retry_attempts=3), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.quote.origin_label == "AwesomeAPI-BRL"
        assert resolution.quote.value == Decimal("5.61")
        assert [a.error_type for a in resolution.attempts] == ["TIMEOUT", "TIMEOUT", None]
        assert [a.attempt_number for a in resolution.attempts] == [1, 2, 3]
        assert "BancoCentral-BR" not in network.calls

    def test_transport_timeout_is_network_failure(self):
        def raise_timeout(request, n):
            raise httpx.ReadTimeout("read timed out", request=request)

        network = FakeNetwork({
            "AwesomeAPI-BRL": raise_timeout,
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.58"),
        })
        resolver = make_resolver(walk_config(), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.quote.origin_label == "BancoCentral-BR"
        assert resolution.attempts[0].error_type == "TIMEOUT"

    def test_linear_backoff_between_attempts(self):
        """delay = retry_delay × attempt number, no sleep after the last attempt."""
        sleep = RecordingSleep()
        network = FakeNetwork({"BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.60")})
        resolver = make_resolver(
            walk_config(retry_delay_ms=1000, retry_attempts=3),
            network,
            sleep=sleep
        )

        asyncio.run(resolver.resolve())

        assert network.calls == ["AwesomeAPI-BRL"] * 3 + ["BancoCentral-BR"]
        assert sleep.calls == [1.0, 2.0]

    def test_http_error_and_bad_json_are_classified(self):
        network = FakeNetwork({
            "AwesomeAPI-BRL": lambda req, n: httpx.Response(500),
            "BancoCentral-BR": lambda req, n: httpx.Response(200, text="<html>down</html>"),
            "ExchangeRate-API": lambda req, n: httpx.Response(200, json={"result": "error"}),
            "CurrencyAPI-Free": lambda req, n: ok("CurrencyAPI-Free", 5.63),
        })
        resolver = make_resolver(walk_config(retry_attempts=1), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert [a.error_type for a in resolution.attempts] == [
            "HTTP_500", "PARSE_ERROR", "MISSING_FIELD", None
        ]
        assert resolution.quote.origin_label == "CurrencyAPI-Free"
        assert resolution.quote.value == Decimal("5.63")

    def test_connection_error_is_network_failure(self):
        def refuse(request, n):
            raise httpx.ConnectError("connection refused", request=request)

        network = FakeNetwork({
            "AwesomeAPI-BRL": refuse,
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.60"),
        })
        resolver = make_resolver(walk_config(retry_attempts=2), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert [a.error_type for a in resolution.attempts[:2]] == ["NETWORK", "NETWORK"]

    def test_plausible_range_rejects_outliers(self):
        network = FakeNetwork({
            "AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "560"),
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.60"),
        })
        config = walk_config(
            retry_attempts=1,
            plausible_min=Decimal("1"),
            plausible_max=Decimal("20")
        )
        resolver = make_resolver(config, network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.attempts[0].error_type == "OUT_OF_RANGE"
        assert resolution.quote.origin_label == "BancoCentral-BR"

    def test_unexpected_source_error_is_retried_then_moves_on(self):
        def explode(request, n):
            raise RuntimeError("unexpected")

        network = FakeNetwork({
            "AwesomeAPI-BRL": explode,
            "BancoCentral-BR": lambda req, n: ok("BancoCentral-BR", "5.60"),
        })
        resolver = make_resolver(walk_config(), network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.quote.origin_label == "BancoCentral-BR"
        assert network.calls == ["AwesomeAPI-BRL"] * 3 + ["BancoCentral-BR"]
        failed = [a for a in resolution.attempts if not a.success]
        assert [a.attempt_number for a in failed] == [1, 2, 3]
        assert all(a.error_type == "UNKNOWN" for a in failed)
        assert "unexpected" in failed[0].reason


# ═══════════════════════════════════════════════════════════════════════════════
#  Stage 3: final fallback
# ═══════════════════════════════════════════════════════════════════════════════

class TestFinalFallback:

    def test_all_sources_fail_returns_bounded_reference(self):
        network = FakeNetwork()
        config = walk_config()
        resolver = make_resolver(config, network)

        resolution = asyncio.run(resolver.resolve_with_trace())

        quote = resolution.quote
        assert quote.origin == QuoteOrigin.REFERENCE
        assert quote.origin_label == "Reference rate"
        assert config.estimate_min <= quote.value <= config.estimate_max
        assert resolution.status.level == StatusLevel.WARNING
        assert resolution.status.message == "Using reference rate (5.60)"
        assert resolution.status.is_error is False
        assert len(resolution.attempts) == 5 * 3

    def test_invalid_reference_estimate_returns_static_default(self):
        class NaNEstimator(RegionalEstimator):
            def estimate(self):
                return Decimal("NaN")

        config = walk_config(default_rate=Decimal("5.25"))
        fallback = NaNEstimator(
            reference=config.reference_rate,
            variation=config.estimate_variation,
            minimum=config.estimate_min,
            maximum=config.estimate_max,
        )
        resolver = make_resolver(config, FakeNetwork(), fallback_estimator=fallback)

        resolution = asyncio.run(resolver.resolve_with_trace())

        assert resolution.quote.origin == QuoteOrigin.DEFAULT
        assert resolution.quote.value == Decimal("5.25")
        assert resolution.status.is_error is True

    @pytest.mark.parametrize("seed", range(10))
    def test_reference_fallback_stays_near_off_center_reference(self, seed):
        """Wide variation and bounds still keep the fallback within reference ± tolerance."""
        config = walk_config(
            reference_rate=Decimal("5.00"),
            estimate_min=Decimal("4.00"),
            estimate_max=Decimal("6.00"),
            estimate_variation=Decimal("2.0"),
            estimate_tolerance=Decimal("0.20"),
        )
        fallback = RegionalEstimator.from_config(config, rng=random.Random(seed))
        resolver = make_resolver(config, FakeNetwork(), fallback_estimator=fallback)

        quote = asyncio.run(resolver.resolve())

        assert quote.origin == QuoteOrigin.REFERENCE
        assert Decimal("4.80") <= quote.value <= Decimal("5.20")

    def test_no_sources_registered(self):
        config = walk_config(source_urls={})
        network = FakeNetwork()
        resolver = make_resolver(config, network)

        quote = asyncio.run(resolver.resolve())

        assert network.calls == []
        assert quote.origin == QuoteOrigin.REFERENCE

    @pytest.mark.parametrize("seed", range(20))
    def test_resolve_always_positive_and_finite(self, seed):
        """Random mix of good, bad and unreachable sources."""
        rng = random.Random(seed)
        choices = [
            lambda s: (lambda req, n: ok(s, "5.60")),
            lambda s: (lambda req, n: ok(s, "0")),
            lambda s: (lambda req, n: ok(s, "NaN")),
            lambda s: (lambda req, n: httpx.Response(502)),
            lambda s: None,
        ]
        handlers = {}
        for source in HOSTS.values():
            handler = rng.choice(choices)(source)
            if handler is not None:
                handlers[source] = handler

        resolver = make_resolver(walk_config(), FakeNetwork(handlers))
        quote = asyncio.run(resolver.resolve())

        assert quote.value.is_finite()
        assert quote.value > 0


# ═══════════════════════════════════════════════════════════════════════════════
#  Status notifications, coalescing, health
# ═══════════════════════════════════════════════════════════════════════════════

class TestResolverCollaborators:

    def test_injected_empty_registry_is_used(self):
        registry = RateSourceRegistry(walk_config(source_urls={}))
        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.60")})
        resolver = make_resolver(walk_config(), network, registry=registry)

        quote = asyncio.run(resolver.resolve())

        assert resolver.registry is registry
        assert network.calls == []
        assert quote.origin == QuoteOrigin.REFERENCE

    def test_listener_receives_loading_then_result(self):
        statuses = []
        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.60")})
        resolver = make_resolver(walk_config(), network, listener=statuses.append)

        asyncio.run(resolver.resolve())

        assert [s.level for s in statuses] == [StatusLevel.LOADING, StatusLevel.SUCCESS]
        assert statuses[0].message == "Fetching USD/BRL rate..."
        assert statuses[1].origin_label == "AwesomeAPI-BRL"

    def test_listener_failure_does_not_break_resolution(self):
        def broken_listener(status):
            raise ValueError("ui gone")

        resolver = make_resolver(walk_config(), FakeNetwork(), listener=broken_listener)

        quote = asyncio.run(resolver.resolve())

        assert quote.value > 0

    def test_coalesced_concurrent_calls_share_one_walk(self):
        async def slow(request, n):
            await asyncio.sleep(0.01)
            return ok("AwesomeAPI-BRL", "5.60")

        network = FakeNetwork({"AwesomeAPI-BRL": slow})
        resolver = make_resolver(walk_config(coalesce_requests=True), network)

        async def run_two():
            return await asyncio.gather(resolver.resolve(), resolver.resolve())

        first, second = asyncio.run(run_two())

        assert network.calls == ["AwesomeAPI-BRL"]
        assert first == second

    def test_independent_calls_without_coalescing(self):
        network = FakeNetwork({"AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.60")})
        resolver = make_resolver(walk_config(), network)

        async def run_two():
            return await asyncio.gather(resolver.resolve(), resolver.resolve())

        asyncio.run(run_two())

        assert network.calls == ["AwesomeAPI-BRL", "AwesomeAPI-BRL"]

    def test_health_check_all(self):
        network = FakeNetwork({
            "AwesomeAPI-BRL": lambda req, n: ok("AwesomeAPI-BRL", "5.60"),
            "Vatcomply-API": lambda req, n: ok("Vatcomply-API", "5.60"),
        })
        resolver = make_resolver(walk_config(), network)

        health = asyncio.run(resolver.health_check_all())

        assert health == {
            "AwesomeAPI-BRL": True,
            "BancoCentral-BR": False,
            "ExchangeRate-API": False,
            "CurrencyAPI-Free": False,
            "Vatcomply-API": True,
        }


def test_body_helper_is_json_serialisable():
    for source in HOSTS.values():
        json.dumps(body_for(source, "5.60"))
