"""
Rate Resolver with Fallback Hierarchy

Estimate → AwesomeAPI → Banco Central → ExchangeRate-API → CurrencyAPI →
Vatcomply → reference rate → static default.

resolve() always ends with a positive, finite rate; source failures are
logged and absorbed here.
"""

import asyncio
import logging
import time
from decimal import Decimal
from typing import Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_incrementing,
)

from repairquote.computation.estimator import (
    RateEstimator,
    RegionalEstimator,
    build_estimator,
)
from repairquote.config import ResolverConfig
from repairquote.models import (
    QuoteOrigin,
    RateQuote,
    RateStatus,
    Resolution,
    ResolutionAttempt,
    StatusLevel,
)
from repairquote.providers.base import (
    ExtractionFailure,
    NetworkFailure,
    RateSource,
    RateSourceError,
    validate_rate,
)
from repairquote.providers.registry import RateSourceRegistry

logger = logging.getLogger(__name__)

StatusListener = Callable[[RateStatus], None]

REFERENCE_LABEL = "Reference rate"
DEFAULT_LABEL = "Default rate"


def _is_acceptable(value: object) -> bool:
    return isinstance(value, Decimal) and value.is_finite() and value > 0


class RateResolver:
    """
    Resolve one trustworthy exchange rate per call.

    Sources are tried strictly in registry order, one request at a time.
    Each source gets `retry_attempts` tries with a linear backoff of
    `retry_delay_ms × attempt_number` between them.
    """

    def __init__(
        self,
        config: ResolverConfig,
        *,
        registry: RateSourceRegistry | None = None,
        estimator: RateEstimator | None = None,
        fallback_estimator: RegionalEstimator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        listener: StatusListener | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.config = config
        self.registry = registry if registry is not None else RateSourceRegistry(config)
        self.estimator = estimator or build_estimator(config)
        self.fallback_estimator = fallback_estimator or RegionalEstimator.from_config(config)
        self._transport = transport
        self._listener = listener
        self._sleep = sleep
        self._inflight: asyncio.Future[Resolution] | None = None

    async def resolve(self) -> RateQuote:
        """Return a rate quote. Never raises for source failures."""
        resolution = await self.resolve_with_trace()
        return resolution.quote

    async def resolve_with_trace(self) -> Resolution:
        """
        Run the full pipeline and return the quote with its status and attempts.

        With coalesce_requests enabled, concurrent callers share one in-flight run.
        """
        if not self.config.coalesce_requests:
            return await self._run()

        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.ensure_future(self._run())
        return await asyncio.shield(self._inflight)

    async def _run(self) -> Resolution:
        pair = self.config.pair_label
        attempts: list[ResolutionAttempt] = []

        self._notify(RateStatus(level=StatusLevel.LOADING, message=f"Fetching {pair} rate..."))

        try:
            # === STAGE 1: LOCAL ESTIMATE ===
            quote = self._estimate_stage()
            if quote is not None:
                status = RateStatus(
                    level=StatusLevel.SUCCESS,
                    message=f"{pair} rate updated",
                    quote=quote
                )
            else:
                # === STAGE 2: PROVIDER WALK ===
                quote = await self._provider_walk(attempts)
                if quote is not None:
                    status = RateStatus(
                        level=StatusLevel.SUCCESS,
                        message=f"Rate updated ({quote.origin_label})",
                        quote=quote
                    )
                else:
                    # === STAGE 3: FINAL FALLBACK ===
                    quote, status = self._final_fallback()

        except Exception as e:
            logger.error(f"Rate resolution failed unexpectedly: {e}")
            quote = self._default_quote()
            status = RateStatus(
                level=StatusLevel.ERROR,
                message="Failed to fetch rate",
                quote=quote
            )

        self._notify(status)
        logger.info(f"Resolved {pair}={quote.value} from {quote.origin_label} ({quote.origin.value})")
        return Resolution(quote=quote, status=status, attempts=attempts)

    def _estimate_stage(self) -> RateQuote | None:
        try:
            candidate = self.estimator.estimate()
        except Exception as e:
            logger.warning(f"Estimator {type(self.estimator).__name__} failed: {e}")
            return None

        if candidate is None:
            return None

        reference = self.config.reference_rate
        if not _is_acceptable(candidate) or abs(candidate - reference) > self.config.estimate_tolerance:
            logger.info(
                f"Estimate {candidate} rejected "
                f"(reference {reference} ± {self.config.estimate_tolerance})"
            )
            return None

        return RateQuote(
            value=candidate,
            origin_label=self.estimator.LABEL,
            origin=QuoteOrigin.ESTIMATE
        )

    async def _provider_walk(self, attempts: list[ResolutionAttempt]) -> RateQuote | None:
        sources = self.registry.list_sources()
        if not sources:
            logger.warning("No rate sources registered")
            return None

        headers = {
            "Accept": "application/json",
            "User-Agent": self.config.user_agent,
        }

        async with httpx.AsyncClient(
            transport=self._transport,
            headers=headers,
            follow_redirects=True
        ) as client:
            for idx, source in enumerate(sources, start=1):
                logger.info(f"Attempting {source.name} (source {idx}/{len(sources)})")

                try:
                    value = await self._fetch_with_retry(client, source, attempts)

                except RateSourceError as e:
                    logger.warning(
                        f"❌ {source.name} exhausted after "
                        f"{self.config.retry_attempts} attempts: {e} ({e.error_type})"
                    )
                    continue

                except Exception as e:
                    logger.error(f"❌ {source.name} unexpected error: {e}")
                    continue

                self.estimator.remember(value)
                return RateQuote(
                    value=value,
                    origin_label=source.name,
                    origin=QuoteOrigin.PROVIDER
                )

        return None

    async def _fetch_with_retry(
        self,
        client: httpx.AsyncClient,
        source: RateSource,
        attempts: list[ResolutionAttempt]
    ) -> Decimal:
        delay = self.config.retry_delay_ms / 1000
        max_attempts = self.config.retry_attempts

        retrying = AsyncRetrying(
            stop=stop_after_attempt(max_attempts),
            wait=wait_incrementing(start=delay, increment=delay),
            retry=retry_if_exception_type(RateSourceError),
            sleep=self._sleep,
            reraise=True,
        )

        value = Decimal("0")
        async for attempt in retrying:
            with attempt:
                number = attempt.retry_state.attempt_number
                start_time = time.monotonic()

                try:
                    value = await self._fetch_once(client, source)

                except RateSourceError as e:
                    latency_ms = int((time.monotonic() - start_time) * 1000)
                    attempts.append(ResolutionAttempt(
                        source=source.name,
                        attempt_number=number,
                        success=False,
                        error_type=e.error_type,
                        reason=str(e),
                        latency_ms=latency_ms
                    ))
                    logger.warning(f"{source.name} attempt {number}/{max_attempts} failed: {e}")
                    raise

                latency_ms = int((time.monotonic() - start_time) * 1000)
                attempts.append(ResolutionAttempt(
                    source=source.name,
                    attempt_number=number,
                    success=True,
                    value=value,
                    latency_ms=latency_ms
                ))
                logger.info(f"✅ {source.name} success: {value} ({latency_ms}ms)")

        return value

    async def _fetch_once(self, client: httpx.AsyncClient, source: RateSource) -> Decimal:
        """One GET, parse and extract. Every failure surfaces as a RateSourceError."""
        try:
            return await self._request_and_extract(client, source)

        except Exception as e:
            if isinstance(e, RateSourceError):
                raise
            raise RateSourceError(
                message=f"Unexpected error: {e}",
                source=source.name,
                error_type="UNKNOWN",
                details={"exception": type(e).__name__}
            ) from e

    async def _request_and_extract(
        self,
        client: httpx.AsyncClient,
        source: RateSource
    ) -> Decimal:
        timeout = self.config.timeout_seconds

        try:
            response = await asyncio.wait_for(client.get(source.url), timeout=timeout)
            response.raise_for_status()

        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            raise NetworkFailure(
                message="Request timeout",
                source=source.name,
                error_type="TIMEOUT",
                details={"timeout_ms": self.config.request_timeout_ms}
            ) from e

        except httpx.HTTPStatusError as e:
            raise NetworkFailure(
                message=f"HTTP error: {e.response.status_code}",
                source=source.name,
                error_type=f"HTTP_{e.response.status_code}",
                details={"url": str(e.request.url)}
            ) from e

        except httpx.HTTPError as e:
            raise NetworkFailure(
                message=f"Network error: {e}",
                source=source.name,
                error_type="NETWORK",
                details={"url": source.url}
            ) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise ExtractionFailure(
                message="Response body is not valid JSON",
                source=source.name,
                error_type="PARSE_ERROR",
                details={"content_type": response.headers.get("content-type")}
            ) from e

        value = source.extract(payload)
        return validate_rate(
            value,
            source=source.name,
            lower=self.config.plausible_min,
            upper=self.config.plausible_max
        )

    def _final_fallback(self) -> tuple[RateQuote, RateStatus]:
        try:
            candidate = self.fallback_estimator.estimate()
        except Exception as e:
            logger.warning(f"Reference fallback failed: {e}")
            candidate = None

        if _is_acceptable(candidate):
            quote = RateQuote(
                value=candidate,
                origin_label=REFERENCE_LABEL,
                origin=QuoteOrigin.REFERENCE
            )
            logger.warning(f"All rate sources failed, using reference rate {candidate}")
            return quote, RateStatus(
                level=StatusLevel.WARNING,
                message=f"Using reference rate ({self.config.reference_rate:.2f})",
                quote=quote
            )

        logger.error("All rate sources failed and no reference estimate, using default rate")
        quote = self._default_quote()
        return quote, RateStatus(
            level=StatusLevel.ERROR,
            message="Failed to fetch rate",
            quote=quote
        )

    def _default_quote(self) -> RateQuote:
        return RateQuote(
            value=self.config.default_rate,
            origin_label=DEFAULT_LABEL,
            origin=QuoteOrigin.DEFAULT
        )

    def _notify(self, status: RateStatus) -> None:
        if self._listener is None:
            return
        try:
            self._listener(status)
        except Exception as e:
            logger.warning(f"Status listener failed: {e}")

    async def health_check_all(self) -> dict[str, bool]:
        """Check that every registered source answers with HTTP 200."""
        results: dict[str, bool] = {}

        async with httpx.AsyncClient(
            transport=self._transport,
            headers={"Accept": "application/json"},
            follow_redirects=True
        ) as client:
            for source in self.registry.list_sources():
                try:
                    response = await asyncio.wait_for(
                        client.get(source.url),
                        timeout=self.config.timeout_seconds
                    )
                    results[source.name] = response.status_code == 200
                except (asyncio.TimeoutError, httpx.HTTPError):
                    results[source.name] = False

        return results
