"""
Local Rate Estimators

Cheap, offline stand-ins for a network lookup. The resolver asks its estimator
first and only walks the rate sources when no acceptable estimate comes back.

- RegionalEstimator: reference rate with a small random perturbation, clamped
  to configured bounds. Also used for the final fallback.
- LastKnownGoodEstimator: the last rate a real source gave us, while fresh.
- NullEstimator: never estimates; every call walks the sources.
"""

import logging
import random
import time
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Callable

from repairquote.computation.money import round2
from repairquote.config import ResolverConfig

logger = logging.getLogger(__name__)

HALF = Decimal("0.5")


class RateEstimator(ABC):
    """Stage 1 strategy of the rate resolver."""

    LABEL: str = "Estimate"

    @abstractmethod
    def estimate(self) -> Decimal | None:
        """Return a candidate rate, or None when there is nothing to offer."""

    def remember(self, value: Decimal) -> None:
        """Hook called with every rate accepted from a real source."""


class RegionalEstimator(RateEstimator):
    """
    Perturb the reference rate inside a bounded window.

    candidate = reference + (U - 0.5) × variation, U ∈ [0, 1)
    then rounded half-up to cents and clamped to [minimum, maximum], and to
    [reference - window, reference + window] when a window is given.
    """

    LABEL = "Regional estimate"

    def __init__(
        self,
        reference: Decimal,
        variation: Decimal,
        minimum: Decimal,
        maximum: Decimal,
        rng: random.Random | None = None,
        window: Decimal | None = None
    ):
        self.reference = reference
        self.variation = variation
        self.minimum = minimum
        self.maximum = maximum
        if window is not None:
            self.minimum = max(minimum, reference - window)
            self.maximum = min(maximum, reference + window)
        self._rng = rng or random.Random()

    @classmethod
    def from_config(
        cls,
        config: ResolverConfig,
        rng: random.Random | None = None
    ) -> "RegionalEstimator":
        return cls(
            reference=config.reference_rate,
            variation=config.estimate_variation,
            minimum=config.estimate_min,
            maximum=config.estimate_max,
            rng=rng,
            window=config.estimate_tolerance,
        )

    def estimate(self) -> Decimal:
        try:
            offset = (Decimal(repr(self._rng.random())) - HALF) * self.variation
            candidate = round2(self.reference + offset)
        except (ArithmeticError, ValueError) as e:
            logger.warning(f"Regional estimate failed, using reference: {e}")
            return self.reference

        # Clamp after rounding so the bounds hold exactly
        if candidate < self.minimum:
            return self.minimum
        if candidate > self.maximum:
            return self.maximum
        return candidate


class LastKnownGoodEstimator(RateEstimator):
    """Replay the most recent source-provided rate while it is younger than ttl."""

    LABEL = "Last known rate"

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: Decimal | None = None
        self._stored_at: float | None = None

    def estimate(self) -> Decimal | None:
        if self._value is None or self._stored_at is None:
            return None
        age = self._clock() - self._stored_at
        if age > self.ttl_seconds:
            logger.info(f"Last known rate expired ({age:.0f}s old)")
            return None
        return self._value

    def remember(self, value: Decimal) -> None:
        self._value = value
        self._stored_at = self._clock()


class NullEstimator(RateEstimator):
    """Stage 1 disabled."""

    LABEL = "No estimate"

    def estimate(self) -> Decimal | None:
        return None


def build_estimator(
    config: ResolverConfig,
    rng: random.Random | None = None
) -> RateEstimator:
    """Instantiate the stage 1 estimator selected in configuration."""
    if config.estimator == "regional":
        return RegionalEstimator.from_config(config, rng=rng)
    if config.estimator == "last_known_good":
        return LastKnownGoodEstimator(ttl_seconds=config.last_known_good_ttl_seconds)
    return NullEstimator()
