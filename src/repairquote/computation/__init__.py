"""
Repair Quote Computation Module

BudgetCalculator lives in repairquote.computation.budget and is not re-exported
here: budget depends on repairquote.export, which depends on money below.
"""

from repairquote.computation.estimator import (
    LastKnownGoodEstimator,
    NullEstimator,
    RateEstimator,
    RegionalEstimator,
    build_estimator,
)
from repairquote.computation.money import format_rate, round2

__all__ = [
    "RateEstimator",
    "RegionalEstimator",
    "LastKnownGoodEstimator",
    "NullEstimator",
    "build_estimator",
    "format_rate",
    "round2",
]
