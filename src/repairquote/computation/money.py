"""
Money / rounding helpers.

Rule: ROUND_HALF_UP to 2 decimals, applied to the Decimal read from the
value's shortest string form (5.605 → 5.61, 5.604999 → 5.60).
"""

from decimal import ROUND_HALF_UP, Decimal

TWO_PLACES = Decimal("0.01")


def round2(value: Decimal | float | int | str) -> Decimal:
    """Round half-up to cents."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def format_rate(value: Decimal | float | int | str) -> str:
    """Two-decimal string representation of a rate, e.g. '5.60'."""
    return f"{round2(value):.2f}"
