"""
Rounding helpers shared by percentage-based metrics.
"""
from decimal import Decimal, ROUND_HALF_UP


def round_half_up(value) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3, -2.5 -> -3)."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent(part, whole) -> int:
    """Integer percentage of part in whole; 0 when whole is 0."""
    if not whole:
        return 0
    return round_half_up(Decimal(str(part)) * 100 / Decimal(str(whole)))
