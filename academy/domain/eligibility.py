"""
Eligibility classifier: is a member subscribed on a given day / in a given month.

Pure queries over an ordered period list; periods are assumed not to overlap
and the first matching one wins.
"""
from datetime import date
from typing import Sequence

from academy.domain.periods import SubscriptionPeriod
from academy.domain.recurrence import month_bounds

STATE_ACTIVE = "active"
STATE_EXPIRED = "expired"
STATE_NOT_SUBSCRIBED = "not_subscribed"


def classify(on: date, periods: Sequence[SubscriptionPeriod]) -> str:
    """State of the member on `on`: active, expired or not_subscribed."""
    if not periods or on < periods[0].start:
        return STATE_NOT_SUBSCRIBED
    for p in periods:
        if p.contains(on):
            return STATE_ACTIVE
    return STATE_EXPIRED


def is_active_in_month(periods: Sequence[SubscriptionPeriod], ym: str) -> bool:
    """True if any period overlaps the month. Open-ended periods extend forever."""
    if not periods:
        return False
    first, last = month_bounds(ym)
    return any(p.intersects(first, last) for p in periods)
