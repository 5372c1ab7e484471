"""
Deterministic calendar helpers for training schedules.

Uses date only (no timezone).

- Month keys: "YYYY-MM" strings, the unit insights and rosters are computed for
- Session dates: all days of a month falling on a branch's training weekdays
- Session walk: the date on which the N-th training session on/after a start date happens
"""
import calendar
import re
from datetime import date, timedelta
from typing import Iterable

from academy.domain.weekday import Weekday


SESSION_WALK_LIMIT_DAYS = 365

_MONTH_KEY_RE = re.compile(r"^(\d{4})-(\d{2})$")


class MonthKeyError(ValueError):
    pass


def last_day_of_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(d: date, n: int) -> date:
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    last = last_day_of_month(year, month)
    day = min(d.day, last)
    return date(year, month, day)


def parse_month_key(ym: str) -> tuple[int, int]:
    """'2024-03' -> (2024, 3). Raises MonthKeyError on anything else."""
    m = _MONTH_KEY_RE.match(ym.strip()) if isinstance(ym, str) else None
    if not m:
        raise MonthKeyError(f"invalid month key: {ym!r} (expected YYYY-MM)")
    year, month = int(m.group(1)), int(m.group(2))
    if not 1 <= month <= 12:
        raise MonthKeyError(f"invalid month in key: {ym!r}")
    return year, month


def month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def prev_month_key(ym: str) -> str:
    year, month = parse_month_key(ym)
    return month_key(add_months(date(year, month, 1), -1))


def month_bounds(ym: str) -> tuple[date, date]:
    """First and last day (inclusive) of the month."""
    year, month = parse_month_key(ym)
    return date(year, month, 1), date(year, month, last_day_of_month(year, month))


def generate_session_dates(year: int, month: int, training_days: Iterable[Weekday]) -> list[date]:
    """All dates of the month whose weekday is a training day. Sorted ascending."""
    days = {int(w) for w in training_days}
    if not days:
        return []
    return [
        date(year, month, day)
        for day in range(1, last_day_of_month(year, month) + 1)
        if date(year, month, day).weekday() in days
    ]


def nth_session_date(
    start: date,
    training_days: Iterable[Weekday],
    sessions: int,
    limit_days: int = SESSION_WALK_LIMIT_DAYS,
) -> date | None:
    """Date of the `sessions`-th training day on or after `start`.

    Walks at most `limit_days` days. None when the schedule is empty, the
    target is not positive, or the walk runs out.
    """
    days = {int(w) for w in training_days}
    if not days or sessions is None or sessions <= 0:
        return None
    count = 0
    cursor = start
    for _ in range(limit_days):
        if cursor.weekday() in days:
            count += 1
            if count == sessions:
                return cursor
        cursor += timedelta(days=1)
    return None
