"""
Subscription periods derived from raw payment rows.

Every payment row opens one period. Rows recorded without an end date
(legacy imports) get a synthetic end computed from the member's
subscription mode:

- calendar_month: inclusive one-month window, see monthly_period_end()
- session_count: the date the member's N-th training session happens

For the most recent row of a member the member record's end_date always
wins: it reflects manual extensions made after the payment was recorded.

Anything that cannot be computed (unknown mode, branch without training
days, non-positive session target) stays open-ended (end=None). An
open-ended period never expires, which is preferred to guessing an end.
"""
import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from academy.domain.records import (
    Branch, Member, PaymentPeriodRow, MODE_CALENDAR_MONTH, MODE_SESSION_COUNT, parse_iso_date,
)
from academy.domain.recurrence import add_months, last_day_of_month, nth_session_date

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubscriptionPeriod:
    start: date
    end: date | None  # inclusive; None = open-ended

    def contains(self, d: date) -> bool:
        return self.start <= d and (self.end is None or d <= self.end)

    def intersects(self, first: date, last: date) -> bool:
        if self.start > last:
            return False
        return self.end is None or self.end >= first


def monthly_period_end(start: date) -> date:
    """Last inclusive day of a one-calendar-month subscription.

    The day before the same day-of-month one month later. When that day does
    not exist in the following month (start on the 29th-31st), the window runs
    to the last day of the following month:
      2024-01-15 -> 2024-02-14
      2024-01-31 -> 2024-02-29, 2023-01-31 -> 2023-02-28
    """
    nxt = add_months(start.replace(day=1), 1)
    last = last_day_of_month(nxt.year, nxt.month)
    if start.day > last:
        return nxt.replace(day=last)
    return nxt.replace(day=start.day) - timedelta(days=1)


def synthetic_period_end(start: date, member: Member | None, branch: Branch | None) -> date | None:
    if member is None:
        return None
    if member.subscription_mode == MODE_CALENDAR_MONTH:
        return monthly_period_end(start)
    if member.subscription_mode == MODE_SESSION_COUNT:
        if branch is None or not branch.training_days:
            logger.debug("member %s: no training days, period from %s left open", member.id, start)
            return None
        end = nth_session_date(start, branch.training_days, member.session_target or 0)
        if end is None:
            logger.debug(
                "member %s: session walk gave no end (target=%r), period from %s left open",
                member.id, member.session_target, start,
            )
        return end
    logger.debug("member %s: unknown subscription mode %r", member.id, member.subscription_mode)
    return None


def resolve_member_periods(
    rows: Iterable[PaymentPeriodRow],
    member: Member | None,
    branch: Branch | None,
) -> list[SubscriptionPeriod]:
    """Ordered periods for one member. Rows are processed by ascending start date.

    Dates may arrive as ISO strings. An unparseable start drops the row; an
    unparseable end (on the row, or the member's end for the last row) leaves
    the period open-ended instead of computing a synthetic end.
    """
    usable = []
    for row in rows:
        start = parse_iso_date(row.start_date)
        if start is None:
            logger.debug("skipping period row without a usable start date: %r", row)
            continue
        usable.append((start, row.end_date))
    usable.sort(key=lambda pair: pair[0])

    member_end = member.end_date if member is not None else None
    periods: list[SubscriptionPeriod] = []
    for idx, (start, raw_end) in enumerate(usable):
        if idx == len(usable) - 1 and member_end is not None:
            raw_end = member_end
        if raw_end is None:
            end = synthetic_period_end(start, member, branch)
        else:
            end = parse_iso_date(raw_end)
            if end is None:
                logger.debug("unparseable end %r for period from %s, left open", raw_end, start)
        periods.append(SubscriptionPeriod(start=start, end=end))
    return periods


def build_periods_map(
    rows: Iterable[PaymentPeriodRow],
    members: Iterable[Member],
    branches: Iterable[Branch],
) -> dict[str, list[SubscriptionPeriod]]:
    """member_id -> ordered periods, for every member that has at least one row."""
    member_map = {m.id: m for m in members}
    branch_map = {b.id: b for b in branches}

    by_member: dict[str, list[PaymentPeriodRow]] = {}
    for row in rows:
        by_member.setdefault(row.member_id, []).append(row)

    result: dict[str, list[SubscriptionPeriod]] = {}
    for member_id, member_rows in by_member.items():
        member = member_map.get(member_id)
        branch = branch_map.get(member.branch_id) if member and member.branch_id else None
        result[member_id] = resolve_member_periods(member_rows, member, branch)
    return result
