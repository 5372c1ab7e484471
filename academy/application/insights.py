"""
Insight Rule Engine 1.0 - operational alerts computed from a data snapshot.

Architecture:
- _TEMPLATES: title / description / suggested actions per rule
- Rules: rule_<name>(snapshot, ym, today) -> list[Insight], pure and independent
- compute_insights(): runs every rule, concatenates, stable-sorts by severity

Rules:
  renewal-drop    renewal rate fell >= 10 points vs previous month
  revenue-drop    revenue fell >= 15% vs previous month
  expiring-7d     subscriptions ending within the next 7 days
  absences        a member missed >= 3 sessions in a row this month
  low-attendance  a branch's attendance rate trails the academy average by >= 20 points

Suppressed finance lines never count. Percentages are rounded half-up.
"""
import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Iterable

from academy.application.finance import monthly_revenue
from academy.domain.insight import (
    Insight, InsightScope, insight_id, sort_by_severity,
    SEVERITY_CRITICAL, SEVERITY_INFO, SEVERITY_WARNING,
)
from academy.domain.records import Payment, Snapshot, PAYMENT_KIND_LEGACY, parse_iso_date
from academy.domain.recurrence import month_key, prev_month_key
from academy.utils.money import format_money
from academy.utils.numbers import percent, round_half_up

logger = logging.getLogger(__name__)

RULE_RENEWAL_DROP = "renewal-drop"
RULE_REVENUE_DROP = "revenue-drop"
RULE_EXPIRING = "expiring-7d"
RULE_ABSENCES = "absences"
RULE_LOW_ATTENDANCE = "low-attendance"

RENEWAL_DROP_WARNING = 10
RENEWAL_DROP_CRITICAL = 25
REVENUE_DROP_WARNING = 15
REVENUE_DROP_CRITICAL = 30
EXPIRING_WINDOW_DAYS = 7
EXPIRING_CRITICAL_COUNT = 5
EXPIRING_WARNING_COUNT = 2
EXPIRING_NAMES_SHOWN = 5
ABSENCE_MIN_RECORDS = 3
ABSENCE_RUN_WARNING = 3
ABSENCE_RUN_CRITICAL = 5
LOW_ATTENDANCE_MIN_BRANCHES = 2
LOW_ATTENDANCE_GAP_WARNING = 20
LOW_ATTENDANCE_GAP_CRITICAL = 35

# ---------------------------------------------------------------------------
# Message templates
# ---------------------------------------------------------------------------

_TEMPLATES: dict[str, dict] = {
    RULE_RENEWAL_DROP: {
        "title": "Renewal rate dropped noticeably",
        "description": (
            "The renewal rate fell from {prev_rate}% last month to {cur_rate}% this month "
            "(down {drop} points). More members did not renew their subscriptions."
        ),
        "actions": (
            "Review the members who did not renew and contact them",
            "Check for a service or pricing problem",
            "Run an early-renewal campaign with an incentive",
        ),
    },
    RULE_REVENUE_DROP: {
        "title": "Revenue down {drop_pct}% vs last month",
        "description": (
            "Revenue this month is {cur} against {prev} last month (down {drop_pct}%). "
            "Review the causes before the month closes."
        ),
        "actions": (
            "Review subscriptions that were not renewed",
            "Check that automatic invoices were generated in finance",
            "Break revenue down by branch to find the most affected one",
        ),
    },
    RULE_EXPIRING: {
        "title": "{count} subscription(s) expire within {days} days",
        "description": "{names}{extra}: subscriptions end soon. Contact them now to improve renewals.",
        "actions": (
            "Send a renewal reminder to each member",
            "Offer an early-renewal deal",
            "Review the {count} member(s) on the members page",
        ),
    },
    RULE_ABSENCES: {
        "title": "{name}: {run} consecutive absences",
        "description": (
            "{name} has missed {run} sessions in a row this month. Repeated absences may "
            "point to dissatisfaction or a personal issue."
        ),
        "actions": (
            "Get in touch with {name}",
            "Check for a health or personal issue",
            "Remind them of their subscription end date and the value of attending",
        ),
    },
    RULE_LOW_ATTENDANCE: {
        "title": "Branch {branch}: attendance below average",
        "description": (
            "Attendance at branch {branch} this month is {rate}% against an academy "
            "average of {avg}% (gap {gap} points)."
        ),
        "actions": (
            "Review the training schedule of branch {branch}",
            "Check for travel or timing problems",
            "Survey the members of the branch",
        ),
    },
}


def _make_insight(
    rule: str,
    scope: InsightScope,
    ym: str,
    severity: str,
    today: date,
    ctx: dict,
    snapshot: dict,
) -> Insight:
    tmpl = _TEMPLATES[rule]
    return Insight(
        id=insight_id(rule, scope, ym),
        rule=rule,
        title=tmpl["title"].format(**ctx),
        description=tmpl["description"].format(**ctx),
        severity=severity,
        scope=scope,
        actions=tuple(a.format(**ctx) for a in tmpl["actions"]),
        created_at=today,
        snapshot=snapshot,
    )


# ---------------------------------------------------------------------------
# Helpers (pure, testable in isolation)
# ---------------------------------------------------------------------------

def _in_month(value, ym: str) -> bool:
    on = parse_iso_date(value)
    return on is not None and month_key(on) == ym


def first_payment_months(payments: Iterable[Payment]) -> dict[str, str]:
    """member_id -> month of the member's earliest payment of any kind."""
    first: dict[str, date] = {}
    for p in payments:
        paid_on = parse_iso_date(p.date)
        if not p.member_id or paid_on is None:
            continue
        if p.member_id not in first or paid_on < first[p.member_id]:
            first[p.member_id] = paid_on
    return {mid: month_key(d) for mid, d in first.items()}


def renewal_rate(
    payments: Iterable[Payment],
    ym: str,
    first_months: dict[str, str] | None = None,
) -> tuple[int, int]:
    """(rate %, number of paying members) for the month; legacy payments don't qualify."""
    payments = list(payments)
    if first_months is None:
        first_months = first_payment_months(payments)
    payers = {
        p.member_id for p in payments
        if p.member_id and _in_month(p.date, ym) and p.kind != PAYMENT_KIND_LEGACY
    }
    new = sum(1 for mid in payers if first_months.get(mid) == ym)
    renewals = len(payers) - new
    return percent(renewals, len(payers)), len(payers)


def longest_absence_run(flags: Iterable[bool]) -> int:
    """Longest run of consecutive False values (absences)."""
    best = cur = 0
    for present in flags:
        if present:
            cur = 0
        else:
            cur += 1
            best = max(best, cur)
    return best


# ---------------------------------------------------------------------------
# Rules
# ---------------------------------------------------------------------------

def rule_renewal_drop(snapshot: Snapshot, ym: str, today: date) -> list[Insight]:
    first_months = first_payment_months(snapshot.payments)
    cur_rate, cur_total = renewal_rate(snapshot.payments, ym, first_months)
    prev_rate, prev_total = renewal_rate(snapshot.payments, prev_month_key(ym), first_months)
    if cur_total == 0 or prev_total == 0:
        return []

    drop = prev_rate - cur_rate
    if drop < RENEWAL_DROP_WARNING:
        return []
    severity = SEVERITY_CRITICAL if drop >= RENEWAL_DROP_CRITICAL else SEVERITY_WARNING
    ctx = {"prev_rate": prev_rate, "cur_rate": cur_rate, "drop": drop}
    return [_make_insight(
        RULE_RENEWAL_DROP, InsightScope.academy(), ym, severity, today, ctx,
        {"cur_rate": cur_rate, "prev_rate": prev_rate, "drop": drop, "month": ym},
    )]


def rule_revenue_drop(snapshot: Snapshot, ym: str, today: date, currency: str = "KWD") -> list[Insight]:
    cur = monthly_revenue(snapshot.finance, ym)
    prev = monthly_revenue(snapshot.finance, prev_month_key(ym))
    if prev == 0 or cur == 0:
        return []

    drop_pct = round_half_up((prev - cur) / prev * 100)
    if drop_pct < REVENUE_DROP_WARNING:
        return []
    severity = SEVERITY_CRITICAL if drop_pct >= REVENUE_DROP_CRITICAL else SEVERITY_WARNING
    ctx = {
        "drop_pct": drop_pct,
        "cur": format_money(cur, currency),
        "prev": format_money(prev, currency),
    }
    return [_make_insight(
        RULE_REVENUE_DROP, InsightScope.academy(), ym, severity, today, ctx,
        {"cur_revenue": float(cur), "prev_revenue": float(prev), "drop_pct": drop_pct, "month": ym},
    )]


def rule_upcoming_expirations(
    snapshot: Snapshot,
    ym: str,
    today: date,
    window_days: int = EXPIRING_WINDOW_DAYS,
) -> list[Insight]:
    """Keyed by the month of `today`: the window is relative to today, not to `ym`."""
    horizon = today + timedelta(days=window_days)
    expiring = []
    for m in snapshot.members:
        end = parse_iso_date(m.end_date)
        if end is not None and today <= end <= horizon:
            expiring.append(m)
    if not expiring:
        return []

    count = len(expiring)
    if count >= EXPIRING_CRITICAL_COUNT:
        severity = SEVERITY_CRITICAL
    elif count >= EXPIRING_WARNING_COUNT:
        severity = SEVERITY_WARNING
    else:
        severity = SEVERITY_INFO
    shown = [m.name for m in expiring[:EXPIRING_NAMES_SHOWN]]
    extra = f" and {count - EXPIRING_NAMES_SHOWN} more" if count > EXPIRING_NAMES_SHOWN else ""
    ctx = {"count": count, "days": window_days, "names": ", ".join(shown), "extra": extra}
    return [_make_insight(
        RULE_EXPIRING, InsightScope.academy(), month_key(today), severity, today, ctx,
        {"count": count, "names": ", ".join(m.name for m in expiring), "today": today.isoformat()},
    )]


def rule_consecutive_absences(snapshot: Snapshot, ym: str, today: date) -> list[Insight]:
    branch_map = snapshot.branch_map()
    by_member = defaultdict(list)
    for r in snapshot.attendance:
        on = parse_iso_date(r.date)
        if on is not None and month_key(on) == ym:
            by_member[r.member_id].append((on, r.present))

    insights = []
    for member in snapshot.members:
        branch = branch_map.get(member.branch_id) if member.branch_id else None
        if branch is None:
            continue
        records = sorted(by_member.get(member.id, []), key=lambda pair: pair[0])
        if len(records) < ABSENCE_MIN_RECORDS:
            continue
        run = longest_absence_run(present for _, present in records)
        if run < ABSENCE_RUN_WARNING:
            continue
        severity = SEVERITY_CRITICAL if run >= ABSENCE_RUN_CRITICAL else SEVERITY_WARNING
        insights.append(_make_insight(
            RULE_ABSENCES, InsightScope.member(member.id, member.name), ym, severity, today,
            {"name": member.name, "run": run},
            {
                "consecutive_absences": run,
                "total_records": len(records),
                "branch_name": branch.name,
                "month": ym,
            },
        ))
    return insights


def rule_low_branch_attendance(snapshot: Snapshot, ym: str, today: date) -> list[Insight]:
    month_records = [r for r in snapshot.attendance if _in_month(r.date, ym)]

    rates = []  # (branch, rate, total)
    for branch in snapshot.branches:
        member_ids = {m.id for m in snapshot.members if m.branch_id == branch.id}
        if not member_ids:
            continue
        records = [r for r in month_records if r.member_id in member_ids]
        if not records:
            continue
        attended = sum(1 for r in records if r.present)
        rates.append((branch, percent(attended, len(records)), len(records)))

    if len(rates) < LOW_ATTENDANCE_MIN_BRANCHES:
        return []

    avg = round_half_up(sum(rate for _, rate, _ in rates) / len(rates))
    insights = []
    for branch, rate, total in rates:
        gap = avg - rate
        if gap < LOW_ATTENDANCE_GAP_WARNING:
            continue
        severity = SEVERITY_CRITICAL if gap >= LOW_ATTENDANCE_GAP_CRITICAL else SEVERITY_WARNING
        insights.append(_make_insight(
            RULE_LOW_ATTENDANCE, InsightScope.branch(branch.id, branch.name), ym, severity, today,
            {"branch": branch.name, "rate": rate, "avg": avg, "gap": gap},
            {
                "branch_rate": rate,
                "academy_avg": avg,
                "gap": gap,
                "total_records": total,
                "month": ym,
            },
        ))
    return insights


def compute_insights(
    snapshot: Snapshot,
    ym: str,
    today: date,
    currency: str = "KWD",
    expiring_window_days: int = EXPIRING_WINDOW_DAYS,
) -> list[Insight]:
    """Run every rule and return insights ordered critical -> warning -> info."""
    insights: list[Insight] = []
    insights += rule_renewal_drop(snapshot, ym, today)
    insights += rule_revenue_drop(snapshot, ym, today, currency=currency)
    insights += rule_upcoming_expirations(snapshot, ym, today, window_days=expiring_window_days)
    insights += rule_consecutive_absences(snapshot, ym, today)
    insights += rule_low_branch_attendance(snapshot, ym, today)
    logger.info("insights for %s: %d", ym, len(insights))
    return sort_by_severity(insights)
