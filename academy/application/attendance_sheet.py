"""
Printable attendance sheet: one row per roster member, one column per session date.

Columns are the scheduled session dates of every roster member's branch
(calendar extras are left out). The sheet can be cut to a week chunk of the
month or to a custom date range.
"""
from dataclasses import dataclass
from datetime import date
from typing import Sequence

from academy.application.attendance import AttendanceLedger, build_roster
from academy.domain.eligibility import STATE_EXPIRED, STATE_NOT_SUBSCRIBED, classify
from academy.domain.periods import build_periods_map
from academy.domain.records import Member, Snapshot
from academy.domain.recurrence import generate_session_dates, last_day_of_month, parse_month_key

MODE_MONTHLY = "monthly"
MODE_WEEKLY = "weekly"
MODE_CUSTOM = "custom"
SHEET_MODES = (MODE_MONTHLY, MODE_WEEKLY, MODE_CUSTOM)

SYMBOL_PRESENT = "✓"
SYMBOL_ABSENT = "✕"
SYMBOL_EXPIRED = "○"
SYMBOL_NOT_SUBSCRIBED = ""

WEEK_CHUNKS = ((1, 7), (8, 14), (15, 21), (22, 28), (29, 31))


@dataclass(frozen=True)
class WeekChunk:
    label: str
    dates: tuple[date, ...]


@dataclass(frozen=True)
class SheetRow:
    member: Member
    branch_name: str
    symbols: tuple[str, ...]


@dataclass(frozen=True)
class AttendanceSheet:
    month: str
    mode: str
    dates: tuple[date, ...]
    rows: tuple[SheetRow, ...]
    weeks: tuple[WeekChunk, ...]


def week_chunks(dates: Sequence[date], ym: str) -> list[WeekChunk]:
    """Split the month's dates into day-of-month chunks; empty chunks are dropped."""
    year, month = parse_month_key(ym)
    last = last_day_of_month(year, month)
    out = []
    for start, end in WEEK_CHUNKS:
        chunk = tuple(d for d in dates if start <= d.day <= end)
        if chunk:
            out.append(WeekChunk(label=f"{start}–{min(end, last)}", dates=chunk))
    return out


def select_dates(
    dates: Sequence[date],
    weeks: Sequence[WeekChunk],
    mode: str,
    week_index: int = 0,
    start: date | None = None,
    end: date | None = None,
) -> list[date]:
    if mode == MODE_WEEKLY:
        if 0 <= week_index < len(weeks):
            return list(weeks[week_index].dates)
        return list(dates)
    if mode == MODE_CUSTOM:
        if start is None or end is None:
            return list(dates)
        return [d for d in dates if start <= d <= end]
    return list(dates)


def sheet_symbol(state: str, present: bool) -> str:
    if state == STATE_NOT_SUBSCRIBED:
        return SYMBOL_NOT_SUBSCRIBED
    if state == STATE_EXPIRED:
        return SYMBOL_EXPIRED
    return SYMBOL_PRESENT if present else SYMBOL_ABSENT


def build_attendance_sheet(
    snapshot: Snapshot,
    ym: str,
    ledger: AttendanceLedger,
    mode: str = MODE_MONTHLY,
    branch_id: str | None = None,
    week_index: int = 0,
    start: date | None = None,
    end: date | None = None,
) -> AttendanceSheet:
    if mode not in SHEET_MODES:
        raise ValueError(f"invalid sheet mode: {mode}")
    year, month = parse_month_key(ym)
    branch_map = snapshot.branch_map()
    periods_map = build_periods_map(snapshot.period_rows, snapshot.members, snapshot.branches)
    roster = build_roster(snapshot.members, periods_map, ym, branch_id)

    all_dates: set[date] = set()
    for member in roster:
        branch = branch_map.get(member.branch_id) if member.branch_id else None
        if branch is None:
            continue
        all_dates.update(generate_session_dates(year, month, branch.training_days))
    month_dates = sorted(all_dates)
    weeks = week_chunks(month_dates, ym)
    dates = select_dates(month_dates, weeks, mode, week_index, start, end)

    rows = []
    for member in roster:
        periods = periods_map.get(member.id, [])
        symbols = tuple(sheet_symbol(classify(d, periods), ledger.get(member.id, d)) for d in dates)
        if mode != MODE_MONTHLY and not any(s in (SYMBOL_PRESENT, SYMBOL_ABSENT) for s in symbols):
            continue
        branch = branch_map.get(member.branch_id) if member.branch_id else None
        rows.append(SheetRow(member=member, branch_name=branch.name if branch else "—", symbols=symbols))

    return AttendanceSheet(
        month=ym, mode=mode, dates=tuple(dates), rows=tuple(rows), weeks=tuple(weeks),
    )
