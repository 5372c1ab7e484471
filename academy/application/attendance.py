"""
Attendance reconciliation - which dates a member can be marked on, and the
presence ledger with its optimistic toggle protocol.

Dates for a member in a month = the branch's scheduled session dates plus
extra "training" calendar events of that branch, de-duplicated and sorted.
Each date carries the member's eligibility state; only active dates are
interactive, and a paused member cannot be marked on today or later.

Toggle protocol (AttendanceLedger.toggle):
  1. flip the ledger entry immediately and mark the key in flight
  2. call the persistence writer
  3. success -> clear the in-flight marker (ToggleApplied)
     failure -> restore the prior value, clear the marker (ToggleFailed)
A second toggle on a key that is still in flight is refused (ToggleRejected).
"""
import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from datetime import date
from typing import Callable, Iterable, Sequence

from academy.domain.eligibility import STATE_ACTIVE, classify, is_active_in_month
from academy.domain.periods import SubscriptionPeriod, build_periods_map
from academy.domain.records import (
    AttendanceRecord, Branch, CalendarTrainingEvent, Member, Snapshot, EVENT_TYPE_TRAINING,
)
from academy.domain.recurrence import generate_session_dates, month_key, parse_month_key
from academy.utils.numbers import percent

logger = logging.getLogger(__name__)

LEDGER_MONTHS_KEPT = 3


class AttendanceValidationError(ValueError):
    pass


# ============================================================================
# Session dates
# ============================================================================


def extra_training_dates(events: Iterable[CalendarTrainingEvent], ym: str) -> dict[str, set[date]]:
    """branch_id -> extra training dates in the month. Other event types are ignored."""
    out: dict[str, set[date]] = {}
    for ev in events:
        if ev.event_type != EVENT_TYPE_TRAINING or not ev.branch_id:
            continue
        if month_key(ev.date) != ym:
            continue
        out.setdefault(ev.branch_id, set()).add(ev.date)
    return out


def merged_session_dates(
    ym: str,
    branch_id: str | None,
    branch: Branch | None,
    extras: dict[str, set[date]],
) -> list[date]:
    year, month = parse_month_key(ym)
    dates = set(generate_session_dates(year, month, branch.training_days)) if branch else set()
    if branch_id:
        dates |= extras.get(branch_id, set())
    return sorted(dates)


def is_togglable(member: Member, state: str, on: date, today: date) -> bool:
    if state != STATE_ACTIVE:
        return False
    if member.paused and on >= today:
        return False
    return True


# ============================================================================
# Presence ledger + toggle protocol
# ============================================================================


@dataclass(frozen=True)
class ToggleCommand:
    member_id: str
    date: date
    branch_id: str | None = None

    @property
    def key(self) -> tuple[str, date]:
        return (self.member_id, self.date)


@dataclass(frozen=True)
class ToggleApplied:
    command: ToggleCommand
    value: bool
    ok = True


@dataclass(frozen=True)
class ToggleFailed:
    command: ToggleCommand
    reason: str
    prior_value: bool
    ok = False


@dataclass(frozen=True)
class ToggleRejected:
    command: ToggleCommand
    reason: str
    ok = False


@dataclass(frozen=True)
class PendingToggle:
    command: ToggleCommand
    value: bool
    prior_value: bool
    had_entry: bool


ToggleResult = ToggleApplied | ToggleFailed | ToggleRejected
AttendanceWriter = Callable[[ToggleCommand, bool], None]


def describe_error(exc: BaseException) -> str:
    message = str(exc).strip()
    return message or exc.__class__.__name__


class AttendanceLedger:
    """In-memory presence marks keyed by (member_id, date); absent key = not present."""

    def __init__(self, records: Iterable[AttendanceRecord] = ()) -> None:
        self._values: dict[tuple[str, date], bool] = {}
        self._in_flight: set[tuple[str, date]] = set()
        self._lock = threading.Lock()
        self.load(records)

    def load(self, records: Iterable[AttendanceRecord], replace: bool = False) -> None:
        """Merge stored marks. Keys with a write in flight keep their optimistic value.

        replace=True first forgets every settled key, so marks deleted from
        storage do not linger.
        """
        records = list(records)
        with self._lock:
            if replace:
                self._values = {k: v for k, v in self._values.items() if k in self._in_flight}
            for r in records:
                key = (r.member_id, r.date)
                if key not in self._in_flight:
                    self._values[key] = r.present

    def get(self, member_id: str, on: date) -> bool:
        return self._values.get((member_id, on), False)

    def is_in_flight(self, member_id: str, on: date) -> bool:
        return (member_id, on) in self._in_flight

    def has_in_flight(self) -> bool:
        return bool(self._in_flight)

    def __len__(self) -> int:
        return len(self._values)

    def begin(self, command: ToggleCommand) -> PendingToggle | ToggleRejected:
        with self._lock:
            key = command.key
            if key in self._in_flight:
                logger.info("toggle rejected, write in flight for member=%s date=%s", *key)
                return ToggleRejected(command, reason="A save for this date is already in progress")
            had_entry = key in self._values
            prior = self._values.get(key, False)
            self._values[key] = not prior
            self._in_flight.add(key)
            return PendingToggle(command, value=not prior, prior_value=prior, had_entry=had_entry)

    def commit(self, pending: PendingToggle) -> ToggleApplied:
        with self._lock:
            self._in_flight.discard(pending.command.key)
        return ToggleApplied(pending.command, value=pending.value)

    def rollback(self, pending: PendingToggle, reason: str) -> ToggleFailed:
        with self._lock:
            key = pending.command.key
            if pending.had_entry:
                self._values[key] = pending.prior_value
            else:
                self._values.pop(key, None)
            self._in_flight.discard(key)
        return ToggleFailed(pending.command, reason=reason, prior_value=pending.prior_value)

    def toggle(self, command: ToggleCommand, writer: AttendanceWriter) -> ToggleResult:
        pending = self.begin(command)
        if isinstance(pending, ToggleRejected):
            return pending
        try:
            writer(command, pending.value)
        except Exception as exc:
            logger.warning(
                "attendance save failed for member=%s date=%s, rolled back",
                command.member_id, command.date, exc_info=True,
            )
            return self.rollback(pending, describe_error(exc))
        return self.commit(pending)


class MonthLedgers:
    """One AttendanceLedger per month key, keeping only the most recently used months.

    Months with a write in flight are never evicted.
    """

    def __init__(self, max_months: int = LEDGER_MONTHS_KEPT) -> None:
        self.max_months = max_months
        self._ledgers: OrderedDict[str, AttendanceLedger] = OrderedDict()
        self._lock = threading.Lock()

    def for_month(self, ym: str) -> AttendanceLedger:
        with self._lock:
            ledger = self._ledgers.pop(ym, None)
            if ledger is None:
                ledger = AttendanceLedger()
            self._ledgers[ym] = ledger
            for key in list(self._ledgers):
                if len(self._ledgers) <= self.max_months:
                    break
                if key != ym and not self._ledgers[key].has_in_flight():
                    del self._ledgers[key]
                    logger.debug("attendance ledger for %s evicted", key)
            return ledger

    def months(self) -> list[str]:
        return list(self._ledgers)


# ============================================================================
# Roster / per-member view
# ============================================================================


@dataclass(frozen=True)
class DateEntry:
    date: date
    state: str
    present: bool
    togglable: bool
    in_flight: bool = False


@dataclass(frozen=True)
class MemberAttendance:
    member: Member
    branch: Branch | None
    entries: tuple[DateEntry, ...]

    @property
    def total_active(self) -> int:
        return sum(1 for e in self.entries if e.state == STATE_ACTIVE)

    @property
    def present_count(self) -> int:
        return sum(1 for e in self.entries if e.state == STATE_ACTIVE and e.present)

    @property
    def pct(self) -> int:
        return percent(self.present_count, self.total_active)


def build_roster(
    members: Iterable[Member],
    periods_map: dict[str, list[SubscriptionPeriod]],
    ym: str,
    branch_id: str | None = None,
) -> list[Member]:
    """Members subscribed at any point in the month, optionally limited to one branch."""
    roster = [m for m in members if is_active_in_month(periods_map.get(m.id, []), ym)]
    if branch_id is not None:
        roster = [m for m in roster if m.branch_id == branch_id]
    return roster


def member_attendance(
    member: Member,
    branch: Branch | None,
    periods: Sequence[SubscriptionPeriod],
    dates: Sequence[date],
    ledger: AttendanceLedger,
    today: date,
) -> MemberAttendance:
    entries = []
    for d in dates:
        state = classify(d, periods)
        entries.append(DateEntry(
            date=d,
            state=state,
            present=ledger.get(member.id, d),
            togglable=is_togglable(member, state, d, today),
            in_flight=ledger.is_in_flight(member.id, d),
        ))
    return MemberAttendance(member=member, branch=branch, entries=tuple(entries))


def build_attendance_board(
    snapshot: Snapshot,
    ym: str,
    today: date,
    ledger: AttendanceLedger,
    branch_id: str | None = None,
) -> list[MemberAttendance]:
    """Roster of the month with every member's merged, classified dates."""
    branch_map = snapshot.branch_map()
    periods_map = build_periods_map(snapshot.period_rows, snapshot.members, snapshot.branches)
    extras = extra_training_dates(snapshot.calendar_events, ym)

    board = []
    for member in build_roster(snapshot.members, periods_map, ym, branch_id):
        branch = branch_map.get(member.branch_id) if member.branch_id else None
        dates = merged_session_dates(ym, member.branch_id, branch, extras)
        board.append(member_attendance(
            member, branch, periods_map.get(member.id, []), dates, ledger, today,
        ))
    return board


def check_togglable(snapshot: Snapshot, command: ToggleCommand, today: date) -> Member:
    """Validate that the member may be marked on the command's date.

    Raises:
        AttendanceValidationError: unknown member, or a display-only date
    """
    member = snapshot.member_map().get(command.member_id)
    if member is None:
        raise AttendanceValidationError(f"Unknown member: {command.member_id}")
    rows = [r for r in snapshot.period_rows if r.member_id == member.id]
    periods = build_periods_map(rows, [member], snapshot.branches).get(member.id, [])
    state = classify(command.date, periods)
    if not is_togglable(member, state, command.date, today):
        if state != STATE_ACTIVE:
            raise AttendanceValidationError(f"Member is {state} on {command.date.isoformat()}")
        raise AttendanceValidationError("Member is paused; future dates cannot be marked")
    return member
