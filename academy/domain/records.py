"""
Input records consumed by the engine.

Plain immutable values mapped from collaborator rows (DB, API payloads).
Nothing here is persisted by the engine itself.
"""
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal

from academy.domain.weekday import Weekday

# Subscription modes
MODE_SESSION_COUNT = "session_count"    # expires after N training sessions
MODE_CALENDAR_MONTH = "calendar_month"  # expires one calendar month after start

# Payment kinds
PAYMENT_KIND_NEW = "new"
PAYMENT_KIND_RENEW = "renew"
PAYMENT_KIND_LEGACY = "legacy"  # imported history, not a genuine purchase

# Finance
TX_TYPE_REVENUE = "revenue"
TX_TYPE_EXPENSE = "expense"
TX_SOURCE_AUTO = "auto"
TX_SOURCE_MANUAL = "manual"
TX_SOURCE_SUPPRESSED = "suppressed"  # excluded from every aggregation

EVENT_TYPE_TRAINING = "training"


def parse_iso_date(value) -> date | None:
    """Lenient date parsing: date / datetime / 'YYYY-MM-DD...' string, else None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip()[:10])
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class Member:
    id: str
    name: str
    branch_id: str | None = None
    subscription_mode: str = MODE_CALENDAR_MONTH
    session_target: int = 0
    start_date: date | None = None
    end_date: date | None = None  # authoritative end of the most recent period
    paused: bool = False


@dataclass(frozen=True)
class Branch:
    id: str
    name: str
    training_days: frozenset[Weekday] = field(default_factory=frozenset)


@dataclass(frozen=True)
class Payment:
    member_id: str
    date: date
    kind: str = PAYMENT_KIND_NEW
    amount: Decimal = Decimal("0")
    subscription_end: date | None = None


@dataclass(frozen=True)
class PaymentPeriodRow:
    """One raw subscription purchase: start, and an end when it was recorded."""
    member_id: str
    start_date: date | None
    end_date: date | None = None


@dataclass(frozen=True)
class AttendanceRecord:
    member_id: str
    date: date
    present: bool


@dataclass(frozen=True)
class CalendarTrainingEvent:
    branch_id: str | None
    date: date
    event_type: str = EVENT_TYPE_TRAINING


@dataclass(frozen=True)
class FinanceTransaction:
    month: str  # YYYY-MM
    type: str   # revenue / expense
    amount: Decimal
    source: str = TX_SOURCE_MANUAL


@dataclass(frozen=True)
class Snapshot:
    """Everything the engine needs, fetched by collaborators beforehand."""
    members: tuple[Member, ...] = ()
    branches: tuple[Branch, ...] = ()
    payments: tuple[Payment, ...] = ()
    period_rows: tuple[PaymentPeriodRow, ...] = ()
    attendance: tuple[AttendanceRecord, ...] = ()
    calendar_events: tuple[CalendarTrainingEvent, ...] = ()
    finance: tuple[FinanceTransaction, ...] = ()

    def branch_map(self) -> dict[str, Branch]:
        return {b.id: b for b in self.branches}

    def member_map(self) -> dict[str, Member]:
        return {m.id: m for m in self.members}


def period_rows_from_payments(payments) -> list[PaymentPeriodRow]:
    """Each payment opens one period: start = payment date, end = recorded subscription end."""
    return [
        PaymentPeriodRow(member_id=p.member_id, start_date=p.date, end_date=p.subscription_end)
        for p in payments
    ]
