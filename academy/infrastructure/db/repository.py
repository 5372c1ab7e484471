"""
Snapshot loading and attendance persistence over the ORM tables.

The engine works on plain records; this module is the only place that
knows about rows.
"""
import logging
from datetime import date
from decimal import Decimal

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from academy.application.attendance import ToggleCommand
from academy.domain.records import (
    AttendanceRecord, Branch, CalendarTrainingEvent, FinanceTransaction, Member, Payment,
    Snapshot, period_rows_from_payments,
)
from academy.domain.recurrence import month_bounds
from academy.domain.weekday import parse_training_days
from academy.infrastructure.db.models import (
    AttendanceModel, BranchModel, CalendarEventModel, FinanceTxModel, MemberModel, PaymentModel,
)

logger = logging.getLogger(__name__)


def member_from_row(row: MemberModel) -> Member:
    return Member(
        id=row.id,
        name=row.name,
        branch_id=row.branch_id,
        subscription_mode=row.subscription_mode,
        session_target=row.session_target or 0,
        start_date=row.start_date,
        end_date=row.end_date,
        paused=bool(row.is_paused),
    )


def branch_from_row(row: BranchModel) -> Branch:
    return Branch(id=row.id, name=row.name, training_days=parse_training_days(row.training_days))


def payment_from_row(row: PaymentModel) -> Payment:
    return Payment(
        member_id=row.member_id,
        date=row.date,
        kind=row.kind,
        amount=Decimal(row.amount or 0),
        subscription_end=row.subscription_end,
    )


class SnapshotRepository:
    def __init__(self, db: Session):
        self.db = db

    def list_attendance(self, first: date, last: date) -> list[AttendanceRecord]:
        rows = (
            self.db.query(AttendanceModel)
            .filter(AttendanceModel.date >= first, AttendanceModel.date <= last)
            .order_by(AttendanceModel.date)
            .all()
        )
        return [AttendanceRecord(member_id=r.member_id, date=r.date, present=bool(r.present)) for r in rows]

    def load(self, ym: str) -> Snapshot:
        """Everything needed for one month: full payment/finance history, month-scoped attendance and events."""
        first, last = month_bounds(ym)

        members = tuple(member_from_row(r) for r in self.db.query(MemberModel).order_by(MemberModel.name).all())
        branches = tuple(branch_from_row(r) for r in self.db.query(BranchModel).order_by(BranchModel.name).all())
        payments = tuple(
            payment_from_row(r)
            for r in self.db.query(PaymentModel).order_by(PaymentModel.date, PaymentModel.id).all()
        )
        events = tuple(
            CalendarTrainingEvent(branch_id=r.branch_id, date=r.date, event_type=r.event_type)
            for r in self.db.query(CalendarEventModel).filter(
                CalendarEventModel.date >= first,
                CalendarEventModel.date <= last,
            ).all()
        )
        finance = tuple(
            FinanceTransaction(month=r.month, type=r.type, amount=Decimal(r.amount), source=r.source)
            for r in self.db.query(FinanceTxModel).all()
        )
        logger.debug("snapshot %s: %d members, %d payments", ym, len(members), len(payments))
        return Snapshot(
            members=members,
            branches=branches,
            payments=payments,
            period_rows=tuple(period_rows_from_payments(payments)),
            attendance=tuple(self.list_attendance(first, last)),
            calendar_events=events,
            finance=finance,
        )


class SqlAttendanceWriter:
    """Persistence call of the toggle protocol: upsert keyed by (member_id, date)."""

    def __init__(self, db: Session):
        self.db = db

    def __call__(self, command: ToggleCommand, present: bool) -> None:
        try:
            row = self.db.query(AttendanceModel).filter(
                AttendanceModel.member_id == command.member_id,
                AttendanceModel.date == command.date,
            ).first()
            if row is None:
                row = AttendanceModel(
                    member_id=command.member_id,
                    branch_id=command.branch_id,
                    date=command.date,
                    present=present,
                )
                self.db.add(row)
            else:
                row.present = present
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            raise
