"""
SQLAlchemy ORM models - the collaborator tables the engine reads snapshots from
"""
from decimal import Decimal
from datetime import date as date_type
from sqlalchemy import String, DateTime, Integer, TIMESTAMP, Date, func, Boolean, Numeric, UniqueConstraint, Index
from sqlalchemy.orm import Mapped, mapped_column

from academy.infrastructure.db.session import Base


class BranchModel(Base):
    """Training location. training_days: comma-separated weekday codes, e.g. 'SA,TU'"""
    __tablename__ = "branches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    training_days: Mapped[str] = mapped_column(String(32), nullable=False, default="", server_default="")

    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class MemberModel(Base):
    """Subscriber. end_date is the authoritative end of the latest period"""
    __tablename__ = "members"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    subscription_mode: Mapped[str] = mapped_column(
        String(16), nullable=False, default="calendar_month", server_default="calendar_month",
    )  # session_count / calendar_month
    session_target: Mapped[int] = mapped_column(Integer, nullable=False, default=0, server_default="0")
    start_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    end_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    is_paused: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")

    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class PaymentModel(Base):
    """One subscription purchase. date = period start; subscription_end NULL for legacy rows"""
    __tablename__ = "payments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    branch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False, default=0)
    kind: Mapped[str] = mapped_column(String(16), nullable=False, default="new")  # new / renew / legacy
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    subscription_end: Mapped[date_type | None] = mapped_column(Date, nullable=True)  # inclusive

    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class AttendanceModel(Base):
    """Presence mark, one per (member, date)"""
    __tablename__ = "attendance"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    member_id: Mapped[str] = mapped_column(String(36), nullable=False)
    branch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    date: Mapped[date_type] = mapped_column(Date, nullable=False)
    present: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    updated_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("member_id", "date", name="uq_attendance_member_date"),
        Index("ix_attendance_date", "date"),
    )


class CalendarEventModel(Base):
    """Calendar event; 'training' events of a branch add extra session dates"""
    __tablename__ = "calendar_events"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    branch_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    date: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)  # training / match / canceled / special_event


class FinanceTxModel(Base):
    """Finance ledger line. source='suppressed' lines are kept but never aggregated"""
    __tablename__ = "finance_tx"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month: Mapped[str] = mapped_column(String(7), nullable=False, index=True)  # YYYY-MM
    type: Mapped[str] = mapped_column(String(16), nullable=False)  # revenue / expense
    category: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 3), nullable=False)
    source: Mapped[str] = mapped_column(String(16), nullable=False, default="manual")  # auto / manual / suppressed

    created_at: Mapped[DateTime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
