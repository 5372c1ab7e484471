"""
Attendance API endpoints
"""
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.api.deps import get_db, get_ledgers, get_today, require_month
from academy.application.attendance import (
    AttendanceValidationError, MonthLedgers, ToggleCommand, ToggleFailed, ToggleRejected,
    build_attendance_board, check_togglable,
)
from academy.application.attendance_sheet import MODE_MONTHLY, SHEET_MODES, build_attendance_sheet
from academy.domain.recurrence import month_key
from academy.infrastructure.db.repository import SnapshotRepository, SqlAttendanceWriter


router = APIRouter(prefix="/api/v1/attendance", tags=["attendance"])


# === Request/Response models ===

class DateEntryResponse(BaseModel):
    date: date
    state: str  # active / expired / not_subscribed
    present: bool
    togglable: bool
    in_flight: bool


class MemberAttendanceResponse(BaseModel):
    member_id: str
    name: str
    branch_id: str | None
    branch_name: str | None
    paused: bool
    entries: list[DateEntryResponse]
    present_count: int
    total_active: int
    pct: int


class ToggleRequest(BaseModel):
    member_id: str
    date: date


class ToggleResponse(BaseModel):
    member_id: str
    date: date
    present: bool


class SheetRowResponse(BaseModel):
    member_id: str
    name: str
    branch_name: str
    symbols: list[str]


class WeekResponse(BaseModel):
    label: str
    dates: list[date]


class SheetResponse(BaseModel):
    month: str
    mode: str
    dates: list[date]
    weeks: list[WeekResponse]
    rows: list[SheetRowResponse]


# === Endpoints ===

@router.get("/roster", response_model=list[MemberAttendanceResponse])
def get_roster(
    month: str = Depends(require_month),
    branch_id: str | None = None,
    db: Session = Depends(get_db),
    ledgers: MonthLedgers = Depends(get_ledgers),
    today: date = Depends(get_today),
):
    """Members subscribed during the month with their session dates"""
    snapshot = SnapshotRepository(db).load(month)
    ledger = ledgers.for_month(month)
    ledger.load(snapshot.attendance, replace=True)
    board = build_attendance_board(snapshot, month, today, ledger, branch_id=branch_id)
    return [
        MemberAttendanceResponse(
            member_id=item.member.id,
            name=item.member.name,
            branch_id=item.member.branch_id,
            branch_name=item.branch.name if item.branch else None,
            paused=item.member.paused,
            entries=[
                DateEntryResponse(
                    date=e.date, state=e.state, present=e.present,
                    togglable=e.togglable, in_flight=e.in_flight,
                )
                for e in item.entries
            ],
            present_count=item.present_count,
            total_active=item.total_active,
            pct=item.pct,
        )
        for item in board
    ]


@router.post("/toggle", response_model=ToggleResponse)
def toggle_attendance(
    req: ToggleRequest,
    db: Session = Depends(get_db),
    ledgers: MonthLedgers = Depends(get_ledgers),
    today: date = Depends(get_today),
):
    """Flip presence for (member, date); rolled back if saving fails"""
    month = month_key(req.date)
    snapshot = SnapshotRepository(db).load(month)
    try:
        member = check_togglable(snapshot, ToggleCommand(req.member_id, req.date), today)
    except AttendanceValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    ledger = ledgers.for_month(month)
    ledger.load(snapshot.attendance, replace=True)
    command = ToggleCommand(member_id=member.id, date=req.date, branch_id=member.branch_id)
    result = ledger.toggle(command, SqlAttendanceWriter(db))

    if isinstance(result, ToggleRejected):
        raise HTTPException(status_code=409, detail=result.reason)
    if isinstance(result, ToggleFailed):
        raise HTTPException(
            status_code=502,
            detail={"reason": result.reason, "prior_value": result.prior_value},
        )
    return ToggleResponse(member_id=member.id, date=req.date, present=result.value)


@router.get("/sheet", response_model=SheetResponse)
def get_sheet(
    month: str = Depends(require_month),
    mode: str = MODE_MONTHLY,
    week: int = Query(0, ge=0),
    start: date | None = None,
    end: date | None = None,
    branch_id: str | None = None,
    db: Session = Depends(get_db),
    ledgers: MonthLedgers = Depends(get_ledgers),
):
    """Printable attendance sheet (monthly / weekly / custom range)"""
    if mode not in SHEET_MODES:
        raise HTTPException(status_code=422, detail=f"mode must be one of {', '.join(SHEET_MODES)}")
    snapshot = SnapshotRepository(db).load(month)
    ledger = ledgers.for_month(month)
    ledger.load(snapshot.attendance, replace=True)
    sheet = build_attendance_sheet(
        snapshot, month, ledger,
        mode=mode, branch_id=branch_id, week_index=week, start=start, end=end,
    )
    return SheetResponse(
        month=sheet.month,
        mode=sheet.mode,
        dates=list(sheet.dates),
        weeks=[WeekResponse(label=w.label, dates=list(w.dates)) for w in sheet.weeks],
        rows=[
            SheetRowResponse(
                member_id=r.member.id, name=r.member.name,
                branch_name=r.branch_name, symbols=list(r.symbols),
            )
            for r in sheet.rows
        ],
    )
