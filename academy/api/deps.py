"""
FastAPI dependencies (DB session, attendance ledger, today, month key)
"""
from datetime import date, datetime
from zoneinfo import ZoneInfo

from fastapi import HTTPException, Request

from academy.application.attendance import MonthLedgers
from academy.config import get_settings
from academy.domain.recurrence import MonthKeyError, parse_month_key
from academy.infrastructure.db.session import get_db as _get_db


# Re-export get_db for convenience
get_db = _get_db


def get_ledgers(request: Request) -> MonthLedgers:
    """Application-wide presence ledgers, one per month (created in create_app)"""
    return request.app.state.attendance_ledgers


def get_today() -> date:
    """Today in the academy's timezone"""
    return datetime.now(tz=ZoneInfo(get_settings().TIMEZONE)).date()


def require_month(month: str) -> str:
    """
    Validate a YYYY-MM query parameter

    Raises:
        HTTPException(422): malformed month key
    """
    try:
        parse_month_key(month)
    except MonthKeyError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return month
