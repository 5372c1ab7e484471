"""
Insights API endpoints
"""
from datetime import date
from typing import Any

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from academy.api.deps import get_db, get_today, require_month
from academy.application.insights import compute_insights
from academy.config import get_settings
from academy.infrastructure.db.repository import SnapshotRepository


router = APIRouter(prefix="/api/v1/insights", tags=["insights"])


class ScopeResponse(BaseModel):
    type: str
    id: str | None = None
    name: str | None = None


class InsightResponse(BaseModel):
    id: str
    rule: str
    title: str
    description: str
    severity: str
    scope: ScopeResponse
    actions: list[str]
    created_at: date
    snapshot: dict[str, Any]


@router.get("/", response_model=list[InsightResponse])
def list_insights(
    month: str = Depends(require_month),
    db: Session = Depends(get_db),
    today: date = Depends(get_today),
):
    """Insights for the month, critical first"""
    settings = get_settings()
    snapshot = SnapshotRepository(db).load(month)
    insights = compute_insights(
        snapshot, month, today,
        currency=settings.CURRENCY,
        expiring_window_days=settings.EXPIRING_WINDOW_DAYS,
    )
    return [i.to_dict() for i in insights]
