"""
Monthly finance aggregation. Suppressed ledger lines never count.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable

from academy.domain.records import (
    FinanceTransaction, TX_SOURCE_SUPPRESSED, TX_TYPE_EXPENSE, TX_TYPE_REVENUE,
)


@dataclass(frozen=True)
class MonthlyTotals:
    month: str
    revenue: Decimal
    expense: Decimal

    @property
    def net(self) -> Decimal:
        return self.revenue - self.expense


def counted(finance: Iterable[FinanceTransaction]) -> list[FinanceTransaction]:
    return [t for t in finance if t.source != TX_SOURCE_SUPPRESSED]


def monthly_totals(finance: Iterable[FinanceTransaction], ym: str) -> MonthlyTotals:
    revenue = Decimal("0")
    expense = Decimal("0")
    for t in counted(finance):
        if t.month != ym:
            continue
        if t.type == TX_TYPE_REVENUE:
            revenue += Decimal(str(t.amount))
        elif t.type == TX_TYPE_EXPENSE:
            expense += Decimal(str(t.amount))
    return MonthlyTotals(month=ym, revenue=revenue, expense=expense)


def monthly_revenue(finance: Iterable[FinanceTransaction], ym: str) -> Decimal:
    return monthly_totals(finance, ym).revenue
