"""
Report Models

Summaries computed from transactions and budgets for the dashboard
and for CSV/JSON export.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional
from uuid import UUID

from dateutil.relativedelta import relativedelta
from pydantic import BaseModel, Field

from expense_tracker.models.ledger import Transaction


class ReportPeriod(BaseModel):
    """A calendar month, or a whole year when month is None."""

    year: int = Field(..., ge=2000, le=2100)
    month: Optional[int] = Field(default=None, ge=1, le=12)

    @property
    def is_monthly(self) -> bool:
        return self.month is not None

    @property
    def start(self) -> date:
        return date(self.year, self.month or 1, 1)

    @property
    def end(self) -> date:
        if self.month is None:
            return date(self.year, 12, 31)
        return self.start + relativedelta(day=31)

    @property
    def label(self) -> str:
        if self.month is None:
            return f"Year {self.year}"
        return self.start.strftime("%B %Y")


class ReportSummary(BaseModel):
    total_income: Decimal = Decimal("0")
    total_expense: Decimal = Decimal("0")
    total_budget: Decimal = Decimal("0")
    transaction_count: int = 0

    @property
    def net_savings(self) -> Decimal:
        return self.total_income - self.total_expense

    @property
    def budget_remaining(self) -> Decimal:
        return self.total_budget - self.total_expense


class Report(BaseModel):
    """Everything needed to render or export one period."""

    period: ReportPeriod
    generated_at: datetime = Field(default_factory=datetime.utcnow)
    summary: ReportSummary
    transactions: list[Transaction] = Field(default_factory=list)
    currency: str = "MVR"


class DashboardStats(BaseModel):
    total_income: Decimal
    total_expense: Decimal
    remaining_balance: Decimal
    budget: Decimal
    days_remaining: int
    daily_safe_spend: Decimal
    progress_percent: float


class CategoryBudgetStatus(BaseModel):
    category_id: UUID
    budget_amount: Decimal
    spent: Decimal
    alert_threshold: int

    @property
    def percent_used(self) -> float:
        if self.budget_amount <= 0:
            return 0.0
        return float(self.spent / self.budget_amount * 100)

    @property
    def is_alert(self) -> bool:
        return self.percent_used >= self.alert_threshold

    @property
    def is_over_budget(self) -> bool:
        return self.spent > self.budget_amount
