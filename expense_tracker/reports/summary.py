"""
Period summaries and dashboard figures.

Pure functions over already-loaded transactions and budgets; loading
is done by ReportService.
"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from expense_tracker.models.ledger import (
    CategoryBudget,
    MonthlyBudget,
    Transaction,
    TransactionType,
)
from expense_tracker.models.report import (
    CategoryBudgetStatus,
    DashboardStats,
    ReportPeriod,
    ReportSummary,
)
from expense_tracker.recurring.dates import days_in_month


CENTS = Decimal("0.01")


def _total(transactions: Iterable[Transaction], kind: TransactionType) -> Decimal:
    return sum((t.amount for t in transactions if t.type == kind), Decimal("0"))


def summarize(
    transactions: list[Transaction],
    budgets: Iterable[MonthlyBudget] = (),
    period: Optional[ReportPeriod] = None,
) -> ReportSummary:
    """
    Totals for a report period.

    Budgets only count towards monthly reports; a yearly report has no
    single budget to compare against.
    """
    include_budget = period is None or period.is_monthly
    return ReportSummary(
        total_income=_total(transactions, TransactionType.INCOME),
        total_expense=_total(transactions, TransactionType.EXPENSE),
        total_budget=(
            sum((b.total_budget for b in budgets), Decimal("0"))
            if include_budget else Decimal("0")
        ),
        transaction_count=len(transactions),
    )


def days_remaining_in_month(today: date) -> int:
    """Whole days left after today (0 on the last day of the month)."""
    return max(0, days_in_month(today.year, today.month) - today.day)


def dashboard_stats(
    transactions: list[Transaction],
    budgets: Iterable[MonthlyBudget],
    today: Optional[date] = None,
) -> DashboardStats:
    """
    Headline numbers for the current month.

    daily_safe_spend spreads whatever budget is left over the remaining
    days; an overspent budget gives 0, never a negative allowance.
    """
    today = today or date.today()
    summary = summarize(transactions, budgets)
    remaining = summary.total_budget - summary.total_expense
    days_left = days_remaining_in_month(today)

    if days_left > 0:
        safe_spend = (max(Decimal("0"), remaining) / days_left).quantize(CENTS, ROUND_HALF_UP)
    else:
        safe_spend = Decimal("0")

    if summary.total_budget > 0:
        progress = min(100.0, float(summary.total_expense / summary.total_budget * 100))
    else:
        progress = 0.0

    return DashboardStats(
        total_income=summary.total_income,
        total_expense=summary.total_expense,
        remaining_balance=remaining,
        budget=summary.total_budget,
        days_remaining=days_left,
        daily_safe_spend=safe_spend,
        progress_percent=progress,
    )


def category_budget_status(
    budgets: Iterable[CategoryBudget],
    transactions: Iterable[Transaction],
) -> list[CategoryBudgetStatus]:
    """Spending against each category budget, most used first."""
    spent: dict[str, Decimal] = {}
    for t in transactions:
        if t.type == TransactionType.EXPENSE and t.category_id is not None:
            key = str(t.category_id)
            spent[key] = spent.get(key, Decimal("0")) + t.amount

    statuses = [
        CategoryBudgetStatus(
            category_id=b.category_id,
            budget_amount=b.budget_amount,
            spent=spent.get(str(b.category_id), Decimal("0")),
            alert_threshold=b.alert_threshold,
        )
        for b in budgets
    ]
    return sorted(statuses, key=lambda s: s.percent_used, reverse=True)
