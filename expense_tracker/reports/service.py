"""
Report Service

Loads transactions and budgets for a set of profiles and a period,
joins in category, income source and profile names, and hands the
result to the pure summary and export functions.
"""

from datetime import date
from typing import Any, Iterable, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.config import get_settings
from expense_tracker.models.ledger import (
    CategoryBudget,
    MonthlyBudget,
    Transaction,
    TransactionType,
)
from expense_tracker.models.receipt import GroceryBill, GroceryBillItem, PriceComparison
from expense_tracker.models.report import (
    CategoryBudgetStatus,
    DashboardStats,
    Report,
    ReportPeriod,
)
from expense_tracker.receipts.prices import compare_prices
from expense_tracker.reports.summary import (
    category_budget_status,
    dashboard_stats,
    summarize,
)
from expense_tracker.services.storage import (
    CATEGORY_BUDGETS,
    EXPENSE_CATEGORIES,
    EXPENSE_PROFILES,
    GROCERY_BILL_ITEMS,
    GROCERY_BILLS,
    INCOME_SOURCES,
    MONTHLY_BUDGETS,
    TRANSACTIONS,
    BackendInterface,
)


logger = structlog.get_logger(__name__)


class ReportService:
    """Read-side queries for the dashboard and report export."""

    def __init__(self, backend: BackendInterface):
        self._backend = backend

    async def _names(self, table: str, ids: set[str]) -> dict[str, str]:
        if not ids:
            return {}
        rows = await self._backend.select(table, {"id__in": sorted(ids)})
        return {str(row["id"]): row.get("name") or "" for row in rows}

    async def load_transactions(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        period: ReportPeriod,
    ) -> list[Transaction]:
        """Transactions in the period, newest first, with display names."""
        rows = await self._backend.select(
            TRANSACTIONS,
            {
                "profile_id__in": [str(p) for p in profile_ids],
                "transaction_date__gte": period.start,
                "transaction_date__lte": period.end,
            },
            order_by="-transaction_date",
        )
        transactions = [Transaction.model_validate(row) for row in rows]

        categories = await self._names(
            EXPENSE_CATEGORIES, {str(t.category_id) for t in transactions if t.category_id}
        )
        sources = await self._names(
            INCOME_SOURCES, {str(t.income_source_id) for t in transactions if t.income_source_id}
        )
        profiles = await self._names(EXPENSE_PROFILES, {str(t.profile_id) for t in transactions})

        for t in transactions:
            if t.type == TransactionType.INCOME:
                t.category_name = sources.get(str(t.income_source_id))
            else:
                t.category_name = categories.get(str(t.category_id))
            t.profile_name = profiles.get(str(t.profile_id))

        return transactions

    async def load_budgets(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        year: int,
        month: int,
    ) -> list[MonthlyBudget]:
        rows = await self._backend.select(
            MONTHLY_BUDGETS,
            {"profile_id__in": [str(p) for p in profile_ids], "year": year, "month": month},
        )
        return [MonthlyBudget.model_validate(_with_ints(row, "year", "month")) for row in rows]

    async def build(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        year: int,
        month: Optional[int] = None,
    ) -> Report:
        """
        Build a monthly report, or a yearly one when month is None.
        """
        profile_ids = list(profile_ids)
        period = ReportPeriod(year=year, month=month)

        transactions = await self.load_transactions(profile_ids, period)
        budgets = await self.load_budgets(profile_ids, year, month) if month else []

        report = Report(
            period=period,
            summary=summarize(transactions, budgets, period),
            transactions=transactions,
            currency=get_settings().app.currency,
        )
        logger.info(
            "report_built",
            period=period.label,
            profiles=len(profile_ids),
            transactions=len(transactions),
        )
        return report

    async def dashboard(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        today: Optional[date] = None,
    ) -> DashboardStats:
        today = today or date.today()
        profile_ids = list(profile_ids)
        period = ReportPeriod(year=today.year, month=today.month)
        transactions = await self.load_transactions(profile_ids, period)
        budgets = await self.load_budgets(profile_ids, today.year, today.month)
        return dashboard_stats(transactions, budgets, today)

    async def category_budgets(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        year: int,
        month: int,
    ) -> list[CategoryBudgetStatus]:
        profile_ids = list(profile_ids)
        rows = await self._backend.select(
            CATEGORY_BUDGETS,
            {"profile_id__in": [str(p) for p in profile_ids], "year": year, "month": month},
        )
        budgets = [CategoryBudget.model_validate(_with_ints(row, "year", "month")) for row in rows]
        transactions = await self.load_transactions(
            profile_ids, ReportPeriod(year=year, month=month)
        )
        return category_budget_status(budgets, transactions)

    async def load_grocery_bills(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        since: Optional[date] = None,
    ) -> list[GroceryBill]:
        """Saved grocery bills with their items, newest first."""
        filters: dict[str, Any] = {"profile_id__in": [str(p) for p in profile_ids]}
        if since is not None:
            filters["bill_date__gte"] = since
        rows = await self._backend.select(GROCERY_BILLS, filters, order_by="-bill_date")
        bills = [GroceryBill.model_validate(row) for row in rows]
        if not bills:
            return bills

        item_rows = await self._backend.select(
            GROCERY_BILL_ITEMS,
            {"grocery_bill_id__in": [str(b.id) for b in bills]},
        )
        by_bill: dict[str, list[GroceryBillItem]] = {}
        for row in item_rows:
            by_bill.setdefault(str(row["grocery_bill_id"]), []).append(GroceryBillItem.model_validate(row))
        for bill in bills:
            bill.items = by_bill.get(str(bill.id), [])
        return bills

    async def price_comparison(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        since: Optional[date] = None,
    ) -> list[PriceComparison]:
        return compare_prices(await self.load_grocery_bills(profile_ids, since))


def _with_ints(row: dict[str, Any], *columns: str) -> dict[str, Any]:
    # Sheets returns every cell as text
    return {**row, **{c: int(row[c]) for c in columns if row.get(c) not in (None, "")}}
