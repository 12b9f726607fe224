"""
Reports Package

Dashboard figures, period summaries and CSV/JSON export.
"""

from expense_tracker.reports.export import format_money, to_csv, to_json
from expense_tracker.reports.service import ReportService
from expense_tracker.reports.summary import (
    category_budget_status,
    dashboard_stats,
    days_remaining_in_month,
    summarize,
)

__all__ = [
    "ReportService",
    "category_budget_status",
    "dashboard_stats",
    "days_remaining_in_month",
    "format_money",
    "summarize",
    "to_csv",
    "to_json",
]
