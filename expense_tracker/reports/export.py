"""
CSV and JSON report export.

CSV layout (opens in Excel / Sheets / Numbers):

    Date,Type,Category/Source,Description,Amount (MVR),Profile
    <one row per transaction>
    <blank row>
    SUMMARY
    Total Income,MVR 1,234.50
    ...
"""

import csv
import io
import json
from decimal import Decimal

from expense_tracker.models.ledger import Transaction, TransactionType
from expense_tracker.models.report import Report


def format_money(value: Decimal, currency: str = "MVR") -> str:
    """Format like MVR 1,234.50 (negative values as -MVR 1,234.50)."""
    sign = "-" if value < 0 else ""
    return f"{sign}{currency} {abs(value):,.2f}"


def category_label(transaction: Transaction) -> str:
    """Category name for expenses, income source name for income."""
    if transaction.category_name:
        return transaction.category_name
    return "Income" if transaction.type == TransactionType.INCOME else "Expense"


def to_csv(report: Report) -> str:
    currency = report.currency
    summary = report.summary

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow(["Date", "Type", "Category/Source", "Description", f"Amount ({currency})", "Profile"])

    for t in report.transactions:
        writer.writerow([
            t.transaction_date.isoformat(),
            t.type.value,
            category_label(t),
            t.description or "",
            str(t.amount),
            t.profile_name or "",
        ])

    writer.writerow([])
    writer.writerow(["SUMMARY"])
    writer.writerow(["Total Income", format_money(summary.total_income, currency)])
    writer.writerow(["Total Expenses", format_money(summary.total_expense, currency)])
    writer.writerow(["Net Savings", format_money(summary.net_savings, currency)])
    if report.period.is_monthly:
        writer.writerow(["Budget", format_money(summary.total_budget, currency)])
        writer.writerow(["Budget Remaining", format_money(summary.budget_remaining, currency)])
    writer.writerow(["Transaction Count", str(summary.transaction_count)])

    return buffer.getvalue()


def to_json(report: Report) -> str:
    summary = report.summary
    payload = {
        "reportPeriod": report.period.label,
        "generatedAt": report.generated_at.isoformat(),
        "summary": {
            "totalIncome": float(summary.total_income),
            "totalExpense": float(summary.total_expense),
            "netSavings": float(summary.net_savings),
            "totalBudget": float(summary.total_budget),
            "transactionCount": summary.transaction_count,
        },
        "transactions": [
            {
                "id": str(t.id),
                "date": t.transaction_date.isoformat(),
                "type": t.type.value,
                "amount": float(t.amount),
                "description": t.description,
                "category": category_label(t),
                "profile": t.profile_name,
            }
            for t in report.transactions
        ],
    }
    return json.dumps(payload, indent=2)
