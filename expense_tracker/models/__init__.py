"""
Data Models Package

This package contains all Pydantic models used in the Expense Tracker.
All data flowing through the system must conform to these schemas.
"""

from expense_tracker.models.ledger import (
    BillReminder,
    CategoryBudget,
    Frequency,
    MonthlyBudget,
    ObligationKind,
    PaymentRecord,
    PendingBill,
    Profile,
    ProfileType,
    RecurringObligation,
    SavingsGoal,
    SettlementResult,
    Transaction,
    TransactionType,
)
from expense_tracker.models.receipt import (
    GroceryBill,
    GroceryBillItem,
    LineItem,
    ParsedBill,
    ParseEmpty,
    ParseResult,
    ParseSuccess,
    PriceComparison,
    ValidationIssue,
    ValidationResult,
)
from expense_tracker.models.report import (
    CategoryBudgetStatus,
    DashboardStats,
    Report,
    ReportPeriod,
    ReportSummary,
)
from expense_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Ledger models
    "BillReminder",
    "CategoryBudget",
    "Frequency",
    "MonthlyBudget",
    "ObligationKind",
    "PaymentRecord",
    "PendingBill",
    "Profile",
    "ProfileType",
    "RecurringObligation",
    "SavingsGoal",
    "SettlementResult",
    "Transaction",
    "TransactionType",
    # Receipt models
    "GroceryBill",
    "GroceryBillItem",
    "LineItem",
    "ParsedBill",
    "ParseEmpty",
    "ParseResult",
    "ParseSuccess",
    "PriceComparison",
    "ValidationIssue",
    "ValidationResult",
    # Report models
    "CategoryBudgetStatus",
    "DashboardStats",
    "Report",
    "ReportPeriod",
    "ReportSummary",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
