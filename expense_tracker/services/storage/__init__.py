"""
Storage Services Package

Provides abstract interfaces and concrete implementations for data storage.
Google Sheets is the hosted backend; the in-memory store backs tests and
offline use. Both implement the same interface, so flows never care which.
"""

from expense_tracker.services.storage.interface import (
    BILL_PAYMENTS,
    BILL_REMINDERS,
    CATEGORY_BUDGETS,
    EXPENSE_CATEGORIES,
    EXPENSE_PROFILES,
    GROCERY_BILL_ITEMS,
    GROCERY_BILLS,
    INCOME_SOURCES,
    MONTHLY_BUDGETS,
    RECURRING_EXPENSES,
    RECURRING_INCOME,
    SAVINGS_GOALS,
    TRANSACTIONS,
    AuditStorageInterface,
    BackendInterface,
    ConnectionError,
    DuplicateError,
    NotFoundError,
    StorageError,
)
from expense_tracker.services.storage.memory import (
    InMemoryAuditStorage,
    InMemoryBackend,
)
from expense_tracker.services.storage.google_sheets import (
    GoogleSheetsAuditStorage,
    GoogleSheetsBackend,
    GoogleSheetsClient,
)

__all__ = [
    # Tables
    "BILL_PAYMENTS",
    "BILL_REMINDERS",
    "CATEGORY_BUDGETS",
    "EXPENSE_CATEGORIES",
    "EXPENSE_PROFILES",
    "GROCERY_BILL_ITEMS",
    "GROCERY_BILLS",
    "INCOME_SOURCES",
    "MONTHLY_BUDGETS",
    "RECURRING_EXPENSES",
    "RECURRING_INCOME",
    "SAVINGS_GOALS",
    "TRANSACTIONS",
    # Interfaces
    "AuditStorageInterface",
    "BackendInterface",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # In-memory implementation
    "InMemoryAuditStorage",
    "InMemoryBackend",
    # Google Sheets implementation
    "GoogleSheetsAuditStorage",
    "GoogleSheetsBackend",
    "GoogleSheetsClient",
]
