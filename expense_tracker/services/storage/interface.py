"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The interface is intentionally small - it mirrors the query API of a
backend-as-a-service: insert, update, select and delete on logical tables.
Rows are plain JSON-compatible dicts; models convert themselves with
model_dump(mode="json") and model_validate().

Filters use a Django-style suffix convention:
    {"profile_id__in": [...], "due_date__gte": "2024-01-01", "is_paid": False}
"""

from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from expense_tracker.models.audit import AuditEvent


# Logical tables of the external backend
TRANSACTIONS = "transactions"
RECURRING_EXPENSES = "recurring_expenses"
RECURRING_INCOME = "recurring_income"
BILL_PAYMENTS = "bill_payments"
GROCERY_BILLS = "grocery_bills"
GROCERY_BILL_ITEMS = "grocery_bill_items"
EXPENSE_CATEGORIES = "expense_categories"
INCOME_SOURCES = "income_sources"
EXPENSE_PROFILES = "expense_profiles"
MONTHLY_BUDGETS = "monthly_budgets"
CATEGORY_BUDGETS = "category_budgets"
BILL_REMINDERS = "bill_reminders"
SAVINGS_GOALS = "savings_goals"

# Columns that must be unique together, per table
UNIQUE_KEYS: dict[str, tuple[str, ...]] = {
    BILL_PAYMENTS: ("recurring_expense_id", "due_date"),
}


class BackendInterface(ABC):
    """
    Abstract interface for the table store.

    Any storage implementation (Google Sheets, a hosted Postgres, memory)
    must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        """
        Insert a row.

        Returns:
            The stored row

        Raises:
            DuplicateError: If a unique key already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        patch: dict[str, Any],
        match: dict[str, Any],
    ) -> int:
        """
        Apply patch to every row matching match.

        Returns:
            Number of rows updated

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def select(
        self,
        table: str,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Select rows matching filters.

        Args:
            table: Logical table name
            filters: Equality and suffix filters (see module docstring)
            order_by: Column name, prefixed with "-" for descending
            limit: Maximum number of rows

        Returns:
            Matching rows
        """
        pass

    @abstractmethod
    async def delete(self, table: str, match: dict[str, Any]) -> int:
        """
        Delete every row matching match.

        Returns:
            Number of rows deleted
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one settlement).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events (newest first).
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass


# =============================================================================
# ROW HELPERS shared by the implementations
# =============================================================================

def normalize_value(value: Any) -> Any:
    """Convert a Python value to its stored JSON representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (list, tuple, set)):
        return [normalize_value(v) for v in value]
    return value


def normalize_row(row: dict[str, Any]) -> dict[str, Any]:
    return {key: normalize_value(value) for key, value in row.items()}


def _as_comparable(value: Any) -> Any:
    # Amounts come back as strings from JSON rows; compare them numerically
    if isinstance(value, str):
        try:
            return Decimal(value) if value.replace(".", "", 1).lstrip("-").isdigit() else value
        except ArithmeticError:
            return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return Decimal(str(value))
    return value


def row_matches(row: dict[str, Any], filters: Optional[dict[str, Any]]) -> bool:
    """Evaluate a filter dict against a stored row."""
    if not filters:
        return True

    for key, expected in filters.items():
        column, _, op = key.partition("__")
        actual = row.get(column)
        expected = normalize_value(expected)

        if op == "":
            # "2024" from a sheet cell still equals the integer 2024
            if actual != expected and _as_comparable(actual) != _as_comparable(expected):
                return False
        elif op == "in":
            if actual not in expected:
                return False
        elif op == "ilike":
            if actual is None or str(expected).lower() not in str(actual).lower():
                return False
        elif op in ("gte", "lte", "gt", "lt"):
            if actual is None or actual == "":
                return False
            left, right = _as_comparable(actual), _as_comparable(expected)
            if op == "gte" and not left >= right:
                return False
            if op == "lte" and not left <= right:
                return False
            if op == "gt" and not left > right:
                return False
            if op == "lt" and not left < right:
                return False
        else:
            raise StorageError(f"Unsupported filter operator: {op}")

    return True


def sort_rows(
    rows: list[dict[str, Any]],
    order_by: Optional[str],
) -> list[dict[str, Any]]:
    if not order_by:
        return rows
    reverse = order_by.startswith("-")
    column = order_by.lstrip("-")
    # None sorts first ascending, last descending
    return sorted(
        rows,
        key=lambda r: (r.get(column) is not None, _as_comparable(r.get(column)) if r.get(column) is not None else ""),
        reverse=reverse,
    )
