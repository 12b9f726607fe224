"""
Shared fixtures.

No test talks to Google Sheets or Tesseract: the in-memory backend
stands in for the table store and coroutines are driven with asyncio.run.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_tracker.audit import AuditLogger
from expense_tracker.models.ledger import Frequency, RecurringObligation
from expense_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryBackend,
    StorageError,
)


SUPERMART_RECEIPT = (
    "SuperMart\n"
    "2024-05-01\n"
    "Milk 2 15.00 30.00\n"
    "Bread 10.50\n"
    "Subtotal 40.50\n"
    "GST 2.00\n"
    "Total 42.50"
)


class FailingBackend(InMemoryBackend):
    """In-memory backend that fails chosen (operation, table) pairs."""

    def __init__(self, fail_on=()):
        super().__init__()
        self.fail_on = set(fail_on)

    def _maybe_fail(self, operation, table):
        if (operation, table) in self.fail_on:
            raise StorageError(f"{operation} on {table} failed")

    async def insert(self, table, row):
        self._maybe_fail("insert", table)
        return await super().insert(table, row)

    async def update(self, table, patch, match):
        self._maybe_fail("update", table)
        return await super().update(table, patch, match)

    async def delete(self, table, match):
        self._maybe_fail("delete", table)
        return await super().delete(table, match)

    async def select(self, table, filters=None, order_by=None, limit=None):
        self._maybe_fail("select", table)
        return await super().select(table, filters, order_by, limit)


@pytest.fixture
def backend():
    return InMemoryBackend()


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def profile_id():
    return uuid4()


@pytest.fixture
def electricity(profile_id):
    """Monthly bill due on the 5th, next due 5 January 2024."""
    return RecurringObligation(
        profile_id=profile_id,
        name="Electricity",
        category_id=uuid4(),
        amount=Decimal("500.00"),
        frequency=Frequency.MONTHLY,
        start_date=date(2024, 1, 1),
        next_due_date=date(2024, 1, 5),
        due_day_of_month=5,
    )
