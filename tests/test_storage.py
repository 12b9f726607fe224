"""
Tests for the table store implementations.

The Google Sheets backend runs against an in-process fake worksheet so
the row encoding and header handling are exercised without the API.
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_tracker.models.ledger import PaymentRecord
from expense_tracker.services.storage import (
    BILL_PAYMENTS,
    TRANSACTIONS,
    DuplicateError,
    GoogleSheetsBackend,
    InMemoryBackend,
    StorageError,
)
from expense_tracker.services.storage.interface import row_matches, sort_rows


class TestRowMatches:
    """Filter suffixes."""

    ROW = {"id": "a", "amount": "42.50", "due_date": "2024-05-05", "is_paid": False, "name": "Electricity", "year": "2024"}

    @pytest.mark.parametrize("filters", [
        None,
        {},
        {"is_paid": False},
        {"year": 2024},
        {"due_date": date(2024, 5, 5)},
        {"id__in": ["a", "b"]},
        {"name__ilike": "electric"},
        {"amount__gte": 42.5},
        {"amount__lt": "100"},
        {"due_date__gte": "2024-05-01", "due_date__lte": "2024-05-31"},
    ])
    def test_matches(self, filters):
        assert row_matches(self.ROW, filters)

    @pytest.mark.parametrize("filters", [
        {"is_paid": True},
        {"id__in": ["b"]},
        {"name__ilike": "water"},
        {"amount__gt": "42.50"},
        {"missing__gte": 1},
        {"due_date__lt": "2024-05-05"},
    ])
    def test_rejects(self, filters):
        assert not row_matches(self.ROW, filters)

    def test_unknown_operator(self):
        with pytest.raises(StorageError):
            row_matches(self.ROW, {"amount__between": 1})


class TestSortRows:
    def test_numeric_strings_sort_numerically(self):
        rows = [{"amount": "100"}, {"amount": "9.50"}, {"amount": "20"}]
        assert [r["amount"] for r in sort_rows(rows, "amount")] == ["9.50", "20", "100"]

    def test_descending_with_none_last(self):
        rows = [{"d": None}, {"d": "2024-01-01"}, {"d": "2024-03-01"}]
        assert [r["d"] for r in sort_rows(rows, "-d")] == ["2024-03-01", "2024-01-01", None]


class TestInMemoryBackend:
    def test_rows_are_normalised(self, backend):
        record = PaymentRecord(profile_id=uuid4(), recurring_expense_id=uuid4(), due_date=date(2024, 5, 5))
        asyncio.run(backend.insert(BILL_PAYMENTS, {"id": record.id, "due_date": record.due_date, "amount": Decimal("5")}))
        stored = asyncio.run(backend.select(BILL_PAYMENTS))[0]
        assert stored == {"id": str(record.id), "due_date": "2024-05-05", "amount": "5"}

    def test_reads_are_copies(self, backend):
        asyncio.run(backend.insert(TRANSACTIONS, {"id": "t1", "amount": "5"}))
        asyncio.run(backend.select(TRANSACTIONS))[0]["amount"] = "999"
        assert asyncio.run(backend.select(TRANSACTIONS))[0]["amount"] == "5"

    def test_unique_payment_per_due_date(self, backend):
        row = {"recurring_expense_id": "r1", "due_date": "2024-05-05", "is_paid": False}
        asyncio.run(backend.insert(BILL_PAYMENTS, row))
        with pytest.raises(DuplicateError):
            asyncio.run(backend.insert(BILL_PAYMENTS, dict(row, is_paid=True)))

    def test_update_cannot_create_duplicate(self, backend):
        asyncio.run(backend.insert(BILL_PAYMENTS, {"id": "p1", "recurring_expense_id": "r1", "due_date": "2024-05-05"}))
        asyncio.run(backend.insert(BILL_PAYMENTS, {"id": "p2", "recurring_expense_id": "r2", "due_date": "2024-05-05"}))
        with pytest.raises(DuplicateError):
            asyncio.run(backend.update(BILL_PAYMENTS, {"recurring_expense_id": "r1"}, {"id": "p2"}))

    def test_update_and_delete_counts(self, backend):
        for i in range(3):
            asyncio.run(backend.insert(TRANSACTIONS, {"id": f"t{i}", "type": "expense" if i else "income"}))
        assert asyncio.run(backend.update(TRANSACTIONS, {"notes": "x"}, {"type": "expense"})) == 2
        assert asyncio.run(backend.delete(TRANSACTIONS, {"type": "expense"})) == 2
        assert [r["id"] for r in asyncio.run(backend.select(TRANSACTIONS))] == ["t0"]

    def test_limit_and_order(self, backend):
        for day in ("2024-05-03", "2024-05-01", "2024-05-02"):
            asyncio.run(backend.insert(TRANSACTIONS, {"transaction_date": day}))
        rows = asyncio.run(backend.select(TRANSACTIONS, order_by="-transaction_date", limit=2))
        assert [r["transaction_date"] for r in rows] == ["2024-05-03", "2024-05-02"]


class FakeWorksheet:
    """Just enough of gspread.Worksheet for the backend."""

    def __init__(self, header):
        self.rows = [list(header)]

    def row_values(self, index):
        return list(self.rows[index - 1])

    def get_all_records(self, numericise_ignore=None):
        header = self.rows[0]
        return [
            dict(zip(header, row + [""] * (len(header) - len(row))))
            for row in self.rows[1:]
        ]

    def append_row(self, values, value_input_option=None):
        self.rows.append(list(values))

    def update(self, range_name, values, value_input_option=None):
        self.rows[int(range_name[1:]) - 1] = list(values[0])

    def delete_rows(self, index):
        del self.rows[index - 1]


class FakeSheetsClient:
    def __init__(self):
        self.sheets = {}

    def get_worksheet(self, title, header=None):
        return self.sheets.setdefault(title, FakeWorksheet(header or []))


class TestGoogleSheetsBackend:
    """Cell encoding and header growth."""

    @pytest.fixture
    def sheets(self):
        client = FakeSheetsClient()
        return client, GoogleSheetsBackend(client)

    def test_round_trip_types(self, sheets):
        client, backend = sheets
        record = PaymentRecord(
            profile_id=uuid4(),
            recurring_expense_id=uuid4(),
            due_date=date(2024, 5, 5),
            amount=Decimal("450.00"),
        )

        asyncio.run(backend.insert(BILL_PAYMENTS, record.model_dump(mode="json")))
        stored = asyncio.run(backend.select(BILL_PAYMENTS, {"is_paid": False}))

        assert len(stored) == 1
        assert stored[0]["amount"] == "450.00"
        assert stored[0]["paid_date"] is None
        assert stored[0]["is_paid"] is False
        assert client.sheets[BILL_PAYMENTS].rows[1][client.sheets[BILL_PAYMENTS].rows[0].index("is_paid")] == "false"

    def test_header_grows_with_new_columns(self, sheets):
        client, backend = sheets
        asyncio.run(backend.insert(TRANSACTIONS, {"id": "t1", "amount": "5"}))
        asyncio.run(backend.insert(TRANSACTIONS, {"id": "t2", "amount": "6", "notes": "cash"}))

        assert client.sheets[TRANSACTIONS].rows[0] == ["id", "amount", "notes"]
        rows = asyncio.run(backend.select(TRANSACTIONS, order_by="id"))
        assert rows[0]["notes"] is None
        assert rows[1]["notes"] == "cash"

    def test_duplicate_key(self, sheets):
        _, backend = sheets
        row = {"recurring_expense_id": "r1", "due_date": "2024-05-05", "is_paid": False}
        asyncio.run(backend.insert(BILL_PAYMENTS, row))
        with pytest.raises(DuplicateError):
            asyncio.run(backend.insert(BILL_PAYMENTS, dict(row)))

    def test_update_and_delete(self, sheets):
        _, backend = sheets
        for i in range(3):
            asyncio.run(backend.insert(TRANSACTIONS, {"id": f"t{i}", "year": 2024, "type": "expense"}))

        assert asyncio.run(backend.update(TRANSACTIONS, {"type": "income"}, {"id": "t1"})) == 1
        assert asyncio.run(backend.select(TRANSACTIONS, {"type": "income", "year": 2024}))[0]["id"] == "t1"

        assert asyncio.run(backend.delete(TRANSACTIONS, {"type": "expense"})) == 2
        assert [r["id"] for r in asyncio.run(backend.select(TRANSACTIONS))] == ["t1"]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
