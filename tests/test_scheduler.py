"""
Tests for the recurring bill scheduler.

Test strategy:
- Settling the current cycle writes a transaction, marks the due date
  paid, advances the schedule and pre-creates the next unpaid record
- Settling never leaves two paid records for one due date
- Failed writes are undone before the error reaches the caller
"""

import asyncio
from collections import Counter
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.ledger import (
    Frequency,
    ObligationKind,
    PaymentRecord,
    RecurringObligation,
)
from expense_tracker.models.receipt import to_decimal
from expense_tracker.recurring import (
    InvalidAmountError,
    ObligationService,
    RecurringBillScheduler,
    SettlementError,
    validate_amount,
)
from expense_tracker.services.storage import (
    BILL_PAYMENTS,
    RECURRING_EXPENSES,
    RECURRING_INCOME,
    TRANSACTIONS,
    DuplicateError,
    InMemoryBackend,
)

from conftest import FailingBackend


def store(backend, obligation):
    asyncio.run(backend.insert(obligation.kind.table, obligation.model_dump(mode="json")))


def rows(backend, table, **filters):
    return asyncio.run(backend.select(table, filters or None, order_by="due_date" if table == BILL_PAYMENTS else None))


def stored_next_due(backend, obligation):
    row = asyncio.run(backend.select(obligation.kind.table, {"id": str(obligation.id)}))[0]
    return row["next_due_date"]


class TestValidateAmount:
    """Paid amounts are checked before anything is written."""

    @pytest.mark.parametrize("value,expected", [
        ("450.00", Decimal("450.00")),
        ("1,250.50", Decimal("1250.50")),
        ("1,250", Decimal("1250")),
        ("12,50", Decimal("12.50")),
        (12, Decimal("12")),
        (Decimal("0.01"), Decimal("0.01")),
    ])
    def test_valid(self, value, expected):
        assert validate_amount(value) == expected

    @pytest.mark.parametrize("text", ["12,50", "1,250", "1,250.50", "42.5"])
    def test_agrees_with_receipt_amounts(self, text):
        """A mark-paid amount reads the same as the same text on a receipt form."""
        assert validate_amount(text) == to_decimal(text)

    @pytest.mark.parametrize("value", [None, "", "abc", "0", "-5", "NaN", "Infinity", True])
    def test_invalid(self, value):
        with pytest.raises(InvalidAmountError):
            validate_amount(value)


class TestSettleCurrentCycle:
    """Settling the cycle that next_due_date points at."""

    def test_monthly_bill_settled(self, backend, audit_logger, electricity):
        """Paying the 5 January bill records it and moves the schedule to 5 February."""
        store(backend, electricity)
        scheduler = RecurringBillScheduler(backend, audit_logger)

        result = asyncio.run(scheduler.settle_payment(electricity, "450.00", paid_on=date(2024, 1, 6)))

        assert result.settled_due_date == date(2024, 1, 5)
        assert result.advanced
        assert result.next_due_date == date(2024, 2, 5)

        transactions = rows(backend, TRANSACTIONS)
        assert len(transactions) == 1
        assert transactions[0]["amount"] == "450.00"
        assert transactions[0]["type"] == "expense"
        assert transactions[0]["transaction_date"] == "2024-01-05"
        assert transactions[0]["description"] == "Electricity"

        records = rows(backend, BILL_PAYMENTS)
        assert [(r["due_date"], r["is_paid"]) for r in records] == [
            ("2024-01-05", True),
            ("2024-02-05", False),
        ]
        assert records[0]["paid_date"] == "2024-01-06"
        assert records[0]["amount"] == "450.00"
        assert records[1]["amount"] == "500.00"

        assert stored_next_due(backend, electricity) == "2024-02-05"

    def test_variable_bill_precreates_without_amount(self, backend, audit_logger, electricity):
        variable = electricity.model_copy(update={"is_variable_amount": True})
        store(backend, variable)

        asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(variable, "450"))

        upcoming = rows(backend, BILL_PAYMENTS, is_paid=False)
        assert len(upcoming) == 1
        assert upcoming[0]["amount"] is None

    def test_settling_twice_pays_consecutive_cycles(self, backend, audit_logger, electricity):
        """The second settlement pays February, never January again."""
        store(backend, electricity)
        scheduler = RecurringBillScheduler(backend, audit_logger)
        service = ObligationService(backend, audit_logger)

        asyncio.run(scheduler.settle_payment(electricity, "450.00"))
        reloaded = asyncio.run(service.get_obligation(electricity.id))
        second = asyncio.run(scheduler.settle_payment(reloaded, "470.00"))

        assert second.settled_due_date == date(2024, 2, 5)
        assert second.next_due_date == date(2024, 3, 5)

        records = rows(backend, BILL_PAYMENTS)
        assert [(r["due_date"], r["is_paid"]) for r in records] == [
            ("2024-01-05", True),
            ("2024-02-05", True),
            ("2024-03-05", False),
        ]

    def test_stale_obligation_does_not_double_pay(self, backend, audit_logger, electricity):
        """Settling with an outdated copy pays the outstanding record instead."""
        store(backend, electricity)
        scheduler = RecurringBillScheduler(backend, audit_logger)

        asyncio.run(scheduler.settle_payment(electricity, "450.00"))
        second = asyncio.run(scheduler.settle_payment(electricity, "450.00"))

        assert second.settled_due_date == date(2024, 2, 5)
        assert second.advanced
        assert stored_next_due(backend, electricity) == "2024-03-05"
        paid = Counter(r["due_date"] for r in rows(backend, BILL_PAYMENTS, is_paid=True))
        assert all(count == 1 for count in paid.values())

    def test_stale_then_fresh_copy_pays_each_cycle_once(self, backend, audit_logger, electricity):
        """No due date ever receives two transactions."""
        store(backend, electricity)
        scheduler = RecurringBillScheduler(backend, audit_logger)
        service = ObligationService(backend, audit_logger)

        asyncio.run(scheduler.settle_payment(electricity, "450.00"))
        asyncio.run(scheduler.settle_payment(electricity, "450.00"))
        fresh = asyncio.run(service.get_obligation(electricity.id))
        third = asyncio.run(scheduler.settle_payment(fresh, "450.00"))

        assert third.settled_due_date == date(2024, 3, 5)
        dates = Counter(t["transaction_date"] for t in rows(backend, TRANSACTIONS))
        assert dates == Counter({"2024-01-05": 1, "2024-02-05": 1, "2024-03-05": 1})
        unpaid = rows(backend, BILL_PAYMENTS, is_paid=False)
        assert [r["due_date"] for r in unpaid] == ["2024-04-05"]

    def test_audit_trail(self, backend, audit_logger, audit_storage, electricity):
        """Every step of one settlement shares the correlation id."""
        store(backend, electricity)
        correlation_id = uuid4()

        asyncio.run(
            RecurringBillScheduler(backend, audit_logger).settle_payment(
                electricity, "450.00", correlation_id=correlation_id
            )
        )

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert {e.event_type for e in events} == {
            AuditEventType.TRANSACTION_CREATED,
            AuditEventType.PAYMENT_RECORD_UPSERTED,
            AuditEventType.DUE_DATE_ADVANCED,
            AuditEventType.PAYMENT_SETTLED,
        }


class TestSettleBacklog:
    """Outstanding records are paid oldest first."""

    def test_oldest_unpaid_record_settled_first(self, backend, audit_logger, electricity):
        store(backend, electricity)
        overdue = PaymentRecord(
            profile_id=electricity.profile_id,
            recurring_expense_id=electricity.id,
            due_date=date(2023, 12, 5),
            amount=Decimal("500.00"),
        )
        asyncio.run(backend.insert(BILL_PAYMENTS, overdue.model_dump(mode="json")))

        result = asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "500"))

        assert result.settled_due_date == date(2023, 12, 5)
        assert not result.advanced
        assert result.next_due_date == date(2024, 1, 5)
        assert stored_next_due(backend, electricity) == "2024-01-05"
        assert rows(backend, TRANSACTIONS)[0]["transaction_date"] == "2023-12-05"

        records = rows(backend, BILL_PAYMENTS)
        assert len(records) == 1
        assert records[0]["id"] == str(overdue.id)
        assert records[0]["is_paid"] is True


class TestDuplicateObligations:
    """Older data can hold two entries with the same name."""

    def test_record_of_duplicate_is_reused(self, backend, audit_logger, electricity):
        """A record under a same-named entry is marked paid and relinked, not duplicated."""
        duplicate = electricity.model_copy(update={"id": uuid4(), "name": "electricity "})
        store(backend, electricity)
        store(backend, duplicate)
        record = PaymentRecord(
            profile_id=electricity.profile_id,
            recurring_expense_id=duplicate.id,
            due_date=date(2024, 1, 5),
        )
        asyncio.run(backend.insert(BILL_PAYMENTS, record.model_dump(mode="json")))

        asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        january = rows(backend, BILL_PAYMENTS, due_date="2024-01-05")
        assert len(january) == 1
        assert january[0]["id"] == str(record.id)
        assert january[0]["is_paid"] is True
        assert january[0]["recurring_expense_id"] == str(electricity.id)

    def test_other_profile_not_matched(self, backend, audit_logger, electricity):
        other = electricity.model_copy(update={"id": uuid4(), "profile_id": uuid4()})
        store(backend, electricity)
        store(backend, other)
        record = PaymentRecord(
            profile_id=other.profile_id,
            recurring_expense_id=other.id,
            due_date=date(2024, 1, 5),
        )
        asyncio.run(backend.insert(BILL_PAYMENTS, record.model_dump(mode="json")))

        asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        theirs = rows(backend, BILL_PAYMENTS, recurring_expense_id=str(other.id))
        assert len(theirs) == 1
        assert theirs[0]["is_paid"] is False


class TestSettlementFailures:
    """Nothing is left half-applied."""

    @pytest.mark.parametrize("amount", ["abc", "0", "-5", "NaN", None])
    def test_invalid_amount_writes_nothing(self, backend, audit_logger, electricity, amount):
        store(backend, electricity)

        with pytest.raises(InvalidAmountError):
            asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, amount))

        assert rows(backend, TRANSACTIONS) == []
        assert rows(backend, BILL_PAYMENTS) == []
        assert stored_next_due(backend, electricity) == "2024-01-05"

    def test_transaction_failure(self, audit_logger, audit_storage, electricity):
        backend = FailingBackend({("insert", TRANSACTIONS)})
        store(backend, electricity)

        with pytest.raises(SettlementError) as exc_info:
            asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        assert exc_info.value.compensated is False
        assert rows(backend, BILL_PAYMENTS) == []
        assert stored_next_due(backend, electricity) == "2024-01-05"
        events = asyncio.run(audit_storage.get_recent_events())
        assert events[0].event_type == AuditEventType.SETTLEMENT_FAILED

    def test_advance_failure_is_rolled_back(self, audit_logger, audit_storage, electricity):
        """If the schedule cannot advance, the transaction and record are removed."""
        backend = FailingBackend({("update", RECURRING_EXPENSES)})
        store(backend, electricity)

        with pytest.raises(SettlementError) as exc_info:
            asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        assert exc_info.value.compensated is True
        assert rows(backend, TRANSACTIONS) == []
        assert rows(backend, BILL_PAYMENTS) == []
        assert stored_next_due(backend, electricity) == "2024-01-05"

        types = [e.event_type for e in asyncio.run(audit_storage.get_recent_events())]
        assert AuditEventType.SETTLEMENT_COMPENSATED in types
        assert AuditEventType.PAYMENT_SETTLED not in types

    def test_updated_record_is_restored(self, audit_logger, electricity):
        """An existing record flipped to paid is flipped back on rollback."""
        backend = FailingBackend({("update", RECURRING_EXPENSES)})
        store(backend, electricity)
        record = PaymentRecord(
            profile_id=electricity.profile_id,
            recurring_expense_id=electricity.id,
            due_date=date(2024, 1, 5),
        )
        asyncio.run(backend.insert(BILL_PAYMENTS, record.model_dump(mode="json")))

        with pytest.raises(SettlementError):
            asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        restored = rows(backend, BILL_PAYMENTS)
        assert len(restored) == 1
        assert restored[0]["is_paid"] is False
        assert restored[0]["paid_date"] is None

    def test_failed_rollback_reported(self, audit_logger, electricity):
        """compensated is False when an undo step itself fails."""
        backend = FailingBackend({("update", RECURRING_EXPENSES), ("delete", TRANSACTIONS)})
        store(backend, electricity)

        with pytest.raises(SettlementError) as exc_info:
            asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        assert exc_info.value.compensated is False

    def test_unknown_obligation_rolled_back(self, backend, audit_logger, electricity):
        """An obligation missing from the store cannot be advanced."""
        with pytest.raises(SettlementError):
            asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        assert rows(backend, TRANSACTIONS) == []
        assert rows(backend, BILL_PAYMENTS) == []


class RacingBackend(InMemoryBackend):
    """Reports the next cycle's record as already created by someone else."""

    async def insert(self, table, row):
        if table == BILL_PAYMENTS and row.get("is_paid") is False:
            raise DuplicateError("created concurrently")
        return await super().insert(table, row)


class TestPrecreate:
    def test_existing_next_record_is_success(self, audit_logger, electricity):
        backend = RacingBackend()
        store(backend, electricity)

        result = asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(electricity, "450"))

        assert result.advanced
        assert len(rows(backend, TRANSACTIONS)) == 1
        assert stored_next_due(backend, electricity) == "2024-02-05"


class TestIncome:
    """Recurring income has no payment records."""

    def test_income_settled(self, backend, audit_logger, profile_id):
        salary = RecurringObligation(
            profile_id=profile_id,
            name="Salary",
            kind=ObligationKind.INCOME,
            income_source_id=uuid4(),
            amount=Decimal("15000"),
            frequency=Frequency.MONTHLY,
            start_date=date(2024, 1, 1),
            next_due_date=date(2024, 1, 25),
            due_day_of_month=25,
        )
        store(backend, salary)

        result = asyncio.run(RecurringBillScheduler(backend, audit_logger).settle_payment(salary, "15000"))

        assert result.payment_record is None
        assert result.next_due_date == date(2024, 2, 25)
        transaction = rows(backend, TRANSACTIONS)[0]
        assert transaction["type"] == "income"
        assert transaction["income_source_id"] == str(salary.income_source_id)
        assert transaction["category_id"] is None
        assert rows(backend, BILL_PAYMENTS) == []
        assert rows(backend, RECURRING_INCOME)[0]["next_due_date"] == "2024-02-25"


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
