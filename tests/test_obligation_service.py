"""Tests for obligation lifecycle, pending bills and reminders."""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from expense_tracker.models.audit import AuditEventType
from expense_tracker.models.ledger import ObligationKind, PaymentRecord, RecurringObligation
from expense_tracker.recurring import ObligationService
from expense_tracker.services.storage import (
    BILL_PAYMENTS,
    RECURRING_EXPENSES,
    RECURRING_INCOME,
    DuplicateError,
    NotFoundError,
)


@pytest.fixture
def service(backend, audit_logger):
    return ObligationService(backend, audit_logger)


def obligation(profile_id, name, next_due, **fields):
    return RecurringObligation(
        profile_id=profile_id,
        name=name,
        start_date=date(2024, 1, 1),
        next_due_date=next_due,
        **fields,
    )


def store(backend, *obligations):
    for item in obligations:
        asyncio.run(backend.insert(item.kind.table, item.model_dump(mode="json")))


class TestCreateObligation:
    """Creating recurring entries."""

    def test_first_due_date_from_due_day(self, service, backend, profile_id):
        """A due day already passed in the start month moves to the next month."""
        created = asyncio.run(
            service.create_obligation(
                profile_id,
                "Rent",
                date(2024, 5, 10),
                amount=Decimal("8000"),
                due_day_of_month=5,
            )
        )

        assert created.next_due_date == date(2024, 6, 5)
        stored = asyncio.run(backend.select(RECURRING_EXPENSES))
        assert len(stored) == 1
        assert stored[0]["next_due_date"] == "2024-06-05"
        assert stored[0]["reminder_days"] == 3

    def test_duplicate_name_rejected(self, service, profile_id):
        """Names are unique per profile, ignoring case and surrounding spaces."""
        asyncio.run(service.create_obligation(profile_id, "Internet", date(2024, 1, 1)))

        with pytest.raises(DuplicateError):
            asyncio.run(service.create_obligation(profile_id, "  INTERNET ", date(2024, 1, 1)))

    def test_same_name_in_other_profile_allowed(self, service, profile_id):
        asyncio.run(service.create_obligation(profile_id, "Internet", date(2024, 1, 1)))
        asyncio.run(service.create_obligation(uuid4(), "Internet", date(2024, 1, 1)))

    def test_income_stored_separately(self, service, backend, profile_id):
        source_id = uuid4()
        created = asyncio.run(
            service.create_obligation(
                profile_id,
                "Salary",
                date(2024, 1, 1),
                kind=ObligationKind.INCOME,
                income_source_id=source_id,
                category_id=uuid4(),
            )
        )

        assert created.kind is ObligationKind.INCOME
        assert created.category_id is None
        assert asyncio.run(backend.select(RECURRING_EXPENSES)) == []
        assert asyncio.run(backend.select(RECURRING_INCOME))[0]["income_source_id"] == str(source_id)

    def test_creation_audited(self, service, audit_storage, profile_id):
        asyncio.run(service.create_obligation(profile_id, "Water", date(2024, 1, 1)))
        events = asyncio.run(audit_storage.get_recent_events())
        assert events[0].event_type == AuditEventType.OBLIGATION_CREATED


class TestLifecycle:
    """Lookup and pause/resume."""

    def test_get_unknown(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.get_obligation(uuid4()))

    def test_pause_and_resume(self, service, profile_id):
        created = asyncio.run(service.create_obligation(profile_id, "Gym", date(2024, 1, 1)))

        asyncio.run(service.set_active(created.id, False))
        assert asyncio.run(service.list_obligations([profile_id], active_only=True)) == []
        assert not asyncio.run(service.get_obligation(created.id)).is_active

        asyncio.run(service.set_active(created.id, True))
        assert len(asyncio.run(service.list_obligations([profile_id], active_only=True))) == 1

    def test_toggle_unknown(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.set_active(uuid4(), False))

    def test_list_ordered_by_due_date(self, service, backend, profile_id):
        store(
            backend,
            obligation(profile_id, "Later", date(2024, 5, 20)),
            obligation(profile_id, "Sooner", date(2024, 5, 2)),
            obligation(uuid4(), "Someone else", date(2024, 5, 1)),
        )
        names = [o.name for o in asyncio.run(service.list_obligations([profile_id]))]
        assert names == ["Sooner", "Later"]


class TestPendingBills:
    """Dashboard list of bills still to pay this month."""

    def test_sources_and_amounts(self, service, backend, profile_id):
        rent = obligation(profile_id, "Rent", date(2024, 5, 20), amount=Decimal("8000"))
        phone = obligation(profile_id, "Phone", date(2024, 6, 10), is_variable_amount=True)
        phone_duplicate = obligation(profile_id, "Phone", date(2024, 6, 10), amount=Decimal("300"))
        paused = obligation(profile_id, "Gym", date(2024, 5, 15), amount=Decimal("400"), is_active=False)
        store(backend, rent, phone, phone_duplicate, paused)

        for record in (
            PaymentRecord(profile_id=profile_id, recurring_expense_id=phone.id, due_date=date(2024, 5, 10)),
            PaymentRecord(profile_id=profile_id, recurring_expense_id=phone.id, due_date=date(2024, 4, 10)),
            PaymentRecord(
                profile_id=profile_id,
                recurring_expense_id=rent.id,
                due_date=date(2024, 5, 1),
                is_paid=True,
                amount=Decimal("8000"),
            ),
        ):
            asyncio.run(backend.insert(BILL_PAYMENTS, record.model_dump(mode="json")))

        pending = asyncio.run(service.pending_bills([profile_id], 2024, 5))

        assert [(b.name, b.due_date, b.source) for b in pending] == [
            ("Phone", date(2024, 5, 10), "variable"),
            ("Rent", date(2024, 5, 20), "fixed"),
        ]
        assert pending[0].amount == Decimal("300")
        assert pending[1].amount == Decimal("8000")

    def test_fixed_bill_with_unpaid_record_listed_once(self, service, backend, profile_id):
        rent = obligation(profile_id, "Rent", date(2024, 5, 20), amount=Decimal("8000"))
        store(backend, rent)
        record = PaymentRecord(
            profile_id=profile_id,
            recurring_expense_id=rent.id,
            due_date=date(2024, 5, 20),
            amount=Decimal("8000"),
        )
        asyncio.run(backend.insert(BILL_PAYMENTS, record.model_dump(mode="json")))

        pending = asyncio.run(service.pending_bills([profile_id], 2024, 5))

        assert len(pending) == 1
        assert pending[0].source == "variable"

    def test_empty_month(self, service, profile_id):
        assert asyncio.run(service.pending_bills([profile_id], 2024, 5)) == []


class TestReminders:
    """Reminders inside each bill's reminder window."""

    @pytest.fixture
    def water(self, backend, profile_id):
        bill = obligation(profile_id, "Water", date(2024, 5, 5), amount=Decimal("120"), reminder_days=3)
        store(backend, bill)
        return bill

    def test_created_once_inside_window(self, service, profile_id, water):
        created = asyncio.run(service.due_reminders([profile_id], today=date(2024, 5, 3)))

        assert len(created) == 1
        assert created[0].title == "Water is due"
        assert created[0].due_date == date(2024, 5, 5)
        assert asyncio.run(service.due_reminders([profile_id], today=date(2024, 5, 4))) == []

    def test_outside_window(self, service, profile_id, water):
        assert asyncio.run(service.due_reminders([profile_id], today=date(2024, 5, 1))) == []
        assert asyncio.run(service.due_reminders([profile_id], today=date(2024, 5, 6))) == []

    def test_dismiss_and_read(self, service, profile_id, water):
        reminder = asyncio.run(service.due_reminders([profile_id], today=date(2024, 5, 5)))[0]

        asyncio.run(service.mark_reminder_read(reminder.id))
        listed = asyncio.run(service.list_reminders([profile_id]))
        assert listed[0].is_read

        asyncio.run(service.dismiss_reminder(reminder.id))
        assert asyncio.run(service.list_reminders([profile_id])) == []

    def test_unknown_reminder(self, service):
        with pytest.raises(NotFoundError):
            asyncio.run(service.dismiss_reminder(uuid4()))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
