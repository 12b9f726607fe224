"""
Obligation Service

Lifecycle of recurring obligations around the scheduler: creation,
pause/resume, the dashboard's pending-bill list and bill reminders.

Every operation takes the profile ids it works on explicitly.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Any, Iterable, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.config import get_settings
from expense_tracker.models.ledger import (
    BillReminder,
    Frequency,
    ObligationKind,
    PendingBill,
    RecurringObligation,
)
from expense_tracker.recurring.dates import days_in_month, initial_due_date
from expense_tracker.services.storage import (
    BILL_PAYMENTS,
    BILL_REMINDERS,
    RECURRING_EXPENSES,
    BackendInterface,
    DuplicateError,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


def obligation_from_row(row: dict[str, Any], kind: ObligationKind) -> RecurringObligation:
    """Build an obligation from a stored row; the table decides the kind."""
    return RecurringObligation.model_validate({**row, "kind": kind})


def _ids(values: Iterable[Union[UUID, str]]) -> list[str]:
    return [str(v) for v in values]


def _as_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


class ObligationService:
    """
    CRUD-level operations on recurring expenses and income.

    Usage:
        service = ObligationService(backend, audit_logger)
        rent = await service.create_obligation(profile_id, "Rent", start, amount=Decimal("8000"))
        pending = await service.pending_bills([profile_id], 2024, 5)
    """

    def __init__(
        self,
        backend: BackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._audit = audit_logger or AuditLogger()

    async def create_obligation(
        self,
        profile_id: UUID,
        name: str,
        start_date: date,
        kind: ObligationKind = ObligationKind.EXPENSE,
        amount: Optional[Decimal] = None,
        frequency: Frequency = Frequency.MONTHLY,
        due_day_of_month: Optional[int] = None,
        category_id: Optional[UUID] = None,
        income_source_id: Optional[UUID] = None,
        is_variable_amount: bool = False,
        reminder_days: Optional[int] = None,
        grace_period_days: int = 0,
        end_date: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> RecurringObligation:
        """
        Create a recurring expense or income.

        Raises:
            DuplicateError: If an active entry with the same name
                (case-insensitive) exists in the profile
            ValidationError: If the fields are invalid
        """
        existing = await self.list_obligations([profile_id], kind, active_only=True)
        wanted = name.strip().lower()
        if any(o.name.strip().lower() == wanted for o in existing):
            raise DuplicateError(f"A recurring entry named '{name.strip()}' already exists")

        if reminder_days is None:
            reminder_days = get_settings().app.default_reminder_days

        obligation = RecurringObligation(
            profile_id=profile_id,
            name=name,
            kind=kind,
            category_id=category_id if kind is ObligationKind.EXPENSE else None,
            income_source_id=income_source_id if kind is ObligationKind.INCOME else None,
            amount=amount,
            is_variable_amount=is_variable_amount,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            next_due_date=initial_due_date(start_date, frequency, due_day_of_month),
            due_day_of_month=due_day_of_month,
            reminder_days=reminder_days,
            grace_period_days=grace_period_days,
        )
        await self._backend.insert(kind.table, obligation.model_dump(mode="json"))

        logger.info(
            "obligation_created",
            obligation_id=str(obligation.id),
            kind=kind.value,
            next_due_date=str(obligation.next_due_date),
        )
        await self._audit.log_obligation_created(
            obligation.id, obligation.name, obligation.next_due_date, correlation_id
        )
        return obligation

    async def get_obligation(
        self,
        obligation_id: UUID,
        kind: ObligationKind = ObligationKind.EXPENSE,
    ) -> RecurringObligation:
        """
        Raises:
            NotFoundError: If no such entry exists
        """
        rows = await self._backend.select(kind.table, {"id": str(obligation_id)}, limit=1)
        if not rows:
            raise NotFoundError(f"Recurring entry not found: {obligation_id}")
        return obligation_from_row(rows[0], kind)

    async def list_obligations(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        kind: ObligationKind = ObligationKind.EXPENSE,
        active_only: bool = False,
    ) -> list[RecurringObligation]:
        filters: dict[str, Any] = {"profile_id__in": _ids(profile_ids)}
        if active_only:
            filters["is_active"] = True
        rows = await self._backend.select(kind.table, filters, order_by="next_due_date")
        return [obligation_from_row(row, kind) for row in rows]

    async def set_active(
        self,
        obligation_id: UUID,
        is_active: bool,
        kind: ObligationKind = ObligationKind.EXPENSE,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Pause or resume an entry. Paused entries are kept, not deleted."""
        updated = await self._backend.update(
            kind.table,
            {"is_active": is_active},
            {"id": str(obligation_id)},
        )
        if updated == 0:
            raise NotFoundError(f"Recurring entry not found: {obligation_id}")
        await self._audit.log_obligation_toggled(obligation_id, is_active, correlation_id)

    async def pending_bills(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        year: int,
        month: int,
    ) -> list[PendingBill]:
        """
        Bills still to pay in a calendar month.

        Two sources:
        1. Unpaid payment records due in the month ("variable")
        2. Active fixed-amount expenses whose next due date is in the
           month and which have no unpaid record yet ("fixed")

        A record without an amount (or with 0) shows the largest amount
        of any expense with the same name, which covers duplicates.
        """
        profile_ids = _ids(profile_ids)
        month_start = date(year, month, 1)
        month_end = date(year, month, days_in_month(year, month))

        expense_rows = await self._backend.select(
            RECURRING_EXPENSES, {"profile_id__in": profile_ids}
        )
        by_id = {str(row["id"]): row for row in expense_rows}

        best_by_name: dict[str, Decimal] = {}
        for row in expense_rows:
            amount = _as_decimal(row.get("amount"))
            name = row.get("name")
            if amount is not None and amount > 0:
                if name not in best_by_name or amount > best_by_name[name]:
                    best_by_name[name] = amount

        unpaid = await self._backend.select(
            BILL_PAYMENTS,
            {
                "profile_id__in": profile_ids,
                "is_paid": False,
                "due_date__gte": month_start,
                "due_date__lte": month_end,
            },
            order_by="due_date",
        )

        pending: list[PendingBill] = []
        seen: set[tuple[str, str]] = set()

        for row in unpaid:
            parent = by_id.get(str(row.get("recurring_expense_id")), {})
            name = parent.get("name") or "Bill"
            amount = _as_decimal(row.get("amount"))
            if amount is None or amount == 0:
                amount = best_by_name.get(name, _as_decimal(parent.get("amount")))

            seen.add((str(row.get("recurring_expense_id")), str(row["due_date"])))
            pending.append(
                PendingBill(
                    id=row["id"],
                    profile_id=row["profile_id"],
                    name=name,
                    due_date=row["due_date"],
                    amount=amount,
                    source="variable",
                )
            )

        for row in expense_rows:
            obligation = obligation_from_row(row, ObligationKind.EXPENSE)
            if not obligation.is_active or obligation.is_variable_amount:
                continue
            if not month_start <= obligation.next_due_date <= month_end:
                continue
            if (str(obligation.id), obligation.next_due_date.isoformat()) in seen:
                continue
            pending.append(
                PendingBill(
                    id=obligation.id,
                    profile_id=obligation.profile_id,
                    name=obligation.name,
                    due_date=obligation.next_due_date,
                    amount=obligation.amount,
                    source="fixed",
                )
            )

        return sorted(pending, key=lambda bill: bill.due_date)

    async def due_reminders(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        today: Optional[date] = None,
    ) -> list[BillReminder]:
        """
        Create reminders for active expenses due within their reminder window.

        A reminder is created once per (expense, due date); the return
        value holds only the reminders created by this call.
        """
        today = today or date.today()
        created: list[BillReminder] = []

        for obligation in await self.list_obligations(profile_ids, active_only=True):
            window_start = obligation.next_due_date - timedelta(days=obligation.reminder_days)
            if not window_start <= today <= obligation.next_due_date:
                continue

            existing = await self._backend.select(
                BILL_REMINDERS,
                {
                    "recurring_expense_id": str(obligation.id),
                    "due_date": obligation.next_due_date,
                },
                limit=1,
            )
            if existing:
                continue

            reminder = BillReminder(
                profile_id=obligation.profile_id,
                recurring_expense_id=obligation.id,
                title=f"{obligation.name} is due",
                amount=obligation.amount,
                due_date=obligation.next_due_date,
            )
            await self._backend.insert(BILL_REMINDERS, reminder.model_dump(mode="json"))
            await self._audit.log_reminder_created(reminder.id, reminder.title, reminder.due_date)
            created.append(reminder)

        return created

    async def list_reminders(
        self,
        profile_ids: Iterable[Union[UUID, str]],
    ) -> list[BillReminder]:
        """Reminders not yet dismissed, soonest first."""
        rows = await self._backend.select(
            BILL_REMINDERS,
            {"profile_id__in": _ids(profile_ids), "is_dismissed": False},
            order_by="due_date",
        )
        return [BillReminder.model_validate(row) for row in rows]

    async def dismiss_reminder(self, reminder_id: UUID) -> None:
        await self._update_reminder(reminder_id, {"is_dismissed": True})

    async def mark_reminder_read(self, reminder_id: UUID) -> None:
        await self._update_reminder(reminder_id, {"is_read": True})

    async def _update_reminder(self, reminder_id: UUID, patch: dict[str, Any]) -> None:
        updated = await self._backend.update(BILL_REMINDERS, patch, {"id": str(reminder_id)})
        if updated == 0:
            raise NotFoundError(f"Reminder not found: {reminder_id}")
