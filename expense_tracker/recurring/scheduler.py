"""
Recurring Bill Scheduler

Settles the current (or oldest outstanding) cycle of a recurring
obligation: writes the transaction, reconciles the payment record for
that due date and moves the schedule forward.

DESIGN DECISION: Settlement is all-or-nothing.
The table store has no transactions, so every write after the first
registers an undo step. If a later write fails, the applied steps are
undone in reverse order before SettlementError is raised.

Known data-quality condition: older data may hold several obligations
with the same name in one profile. Payment records are matched across
all of them so a due date is never paid twice.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Awaitable, Callable, Optional, Union
from uuid import UUID

import structlog

from expense_tracker.audit import AuditLogger
from expense_tracker.models.ledger import (
    ObligationKind,
    PaymentRecord,
    RecurringObligation,
    SettlementResult,
    Transaction,
    TransactionType,
)
from expense_tracker.models.receipt import normalize_amount_text
from expense_tracker.recurring.dates import next_due
from expense_tracker.services.storage import (
    BILL_PAYMENTS,
    TRANSACTIONS,
    BackendInterface,
    DuplicateError,
    NotFoundError,
    StorageError,
)


logger = structlog.get_logger(__name__)

UndoStep = tuple[str, Callable[[], Awaitable[Any]]]


class SchedulerError(Exception):
    """Base exception for recurring bill errors."""
    pass


class InvalidAmountError(SchedulerError):
    """Paid amount is not a finite positive number."""
    pass


class SettlementError(SchedulerError):
    """A settlement write failed; applied steps have been undone."""

    def __init__(self, message: str, compensated: bool = True):
        super().__init__(message)
        self.compensated = compensated


def validate_amount(value: Union[Decimal, int, float, str, None]) -> Decimal:
    """
    Convert a user-entered amount to a positive Decimal.

    Raises:
        InvalidAmountError: For blank, non-numeric, non-finite or
            non-positive values
    """
    if value is None or isinstance(value, bool):
        raise InvalidAmountError("Amount is required")
    try:
        amount = Decimal(normalize_amount_text(value))
    except InvalidOperation:
        raise InvalidAmountError(f"Amount is not a number: {value!r}")
    if not amount.is_finite():
        raise InvalidAmountError("Amount must be a finite number")
    if amount <= 0:
        raise InvalidAmountError("Amount must be greater than zero")
    return amount


class RecurringBillScheduler:
    """
    Settlement of recurring obligations against the table store.

    Usage:
        scheduler = RecurringBillScheduler(backend, audit_logger)
        result = await scheduler.settle_payment(obligation, "450.00")
    """

    def __init__(
        self,
        backend: BackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._audit = audit_logger or AuditLogger()

    async def settle_payment(
        self,
        obligation: RecurringObligation,
        paid_amount: Union[Decimal, int, float, str],
        paid_on: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> SettlementResult:
        """
        Mark the due cycle of an obligation as paid.

        Args:
            obligation: The recurring entry being settled
            paid_amount: Amount actually paid
            paid_on: Payment date (defaults to today)
            correlation_id: Ties the audit events of this action together

        Returns:
            SettlementResult describing every change made

        Raises:
            InvalidAmountError: Before any write, for a bad amount
            SettlementError: If a write failed (nothing is left applied)
        """
        amount = validate_amount(paid_amount)
        paid_on = paid_on or date.today()
        is_expense = obligation.kind is ObligationKind.EXPENSE

        try:
            obligation = await self._refreshed(obligation)
            due = await self._settling_due_date(obligation) if is_expense else obligation.next_due_date
            transaction = self._build_transaction(obligation, amount, due)
            await self._backend.insert(TRANSACTIONS, transaction.model_dump(mode="json"))
        except StorageError as e:
            logger.error("settlement_transaction_failed", obligation_id=str(obligation.id), error=str(e))
            await self._audit.log_settlement_failed(obligation.id, str(e), False, correlation_id)
            raise SettlementError(f"Could not record the payment: {e}", compensated=False) from e

        undo: list[UndoStep] = [
            ("transaction", lambda: self._backend.delete(TRANSACTIONS, {"id": str(transaction.id)})),
        ]

        payment_record: Optional[PaymentRecord] = None
        advanced = False
        new_due = obligation.next_due_date

        try:
            if is_expense:
                payment_record = await self._mark_paid(obligation, due, amount, paid_on, undo)

            if due == obligation.next_due_date:
                new_due = await self._advance(obligation, undo)
                advanced = True
                if is_expense:
                    await self._precreate_next(obligation, new_due, undo)
        except StorageError as e:
            compensated = await self._compensate(obligation, undo, correlation_id)
            await self._audit.log_settlement_failed(obligation.id, str(e), compensated, correlation_id)
            raise SettlementError(f"Settlement failed and was rolled back: {e}", compensated) from e

        await self._audit.log_transaction_created(
            transaction.id, transaction.type.value, str(amount), correlation_id
        )
        if payment_record is not None:
            await self._audit.log_payment_record_upserted(
                payment_record.id, obligation.id, due, True, correlation_id
            )
        if advanced:
            await self._audit.log_due_date_advanced(
                obligation.id, obligation.next_due_date, new_due, correlation_id
            )
        await self._audit.log_payment_settled(
            obligation.id, due, str(amount), new_due if advanced else None, correlation_id
        )

        return SettlementResult(
            transaction=transaction,
            payment_record=payment_record,
            settled_due_date=due,
            advanced=advanced,
            next_due_date=new_due,
        )

    async def _refreshed(self, obligation: RecurringObligation) -> RecurringObligation:
        """Copy of the obligation carrying the stored next_due_date."""
        stored = await self._backend.select(obligation.kind.table, {"id": str(obligation.id)}, limit=1)
        if not stored or not stored[0].get("next_due_date"):
            return obligation

        stored_due = date.fromisoformat(str(stored[0]["next_due_date"]))
        if stored_due != obligation.next_due_date:
            logger.info(
                "stale_obligation_refreshed",
                obligation_id=str(obligation.id),
                given=str(obligation.next_due_date),
                stored=str(stored_due),
            )
        return obligation.model_copy(update={"next_due_date": stored_due})

    async def _settling_due_date(self, obligation: RecurringObligation) -> date:
        """Earliest unpaid record for this obligation, else next_due_date."""
        outstanding = await self._backend.select(
            BILL_PAYMENTS,
            {"recurring_expense_id": str(obligation.id), "is_paid": False},
            order_by="due_date",
            limit=1,
        )
        if outstanding:
            return date.fromisoformat(str(outstanding[0]["due_date"]))
        return obligation.next_due_date

    def _build_transaction(
        self,
        obligation: RecurringObligation,
        amount: Decimal,
        due: date,
    ) -> Transaction:
        if obligation.kind is ObligationKind.INCOME:
            return Transaction(
                profile_id=obligation.profile_id,
                type=TransactionType.INCOME,
                amount=amount,
                income_source_id=obligation.income_source_id,
                description=obligation.name,
                transaction_date=due,
            )
        return Transaction(
            profile_id=obligation.profile_id,
            type=TransactionType.EXPENSE,
            amount=amount,
            category_id=obligation.category_id,
            description=obligation.name,
            transaction_date=due,
        )

    async def _same_name_ids(self, obligation: RecurringObligation) -> list[str]:
        """Ids of every obligation in the profile sharing this name."""
        rows = await self._backend.select(
            obligation.kind.table,
            {"profile_id": str(obligation.profile_id), "name__ilike": obligation.name},
        )
        wanted = obligation.name.strip().lower()
        ids = [
            str(row["id"]) for row in rows
            if str(row.get("name") or "").strip().lower() == wanted
        ]
        if str(obligation.id) not in ids:
            ids.insert(0, str(obligation.id))
        return ids

    async def _mark_paid(
        self,
        obligation: RecurringObligation,
        due: date,
        amount: Decimal,
        paid_on: date,
        undo: list[UndoStep],
    ) -> PaymentRecord:
        ids = await self._same_name_ids(obligation)
        candidates = await self._backend.select(
            BILL_PAYMENTS,
            {"recurring_expense_id__in": ids, "due_date": due},
        )

        own_id = str(obligation.id)
        existing = next(
            (r for r in candidates if str(r.get("recurring_expense_id")) == own_id),
            candidates[0] if candidates else None,
        )

        if existing is None:
            record = PaymentRecord(
                profile_id=obligation.profile_id,
                recurring_expense_id=obligation.id,
                due_date=due,
                paid_date=paid_on,
                amount=amount,
                is_paid=True,
            )
            await self._backend.insert(BILL_PAYMENTS, record.model_dump(mode="json"))
            undo.append(
                ("payment_record", lambda: self._backend.delete(BILL_PAYMENTS, {"id": str(record.id)}))
            )
            return record

        if str(existing.get("recurring_expense_id")) != own_id:
            logger.info(
                "payment_record_relinked",
                record_id=existing["id"],
                from_obligation=existing.get("recurring_expense_id"),
                to_obligation=own_id,
            )

        patch = {
            "is_paid": True,
            "paid_date": paid_on.isoformat(),
            "amount": str(amount),
            "recurring_expense_id": own_id,
        }
        previous = {key: existing.get(key) for key in patch}
        match = {"id": existing["id"]}
        await self._backend.update(BILL_PAYMENTS, patch, match)
        undo.append(
            ("payment_record", lambda: self._backend.update(BILL_PAYMENTS, previous, match))
        )
        return PaymentRecord.model_validate({**existing, **patch})

    async def _advance(self, obligation: RecurringObligation, undo: list[UndoStep]) -> date:
        new_due = next_due(obligation)
        match = {"id": str(obligation.id)}
        updated = await self._backend.update(
            obligation.kind.table,
            {"next_due_date": new_due.isoformat()},
            match,
        )
        if updated == 0:
            raise NotFoundError(f"Recurring entry not found: {obligation.id}")

        previous = obligation.next_due_date.isoformat()
        undo.append(
            ("next_due_date", lambda: self._backend.update(
                obligation.kind.table, {"next_due_date": previous}, match
            ))
        )
        return new_due

    async def _precreate_next(
        self,
        obligation: RecurringObligation,
        new_due: date,
        undo: list[UndoStep],
    ) -> None:
        """Create the unpaid record of the next cycle so it shows up early."""
        existing = await self._backend.select(
            BILL_PAYMENTS,
            {"recurring_expense_id": str(obligation.id), "due_date": new_due},
            limit=1,
        )
        if existing:
            return

        record = PaymentRecord(
            profile_id=obligation.profile_id,
            recurring_expense_id=obligation.id,
            due_date=new_due,
            amount=None if obligation.is_variable_amount else obligation.amount,
            is_paid=False,
        )
        try:
            await self._backend.insert(BILL_PAYMENTS, record.model_dump(mode="json"))
        except DuplicateError:
            # Another settlement already created it
            logger.debug("next_payment_record_exists", obligation_id=str(obligation.id), due_date=str(new_due))
            return

        undo.append(
            ("next_payment_record", lambda: self._backend.delete(BILL_PAYMENTS, {"id": str(record.id)}))
        )

    async def _compensate(
        self,
        obligation: RecurringObligation,
        undo: list[UndoStep],
        correlation_id: Optional[UUID],
    ) -> bool:
        """Undo applied steps newest first. Returns False if any undo failed."""
        undone: list[str] = []
        complete = True

        for name, step in reversed(undo):
            try:
                await step()
                undone.append(name)
            except StorageError as e:
                complete = False
                logger.error(
                    "settlement_compensation_failed",
                    obligation_id=str(obligation.id),
                    step=name,
                    error=str(e),
                )

        await self._audit.log_settlement_compensated(obligation.id, undone, correlation_id)
        return complete
