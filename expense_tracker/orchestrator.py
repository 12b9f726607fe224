"""
Main Orchestrator for the Expense Tracker

This module ties together all the components and defines the
end-to-end flows for:
1. Receipt capture (image → OCR text → parse → validate → confirm → save)
2. Settlement ("mark paid" → transaction → payment record → next due date)
3. Reports (load → summarize → export CSV/JSON)
4. Savings goals (add money → progress)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No receipt persists without human confirmation
- Every step is audited under one correlation id per user action
- Failures come back as messages for the UI, never as silent no-ops

This is the "glue" that ensures the system works correctly
even when individual components might behave unexpectedly.
"""

from datetime import date
from typing import Iterable, Optional, Union
from uuid import UUID

import structlog
from pydantic import ValidationError

from expense_tracker.audit import AuditLogger, create_correlation_id
from expense_tracker.config import get_settings
from expense_tracker.models.ledger import (
    ObligationKind,
    SavingsGoal,
    SettlementResult,
    Transaction,
    TransactionType,
)
from expense_tracker.models.receipt import (
    GroceryBill,
    GroceryBillItem,
    ParsedBill,
    ParseEmpty,
    ParseResult,
    PriceComparison,
    ValidationResult,
)
from expense_tracker.models.report import DashboardStats, Report
from expense_tracker.receipts import parse_receipt_text
from expense_tracker.recurring import (
    InvalidAmountError,
    ObligationService,
    RecurringBillScheduler,
    SettlementError,
    validate_amount,
)
from expense_tracker.reports import ReportService, to_csv, to_json
from expense_tracker.savings import SavingsGoalService
from expense_tracker.services.ocr import OCRError, TesseractOCRService
from expense_tracker.services.storage import (
    GROCERY_BILL_ITEMS,
    GROCERY_BILLS,
    TRANSACTIONS,
    BackendInterface,
    GoogleSheetsAuditStorage,
    GoogleSheetsBackend,
    GoogleSheetsClient,
    InMemoryBackend,
    NotFoundError,
    StorageError,
)
from expense_tracker.validation import ReceiptValidator


logger = structlog.get_logger(__name__)


class ReceiptCaptureFlow:
    """
    Orchestrates the receipt capture flow.

    Flow:
    1. Extract → Tesseract turns the photo into text
    2. Parse → ReceiptParser proposes a bill (tagged ParseResult)
    3. Validate → Two-stage validation of the (edited) bill
    4. Review → Present to user (PAUSE - require confirmation)
    5. Confirm → Transaction, grocery bill and its items are saved

    Human confirmation (step 5) is MANDATORY.
    The system NEVER auto-saves.
    """

    def __init__(
        self,
        backend: BackendInterface,
        ocr_service: Optional[TesseractOCRService] = None,
        validator: Optional[ReceiptValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._backend = backend
        self._ocr_service = ocr_service
        self._validator = validator or ReceiptValidator(backend)
        self._audit_logger = audit_logger or AuditLogger()
        self._max_items = get_settings().app.max_receipt_items

    async def extract_text(
        self,
        image_bytes: bytes,
        filename: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> str:
        """
        Run OCR on an uploaded receipt photo.

        Raises:
            OCRError: If the image cannot be read or Tesseract is missing
        """
        correlation_id = correlation_id or create_correlation_id()
        # Created on first use so the app starts without tesseract installed
        if self._ocr_service is None:
            self._ocr_service = TesseractOCRService()

        await self._audit_logger.log_ocr_started(filename, len(image_bytes), correlation_id)
        try:
            text = await self._ocr_service.extract_text(image_bytes, filename)
        except OCRError as e:
            await self._audit_logger.log_ocr_failed(str(e), correlation_id)
            raise

        await self._audit_logger.log_ocr_completed(len(text), correlation_id)
        return text

    async def parse(
        self,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> ParseResult:
        """Parse OCR text into a tagged result for the form."""
        correlation_id = correlation_id or create_correlation_id()
        result = parse_receipt_text(text, max_items=self._max_items)

        if isinstance(result, ParseEmpty):
            await self._audit_logger.log_receipt_empty(result.reason, correlation_id)
        else:
            bill = result.bill
            await self._audit_logger.log_receipt_parsed(
                shop=bill.shop,
                item_count=len(bill.items),
                total=str(bill.total) if bill.total is not None else None,
                correlation_id=correlation_id,
            )
        return result

    async def capture(
        self,
        image_bytes: bytes,
        filename: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> ParseResult:
        """OCR and parse in one step."""
        correlation_id = correlation_id or create_correlation_id()
        text = await self.extract_text(image_bytes, filename, correlation_id)
        return await self.parse(text, correlation_id)

    async def validate(
        self,
        bill: ParsedBill,
        profile_id: Optional[UUID] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[ValidationResult, str]:
        """
        Validate a parsed (and possibly edited) bill.

        Returns:
            (validation_result, user_message)
        """
        correlation_id = correlation_id or create_correlation_id()

        result = await self._validator.validate(bill, profile_id)
        message = self._validator.get_user_friendly_summary(result)

        if not result.is_valid:
            issues = [
                {"field": i.field, "type": i.issue_type, "message": i.message}
                for i in result.issues
            ]
            await self._audit_logger.log_validation_failed(issues, correlation_id)

        return result, message

    async def confirm_and_save(
        self,
        profile_id: UUID,
        bill: ParsedBill,
        category_id: Optional[UUID] = None,
        description: Optional[str] = None,
        raw_text: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> GroceryBill:
        """
        Confirm and save the bill.

        CRITICAL: This is called ONLY after explicit user confirmation.

        Writes one expense transaction, the grocery bill linked to it and
        one row per line item. If any write fails the rows already
        written are removed again.

        Raises:
            InvalidAmountError: If the bill has no positive total
            StorageError: If saving failed
        """
        correlation_id = correlation_id or create_correlation_id()
        amount = validate_amount(bill.total)

        transaction = Transaction(
            profile_id=profile_id,
            type=TransactionType.EXPENSE,
            amount=amount,
            category_id=category_id,
            description=description or (f"Groceries - {bill.shop}" if bill.shop else "Groceries"),
            transaction_date=bill.parsed_date or date.today(),
        )
        grocery_bill = GroceryBill(
            profile_id=profile_id,
            transaction_id=transaction.id,
            shop_name=bill.shop or None,
            bill_date=bill.parsed_date,
            subtotal=bill.subtotal,
            gst_amount=bill.gst,
            total=amount,
            raw_text=raw_text,
        )
        grocery_bill.items = [GroceryBillItem.from_line_item(grocery_bill.id, item) for item in bill.items]

        written: list[tuple[str, str]] = []
        try:
            await self._backend.insert(TRANSACTIONS, transaction.model_dump(mode="json"))
            written.append((TRANSACTIONS, str(transaction.id)))
            await self._backend.insert(GROCERY_BILLS, grocery_bill.model_dump(mode="json"))
            written.append((GROCERY_BILLS, str(grocery_bill.id)))
            for item in grocery_bill.items:
                await self._backend.insert(GROCERY_BILL_ITEMS, item.model_dump(mode="json"))
                written.append((GROCERY_BILL_ITEMS, str(item.id)))
        except StorageError as e:
            await self._audit_logger.log_external_service_error("storage", str(e), correlation_id)
            await self._remove(written)
            raise

        await self._audit_logger.log_transaction_created(
            transaction.id, transaction.type.value, str(amount), correlation_id
        )
        await self._audit_logger.log_bill_saved(
            bill_id=grocery_bill.id,
            shop=bill.shop,
            amount=str(amount),
            item_count=len(grocery_bill.items),
            correlation_id=correlation_id,
        )
        return grocery_bill

    async def _remove(self, written: list[tuple[str, str]]) -> None:
        for table, row_id in reversed(written):
            try:
                await self._backend.delete(table, {"id": row_id})
            except StorageError as e:
                logger.error("receipt_cleanup_failed", table=table, row_id=row_id, error=str(e))

    async def reject(
        self,
        reason: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Record that user rejected the parsed receipt.

        This is called when user chooses not to save after reviewing.
        """
        correlation_id = correlation_id or create_correlation_id()
        await self._audit_logger.log_user_rejected(reason, correlation_id)


class SettlementFlow:
    """
    Orchestrates "mark paid" on a recurring bill or income.

    Errors are turned into messages for display next to the button;
    the user decides whether to retry.
    """

    def __init__(
        self,
        backend: BackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit_logger = audit_logger or AuditLogger()
        self.obligations = ObligationService(backend, self._audit_logger)
        self._scheduler = RecurringBillScheduler(backend, self._audit_logger)

    async def mark_paid(
        self,
        obligation_id: UUID,
        paid_amount: Union[str, float],
        kind: ObligationKind = ObligationKind.EXPENSE,
        paid_on: Optional[date] = None,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[SettlementResult], str]:
        """
        Settle the due cycle of an obligation.

        Returns:
            (result, user_message); result is None when nothing was saved
        """
        correlation_id = correlation_id or create_correlation_id()

        try:
            obligation = await self.obligations.get_obligation(obligation_id, kind)
        except NotFoundError as e:
            return None, str(e)
        except StorageError as e:
            await self._audit_logger.log_error(
                "obligation_load_failed",
                str(e),
                details={"obligation_id": str(obligation_id), "kind": kind.value},
                correlation_id=correlation_id,
            )
            return None, "❌ Could not load the recurring entry. Please try again."

        try:
            result = await self._scheduler.settle_payment(
                obligation, paid_amount, paid_on=paid_on, correlation_id=correlation_id
            )
        except InvalidAmountError as e:
            return None, f"❌ {e}"
        except SettlementError as e:
            if e.compensated:
                return None, "❌ Could not mark as paid. Nothing was saved, please try again."
            return None, (
                "❌ Could not mark as paid and some changes may remain. "
                "Please check the transactions list before retrying."
            )

        message = f"✅ {obligation.name} paid for {result.settled_due_date.isoformat()}."
        if result.advanced:
            message += f" Next due {result.next_due_date.isoformat()}."
        return result, message


class SavingsFlow:
    """Savings goals with user-facing messages."""

    def __init__(
        self,
        backend: BackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._audit_logger = audit_logger or AuditLogger()
        self.goals = SavingsGoalService(backend, self._audit_logger)

    async def add_money(
        self,
        goal_id: UUID,
        amount: Union[str, float],
        correlation_id: Optional[UUID] = None,
    ) -> tuple[Optional[SavingsGoal], str]:
        """
        Returns:
            (goal, user_message); goal is None when nothing was saved
        """
        correlation_id = correlation_id or create_correlation_id()
        try:
            goal = await self.goals.contribute(goal_id, amount, correlation_id)
        except InvalidAmountError as e:
            return None, f"❌ {e}"
        except NotFoundError as e:
            return None, str(e)
        except StorageError as e:
            await self._audit_logger.log_error(
                "goal_contribution_failed",
                str(e),
                details={"goal_id": str(goal_id)},
                correlation_id=correlation_id,
            )
            return None, "❌ Could not add to the goal. Please try again."

        if goal.is_reached:
            return goal, f"🎉 {goal.name} reached its target!"
        return goal, f"✅ {goal.name} is {goal.progress_percent}% funded."


class ReportFlow:
    """Orchestrates dashboard figures and report export."""

    def __init__(
        self,
        backend: BackendInterface,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._reports = ReportService(backend)
        self._audit_logger = audit_logger or AuditLogger()

    async def build(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        year: int,
        month: Optional[int] = None,
    ) -> Report:
        try:
            return await self._reports.build(profile_ids, year, month)
        except StorageError as e:
            await self._audit_logger.log_error(
                "report_build_failed",
                str(e),
                details={"year": year, "month": month},
            )
            raise

    async def dashboard(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        today: Optional[date] = None,
    ) -> DashboardStats:
        return await self._reports.dashboard(profile_ids, today)

    async def price_comparison(
        self,
        profile_ids: Iterable[Union[UUID, str]],
        since: Optional[date] = None,
    ) -> list[PriceComparison]:
        """Grocery items bought at more than one shop, biggest price gap first."""
        return await self._reports.price_comparison(profile_ids, since)

    async def export(
        self,
        report: Report,
        export_format: str,
        correlation_id: Optional[UUID] = None,
    ) -> tuple[str, str, str]:
        """
        Render a report for download.

        Returns:
            (content, mime_type, filename)

        Raises:
            ValueError: For an unknown format
        """
        correlation_id = correlation_id or create_correlation_id()
        export_format = export_format.lower()
        stem = f"report-{report.period.year}" + (
            f"-{report.period.month:02d}" if report.period.is_monthly else ""
        )

        if export_format == "csv":
            content, mime = to_csv(report), "text/csv"
        elif export_format == "json":
            content, mime = to_json(report), "application/json"
        else:
            raise ValueError(f"Unsupported export format: {export_format}")

        await self._audit_logger.log_report_exported(
            report.period.label, export_format, report.summary.transaction_count, correlation_id
        )
        return content, mime, f"{stem}.{export_format}"


def create_app_components(
    use_storage: bool = True,
) -> tuple[ReceiptCaptureFlow, SettlementFlow, ReportFlow, SavingsFlow, BackendInterface]:
    """
    Factory function to create all application components.

    Args:
        use_storage: Whether to use Google Sheets storage.
                    When False, or when Sheets is not configured,
                    an in-memory store is used instead.

    Returns:
        (receipt_flow, settlement_flow, report_flow, savings_flow, backend)
    """
    backend: BackendInterface
    audit_logger = AuditLogger()  # Local-only logging

    if use_storage:
        try:
            sheets_client = GoogleSheetsClient()
            sheets_client.connect()
            backend = GoogleSheetsBackend(sheets_client)
            audit_logger = AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except (ValidationError, StorageError) as e:
            logger.warning("storage_not_configured", error=str(e), fallback="memory")
            backend = InMemoryBackend()
    else:
        backend = InMemoryBackend()

    return (
        ReceiptCaptureFlow(backend, audit_logger=audit_logger),
        SettlementFlow(backend, audit_logger=audit_logger),
        ReportFlow(backend, audit_logger=audit_logger),
        SavingsFlow(backend, audit_logger=audit_logger),
        backend,
    )
