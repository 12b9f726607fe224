"""
Audit Logger

DESIGN DECISION: Every significant action in the system is logged.
This provides:
1. Complete traceability of receipts, settlements and exports
2. Debugging capability
3. A history the household can read in the audit worksheet

The audit logger:
- Is async to match the rest of the flow
- Gracefully handles failures (doesn't crash the app if logging fails)
- Supports correlation IDs to trace related events
"""

from datetime import date
from typing import Optional
from uuid import UUID, uuid4

import structlog

from expense_tracker.models.audit import AuditEvent, AuditEventBuilder
from expense_tracker.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. Audit storage, when configured (Google Sheets worksheet)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger(__name__)

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Audit persistence must never break the user's action
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    # -------------------------------------------------------------------------
    # Receipt capture
    # -------------------------------------------------------------------------

    async def log_ocr_started(
        self,
        filename: Optional[str],
        file_size: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.ocr_started(filename, file_size, correlation_id))

    async def log_ocr_completed(self, character_count: int, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.ocr_completed(character_count, correlation_id))

    async def log_ocr_failed(self, error_message: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.ocr_failed(error_message, correlation_id))

    async def log_receipt_parsed(
        self,
        shop: str,
        item_count: int,
        total: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log a successful parse."""
        await self.log(
            AuditEventBuilder.receipt_parsed(shop, item_count, total, correlation_id)
        )

    async def log_receipt_empty(self, reason: str, correlation_id: UUID) -> None:
        await self.log(AuditEventBuilder.receipt_empty(reason, correlation_id))

    async def log_validation_failed(
        self,
        issues: list[dict],
        correlation_id: UUID,
    ) -> None:
        """Log validation failure."""
        await self.log(AuditEventBuilder.validation_failed(issues, correlation_id))

    async def log_bill_saved(
        self,
        bill_id: UUID,
        shop: str,
        amount: str,
        item_count: int,
        correlation_id: UUID,
    ) -> None:
        """Log bill save."""
        await self.log(
            AuditEventBuilder.bill_saved(bill_id, shop, amount, item_count, correlation_id)
        )

    async def log_user_rejected(
        self,
        reason: Optional[str],
        correlation_id: UUID,
    ) -> None:
        """Log user rejection."""
        await self.log(AuditEventBuilder.user_rejected(reason, correlation_id))

    # -------------------------------------------------------------------------
    # Ledger and recurring bills
    # -------------------------------------------------------------------------

    async def log_transaction_created(
        self,
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.transaction_created(
                transaction_id, transaction_type, amount, correlation_id
            )
        )

    async def log_obligation_created(
        self,
        obligation_id: UUID,
        name: str,
        next_due_date: date,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.obligation_created(obligation_id, name, next_due_date, correlation_id)
        )

    async def log_obligation_toggled(
        self,
        obligation_id: UUID,
        is_active: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.obligation_toggled(obligation_id, is_active, correlation_id)
        )

    async def log_payment_settled(
        self,
        obligation_id: UUID,
        due_date: date,
        amount: str,
        advanced_to: Optional[date],
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a completed settlement."""
        await self.log(
            AuditEventBuilder.payment_settled(
                obligation_id, due_date, amount, advanced_to, correlation_id
            )
        )

    async def log_payment_record_upserted(
        self,
        record_id: UUID,
        obligation_id: UUID,
        due_date: date,
        is_paid: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.payment_record_upserted(
                record_id, obligation_id, due_date, is_paid, correlation_id
            )
        )

    async def log_due_date_advanced(
        self,
        obligation_id: UUID,
        previous: date,
        next_due_date: date,
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.due_date_advanced(
                obligation_id, previous, next_due_date, correlation_id
            )
        )

    async def log_settlement_failed(
        self,
        obligation_id: UUID,
        error_message: str,
        compensated: bool,
        correlation_id: Optional[UUID],
    ) -> None:
        """Log a settlement that did not complete."""
        await self.log(
            AuditEventBuilder.settlement_failed(
                obligation_id, error_message, compensated, correlation_id
            )
        )

    async def log_settlement_compensated(
        self,
        obligation_id: UUID,
        undone_steps: list[str],
        correlation_id: Optional[UUID],
    ) -> None:
        await self.log(
            AuditEventBuilder.settlement_compensated(obligation_id, undone_steps, correlation_id)
        )

    async def log_reminder_created(
        self,
        reminder_id: UUID,
        title: str,
        due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(
            AuditEventBuilder.reminder_created(reminder_id, title, due_date, correlation_id)
        )

    # -------------------------------------------------------------------------
    # Savings goals
    # -------------------------------------------------------------------------

    async def log_goal_created(
        self,
        goal_id: UUID,
        name: str,
        target_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_created(goal_id, name, target_amount, correlation_id))

    async def log_goal_contribution(
        self,
        goal_id: UUID,
        amount: str,
        new_total: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.goal_contribution(goal_id, amount, new_total, correlation_id))

    async def log_goal_deleted(self, goal_id: UUID, correlation_id: Optional[UUID] = None) -> None:
        await self.log(AuditEventBuilder.goal_deleted(goal_id, correlation_id))

    # -------------------------------------------------------------------------
    # Reports and errors
    # -------------------------------------------------------------------------

    async def log_report_exported(
        self,
        period: str,
        export_format: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> None:
        await self.log(
            AuditEventBuilder.report_exported(
                period, export_format, transaction_count, correlation_id
            )
        )

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_external_service_error(
        self,
        service: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log external service error."""
        event = AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a receipt upload
    or a "mark paid" click). Pass it through all subsequent operations.
    """
    return uuid4()
