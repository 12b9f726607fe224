"""
Audit Models for Expense Tracker

Every significant action in the system is logged for audit purposes.
This provides:
1. Complete traceability of all operations
2. Debugging information when things go wrong
3. Ability to reconstruct how a bill ended up paid

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

import json
from datetime import date, datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.

    Every step of receipt capture and settlement has its own event type.
    """
    # Receipt capture
    OCR_STARTED = "ocr_started"
    OCR_COMPLETED = "ocr_completed"
    OCR_FAILED = "ocr_failed"
    RECEIPT_PARSED = "receipt_parsed"
    RECEIPT_EMPTY = "receipt_empty"
    VALIDATION_FAILED = "validation_failed"
    BILL_SAVED = "bill_saved"
    USER_REJECTED = "user_rejected"

    # Ledger
    TRANSACTION_CREATED = "transaction_created"

    # Recurring bills
    OBLIGATION_CREATED = "obligation_created"
    OBLIGATION_PAUSED = "obligation_paused"
    OBLIGATION_RESUMED = "obligation_resumed"
    PAYMENT_SETTLED = "payment_settled"
    PAYMENT_RECORD_UPSERTED = "payment_record_upserted"
    DUE_DATE_ADVANCED = "due_date_advanced"
    SETTLEMENT_FAILED = "settlement_failed"
    SETTLEMENT_COMPENSATED = "settlement_compensated"
    REMINDER_CREATED = "reminder_created"

    # Savings goals
    GOAL_CREATED = "goal_created"
    GOAL_CONTRIBUTION = "goal_contribution"
    GOAL_DELETED = "goal_deleted"

    # Reports
    REPORT_EXPORTED = "report_exported"

    # System events
    SYSTEM_ERROR = "system_error"
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    Every significant action creates one of these.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'transaction', 'obligation', 'receipt')"
    )
    entity_id: Optional[UUID] = None

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all events in one settlement)"
    )

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = False

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }

    def to_sheets_row(self) -> list:
        """
        Convert to a row suitable for Google Sheets storage.

        Returns columns in order:
        [event_id, timestamp, event_type, severity, entity_type, entity_id,
         correlation_id, description, details_json, error_message, is_user_action]
        """
        return [
            str(self.event_id),
            self.timestamp.isoformat(),
            self.event_type.value,
            self.severity.value,
            self.entity_type or "",
            str(self.entity_id) if self.entity_id else "",
            str(self.correlation_id) if self.correlation_id else "",
            self.description,
            json.dumps(self.details, default=str) if self.details else "",
            self.error_message or "",
            str(self.is_user_action),
        ]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.receipt_parsed(item_count, total, correlation_id)
        event = AuditEventBuilder.payment_settled(obligation_id, due_date, amount, correlation_id)
    """

    @staticmethod
    def ocr_completed(
        character_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_COMPLETED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"OCR produced {character_count} characters",
            details={"character_count": character_count},
        )

    @staticmethod
    def receipt_parsed(
        shop: str,
        item_count: int,
        total: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_PARSED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Receipt parsed: {shop or 'unknown shop'} with {item_count} items",
            details={
                "shop": shop,
                "item_count": item_count,
                "total": total,
            },
        )

    @staticmethod
    def receipt_empty(
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_EMPTY,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="Receipt produced no usable text",
            details={"reason": reason},
        )

    @staticmethod
    def validation_failed(
        issues: list[dict],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"Validation failed with {len(issues)} issues",
            details={"issues": issues},
        )

    @staticmethod
    def bill_saved(
        bill_id: UUID,
        shop: str,
        amount: str,
        item_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BILL_SAVED,
            entity_type="grocery_bill",
            entity_id=bill_id,
            correlation_id=correlation_id,
            description=f"Bill saved: {shop} - {amount}",
            details={
                "shop": shop,
                "amount": amount,
                "item_count": item_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def user_rejected(
        reason: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.USER_REJECTED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="User discarded the parsed receipt",
            details={"reason": reason or "No reason provided"},
            is_user_action=True,
        )

    @staticmethod
    def transaction_created(
        transaction_id: UUID,
        transaction_type: str,
        amount: str,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_CREATED,
            entity_type="transaction",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"{transaction_type.capitalize()} transaction created: {amount}",
            details={"type": transaction_type, "amount": amount},
        )

    @staticmethod
    def obligation_created(
        obligation_id: UUID,
        name: str,
        next_due_date: date,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OBLIGATION_CREATED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Recurring entry created: {name}",
            details={"name": name, "next_due_date": next_due_date.isoformat()},
            is_user_action=True,
        )

    @staticmethod
    def obligation_toggled(
        obligation_id: UUID,
        is_active: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.OBLIGATION_RESUMED
                if is_active
                else AuditEventType.OBLIGATION_PAUSED
            ),
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Recurring entry resumed" if is_active else "Recurring entry paused",
            is_user_action=True,
        )

    @staticmethod
    def payment_settled(
        obligation_id: UUID,
        due_date: date,
        amount: str,
        advanced_to: Optional[date],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_SETTLED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Payment of {amount} settled for {due_date.isoformat()}",
            details={
                "due_date": due_date.isoformat(),
                "amount": amount,
                "advanced_to": advanced_to.isoformat() if advanced_to else None,
            },
            is_user_action=True,
        )

    @staticmethod
    def settlement_failed(
        obligation_id: UUID,
        error_message: str,
        compensated: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description="Settlement failed",
            details={"compensated": compensated},
            error_message=error_message,
        )

    @staticmethod
    def reminder_created(
        reminder_id: UUID,
        title: str,
        due_date: date,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REMINDER_CREATED,
            entity_type="reminder",
            entity_id=reminder_id,
            correlation_id=correlation_id,
            description=f"Reminder: {title} due {due_date.isoformat()}",
            details={"title": title, "due_date": due_date.isoformat()},
        )

    @staticmethod
    def goal_created(
        goal_id: UUID,
        name: str,
        target_amount: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CREATED,
            entity_type="savings_goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Savings goal created: {name}",
            details={"name": name, "target_amount": target_amount},
            is_user_action=True,
        )

    @staticmethod
    def goal_contribution(
        goal_id: UUID,
        amount: str,
        new_total: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_CONTRIBUTION,
            entity_type="savings_goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description=f"Added {amount} to savings goal",
            details={"amount": amount, "current_amount": new_total},
            is_user_action=True,
        )

    @staticmethod
    def goal_deleted(goal_id: UUID, correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.GOAL_DELETED,
            entity_type="savings_goal",
            entity_id=goal_id,
            correlation_id=correlation_id,
            description="Savings goal deleted",
            is_user_action=True,
        )

    @staticmethod
    def report_exported(
        period: str,
        export_format: str,
        transaction_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_EXPORTED,
            entity_type="report",
            correlation_id=correlation_id,
            description=f"Report exported: {period} as {export_format}",
            details={
                "period": period,
                "format": export_format,
                "transaction_count": transaction_count,
            },
            is_user_action=True,
        )

    @staticmethod
    def ocr_started(
        filename: Optional[str],
        file_size: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_STARTED,
            entity_type="receipt",
            correlation_id=correlation_id,
            description=f"OCR started: {filename or 'upload'}",
            details={"filename": filename, "file_size": file_size},
            is_user_action=True,
        )

    @staticmethod
    def ocr_failed(
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.OCR_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="receipt",
            correlation_id=correlation_id,
            description="OCR failed",
            error_message=error_message,
        )

    @staticmethod
    def payment_record_upserted(
        record_id: UUID,
        obligation_id: UUID,
        due_date: date,
        is_paid: bool,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PAYMENT_RECORD_UPSERTED,
            entity_type="payment_record",
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Payment record for {due_date.isoformat()} ({'paid' if is_paid else 'unpaid'})",
            details={
                "obligation_id": str(obligation_id),
                "due_date": due_date.isoformat(),
                "is_paid": is_paid,
            },
        )

    @staticmethod
    def due_date_advanced(
        obligation_id: UUID,
        previous: date,
        next_due_date: date,
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.DUE_DATE_ADVANCED,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Next due date moved {previous.isoformat()} -> {next_due_date.isoformat()}",
            details={
                "previous": previous.isoformat(),
                "next_due_date": next_due_date.isoformat(),
            },
        )

    @staticmethod
    def settlement_compensated(
        obligation_id: UUID,
        undone_steps: list[str],
        correlation_id: Optional[UUID],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SETTLEMENT_COMPENSATED,
            severity=AuditSeverity.WARNING,
            entity_type="obligation",
            entity_id=obligation_id,
            correlation_id=correlation_id,
            description=f"Settlement rolled back ({len(undone_steps)} steps undone)",
            details={"undone_steps": undone_steps},
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: UUID
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={"service": service},
            correlation_id=correlation_id,
        )
