"""
Two-Stage Receipt Validation

DESIGN DECISION: Validation happens in two distinct stages:

STAGE 1 - SCHEMA VALIDATION:
- Required field presence (total)
- Value ranges
- This catches OCR text the parser could not make sense of

STAGE 2 - SEMANTIC VALIDATION:
- Subtotal + GST vs total
- Line items vs subtotal
- Future or very old dates
- Duplicate detection against saved bills
- This catches logically impossible or suspicious data

IMPORTANT: Validation NEVER silently fixes issues.
It reports them for human review. Errors block saving, warnings don't.
"""

from datetime import date, timedelta
from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from expense_tracker.config import get_settings
from expense_tracker.models.receipt import (
    ParsedBill,
    ValidationIssue,
    ValidationResult,
    to_decimal,
)
from expense_tracker.services.storage import GROCERY_BILLS, BackendInterface, StorageError


logger = structlog.get_logger(__name__)

# Rounding on till receipts rarely exceeds a few laari
AMOUNT_TOLERANCE = Decimal("0.05")


class ReceiptValidator:
    """
    Validates a parsed (and possibly user-edited) bill.

    Stage 1: Schema validation (no storage needed)
    Stage 2: Semantic validation (storage only for duplicate checks)
    """

    def __init__(self, backend: Optional[BackendInterface] = None):
        """
        Args:
            backend: Table store for duplicate checking.
                     If None, duplicate checking is skipped.
        """
        self._backend = backend
        self._settings = get_settings().app

    def _validate_schema(self, bill: ParsedBill) -> list[ValidationIssue]:
        issues = []

        if bill.total is None:
            issues.append(ValidationIssue(
                field="total",
                issue_type="missing",
                message="No total amount was found on the receipt",
                severity="error",
                suggested_fix="Enter the total amount from the receipt",
            ))
        elif bill.total <= 0:
            issues.append(ValidationIssue(
                field="total",
                issue_type="invalid_value",
                message="Total amount must be greater than zero",
                severity="error",
                suggested_fix="Check if the amount was read correctly",
            ))
        elif bill.total > Decimal(str(self._settings.max_transaction_amount)):
            issues.append(ValidationIssue(
                field="total",
                issue_type="invalid_value",
                message=f"Total ({bill.total:,.2f}) is above the allowed maximum",
                severity="error",
                suggested_fix="Check for a misread decimal point",
            ))

        if not bill.shop:
            issues.append(ValidationIssue(
                field="shop",
                issue_type="missing",
                message="Shop name was not found",
                severity="warning",
                suggested_fix="Enter the shop name manually",
            ))

        if bill.parsed_date is None:
            issues.append(ValidationIssue(
                field="parsed_date",
                issue_type="missing",
                message="Receipt date was not found",
                severity="warning",
                suggested_fix="Enter the receipt date manually",
            ))

        for index, item in enumerate(bill.items, start=1):
            if to_decimal(item.line_total) is None:
                issues.append(ValidationIssue(
                    field=f"items[{index}]",
                    issue_type="invalid_value",
                    message=f"Item '{item.item_name}' has no readable line total",
                    severity="warning",
                ))

        return issues

    def _validate_semantic(self, bill: ParsedBill) -> list[ValidationIssue]:
        issues = []
        today = date.today()

        if bill.parsed_date:
            max_future = today + timedelta(days=self._settings.future_date_tolerance_days)
            if bill.parsed_date > max_future:
                issues.append(ValidationIssue(
                    field="parsed_date",
                    issue_type="future_date",
                    message=f"Receipt date ({bill.parsed_date}) is in the future",
                    severity="warning",
                    suggested_fix="Please verify the date is correct",
                ))
            # Two years back is more likely an OCR misread than an old receipt
            if bill.parsed_date < today - timedelta(days=365 * 2):
                issues.append(ValidationIssue(
                    field="parsed_date",
                    issue_type="suspicious_date",
                    message=f"Receipt date ({bill.parsed_date}) seems unusually old",
                    severity="warning",
                    suggested_fix="Please verify the date was read correctly",
                ))

        if bill.subtotal is not None and bill.gst is not None and bill.total is not None:
            expected = bill.subtotal + bill.gst
            if abs(bill.total - expected) > AMOUNT_TOLERANCE:
                issues.append(ValidationIssue(
                    field="total",
                    issue_type="inconsistent",
                    message=f"Total ({bill.total}) doesn't match subtotal + GST ({expected})",
                    severity="warning",
                    suggested_fix="Please verify the amounts",
                ))

        line_totals = [to_decimal(item.line_total) for item in bill.items]
        if bill.items and all(v is not None for v in line_totals):
            items_sum = sum(line_totals, Decimal("0"))
            reference = bill.subtotal if bill.subtotal is not None else bill.total
            if reference is not None and abs(items_sum - reference) > AMOUNT_TOLERANCE:
                issues.append(ValidationIssue(
                    field="items",
                    issue_type="inconsistent",
                    message=f"Items add up to {items_sum}, receipt says {reference}",
                    severity="warning",
                    suggested_fix="Some items may be missing or misread",
                ))

        for index, item in enumerate(bill.items, start=1):
            qty, unit, line_total = (to_decimal(item.qty), to_decimal(item.unit_price),
                                     to_decimal(item.line_total))
            if None in (qty, unit, line_total) or qty == 1:
                continue
            if abs(qty * unit - line_total) > AMOUNT_TOLERANCE:
                issues.append(ValidationIssue(
                    field=f"items[{index}]",
                    issue_type="inconsistent",
                    message=f"{item.item_name}: {qty} x {unit} is not {line_total}",
                    severity="info",
                ))

        return issues

    async def _check_duplicates(
        self,
        bill: ParsedBill,
        profile_id: Optional[UUID],
    ) -> list[ValidationIssue]:
        """Warn when a bill from the same shop, date and total was saved before."""
        if self._backend is None or profile_id is None:
            return []
        if not bill.shop or bill.parsed_date is None or bill.total is None:
            return []

        try:
            rows = await self._backend.select(
                GROCERY_BILLS,
                {
                    "profile_id": str(profile_id),
                    "shop_name__ilike": bill.shop,
                    "bill_date": bill.parsed_date,
                },
            )
        except StorageError as e:
            # The duplicate check is advisory; saving still goes through review
            logger.warning("duplicate_check_failed", error=str(e))
            return []

        if any(to_decimal(row.get("total")) == bill.total for row in rows):
            return [ValidationIssue(
                field="duplicate",
                issue_type="potential_duplicate",
                message=f"A bill from {bill.shop} dated {bill.parsed_date} for {bill.total} already exists",
                severity="warning",
                suggested_fix="Please verify this isn't a duplicate entry",
            )]
        return []

    async def validate(
        self,
        bill: ParsedBill,
        profile_id: Optional[UUID] = None,
        check_duplicates: bool = True,
    ) -> ValidationResult:
        """
        Run the two-stage validation pipeline.

        Stage 2 only runs when stage 1 found no errors.
        """
        issues = self._validate_schema(bill)
        schema_valid = not any(issue.severity == "error" for issue in issues)

        if schema_valid:
            issues.extend(self._validate_semantic(bill))
            if check_duplicates:
                issues.extend(await self._check_duplicates(bill, profile_id))

        return ValidationResult(
            is_valid=not any(issue.severity == "error" for issue in issues),
            issues=issues,
            warnings=[issue.message for issue in issues if issue.severity == "warning"],
        )

    def get_user_friendly_summary(self, result: ValidationResult) -> str:
        """
        Generate a user-friendly summary of validation results.

        This is what we show next to the receipt form.
        """
        if result.is_valid and not result.warnings:
            return "✅ All checks passed! Please review the details below."

        lines = []

        if result.has_errors:
            lines.append("❌ This receipt can't be saved yet:")
            for issue in result.issues:
                if issue.severity == "error":
                    lines.append(f"   • {issue.message}")
                    if issue.suggested_fix:
                        lines.append(f"     💡 {issue.suggested_fix}")

        if result.warnings:
            lines.append("")
            lines.append("⚠️ Please verify the following:")
            for warning in result.warnings:
                lines.append(f"   • {warning}")

        lines.append("")
        if result.is_valid:
            lines.append("You can still save, but please review carefully.")
        else:
            lines.append("Please fix the issues above before saving.")

        return "\n".join(lines).strip()
