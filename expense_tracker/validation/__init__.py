"""Receipt validation package."""

from expense_tracker.validation.validator import ReceiptValidator

__all__ = ["ReceiptValidator"]
