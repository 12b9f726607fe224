"""
Recurring Obligations Package

Due-date rules, settlement and lifecycle of recurring expenses and income.
"""

from expense_tracker.recurring.dates import (
    advance,
    days_in_month,
    initial_due_date,
    next_due,
)
from expense_tracker.recurring.scheduler import (
    InvalidAmountError,
    RecurringBillScheduler,
    SchedulerError,
    SettlementError,
    validate_amount,
)
from expense_tracker.recurring.service import ObligationService, obligation_from_row

__all__ = [
    "InvalidAmountError",
    "ObligationService",
    "RecurringBillScheduler",
    "SchedulerError",
    "SettlementError",
    "advance",
    "days_in_month",
    "initial_due_date",
    "next_due",
    "obligation_from_row",
    "validate_amount",
]
