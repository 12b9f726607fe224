"""
Due-date arithmetic for recurring obligations.

All functions are pure: they take dates and return dates, so the
scheduler and the obligation service share one set of rules.
relativedelta with an absolute day clamps to the end of short months.
"""

from datetime import date, timedelta
from typing import Optional

from dateutil.relativedelta import relativedelta

from expense_tracker.models.ledger import Frequency, RecurringObligation


def days_in_month(year: int, month: int) -> int:
    return (date(year, month, 1) + relativedelta(day=31)).day


def advance(
    current: date,
    frequency: Frequency,
    due_day_of_month: Optional[int] = None,
) -> date:
    """
    Move a due date forward by one cycle.

    Monthly dates land on due_day_of_month (or the current day) in the
    next month, clamped to that month's length: day 31 in April gives
    30 April, in February the 28th or 29th.
    """
    frequency = Frequency(frequency)

    if frequency is Frequency.DAILY:
        return current + timedelta(days=1)
    if frequency is Frequency.WEEKLY:
        return current + timedelta(days=7)
    if frequency is Frequency.YEARLY:
        # 29 February falls back to the 28th in common years
        return current + relativedelta(years=+1)
    return current + relativedelta(months=+1, day=due_day_of_month or current.day)


def next_due(obligation: RecurringObligation) -> date:
    """The due date that follows the obligation's current next_due_date."""
    return advance(
        obligation.next_due_date,
        obligation.frequency,
        obligation.due_day_of_month,
    )


def initial_due_date(
    start_date: date,
    frequency: Frequency,
    due_day_of_month: Optional[int] = None,
) -> date:
    """
    First due date of a newly created obligation.

    Monthly obligations with a due day fall on that day of the start
    month, or of the following month when that day is already behind
    the start date. Everything else is first due on the start date.
    """
    if Frequency(frequency) is not Frequency.MONTHLY or not due_day_of_month:
        return start_date

    candidate = start_date + relativedelta(day=due_day_of_month)
    if candidate < start_date:
        candidate = start_date + relativedelta(months=+1, day=due_day_of_month)
    return candidate
