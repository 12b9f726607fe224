"""
Ledger Data Models

Transactions, recurring obligations and the records that reconcile them.

DESIGN DECISION: Every entity carries its profile_id. Operations receive
the profile(s) they act on as arguments; nothing reads a "current profile"
from global state.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


# =============================================================================
# ENUMS
# =============================================================================

class ProfileType(str, Enum):
    """Kinds of profile a user can own or share."""
    PERSONAL = "personal"
    FAMILY = "family"
    BUSINESS = "business"


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


class Frequency(str, Enum):
    """How often a recurring obligation falls due."""
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class ObligationKind(str, Enum):
    """
    Recurring expenses and recurring income share one model.

    They are stored in separate tables and only expenses
    keep payment records.
    """
    EXPENSE = "expense"
    INCOME = "income"

    @property
    def table(self) -> str:
        return "recurring_expenses" if self is ObligationKind.EXPENSE else "recurring_income"


# =============================================================================
# CORE ENTITIES
# =============================================================================

class Profile(BaseModel):
    """A named grouping of financial data."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    user_id: UUID
    name: str = Field(..., min_length=1, max_length=100)
    type: ProfileType = ProfileType.PERSONAL
    currency: str = "MVR"
    is_active: bool = True


class Transaction(BaseModel):
    """
    A single income or expense entry.

    Expenses reference a category, income references an income source.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    type: TransactionType
    amount: Decimal = Field(..., gt=0)
    category_id: Optional[UUID] = None
    income_source_id: Optional[UUID] = None
    description: Optional[str] = Field(default=None, max_length=500)
    notes: Optional[str] = Field(default=None, max_length=1000)
    transaction_date: date
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Display names joined in by the report layer
    category_name: Optional[str] = Field(default=None, exclude=True)
    profile_name: Optional[str] = Field(default=None, exclude=True)


class RecurringObligation(BaseModel):
    """
    Template for a periodically recurring expense or income.

    Lifecycle: created by the user, next_due_date moves forward each time
    the current cycle is settled, paused via is_active rather than deleted.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    kind: ObligationKind = Field(default=ObligationKind.EXPENSE, exclude=True)
    category_id: Optional[UUID] = None
    income_source_id: Optional[UUID] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    is_variable_amount: bool = False
    frequency: Frequency = Frequency.MONTHLY
    start_date: date
    end_date: Optional[date] = None
    next_due_date: date
    due_day_of_month: Optional[int] = Field(default=None, ge=1, le=31)
    reminder_days: int = Field(default=3, ge=0)
    grace_period_days: int = Field(default=0, ge=0)
    is_active: bool = True

    @model_validator(mode='after')
    def validate_dates(self) -> 'RecurringObligation':
        """Validate date relationships."""
        if self.end_date and self.end_date < self.start_date:
            raise ValueError("End date cannot be before start date")
        return self


class PaymentRecord(BaseModel):
    """
    Payment state of one due-date occurrence of a recurring expense.

    Upserted by (recurring_expense_id, due_date), never blindly inserted.
    """

    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    recurring_expense_id: UUID
    due_date: date
    paid_date: Optional[date] = None
    amount: Optional[Decimal] = Field(default=None, ge=0)
    is_paid: bool = False


class BillReminder(BaseModel):
    """A reminder that a recurring bill is about to fall due."""

    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    recurring_expense_id: Optional[UUID] = None
    title: str = Field(..., min_length=1, max_length=200)
    amount: Optional[Decimal] = None
    due_date: date
    is_read: bool = False
    is_dismissed: bool = False
    created_at: datetime = Field(default_factory=datetime.utcnow)


class MonthlyBudget(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    total_budget: Decimal = Field(default=Decimal("0"), ge=0)
    income_goal: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None


class CategoryBudget(BaseModel):
    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    category_id: UUID
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)
    budget_amount: Decimal = Field(..., ge=0)
    alert_threshold: int = Field(default=80, ge=1, le=100)


class SavingsGoal(BaseModel):
    """A target amount the household is saving towards."""

    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    name: str = Field(..., min_length=1, max_length=200)
    target_amount: Decimal = Field(..., gt=0)
    current_amount: Decimal = Field(default=Decimal("0"), ge=0)
    deadline: Optional[date] = None
    color: str = Field(default="#10b981", pattern="^#[0-9a-fA-F]{6}$")
    created_at: datetime = Field(default_factory=datetime.utcnow)

    @property
    def progress_percent(self) -> Decimal:
        """Share of the target saved, capped at 100."""
        percent = self.current_amount / self.target_amount * 100
        return min(Decimal("100"), percent).quantize(Decimal("0.1"))

    @property
    def remaining(self) -> Decimal:
        return max(Decimal("0"), self.target_amount - self.current_amount)

    @property
    def is_reached(self) -> bool:
        return self.current_amount >= self.target_amount


# =============================================================================
# DERIVED VIEWS
# =============================================================================

class PendingBill(BaseModel):
    """An unpaid bill shown on the dashboard for the current month."""

    id: UUID
    profile_id: UUID
    name: str
    due_date: date
    amount: Optional[Decimal] = None
    source: str = Field(..., pattern="^(variable|fixed)$")


class SettlementResult(BaseModel):
    """What a single settlement call changed."""

    transaction: Transaction
    payment_record: Optional[PaymentRecord] = None
    settled_due_date: date
    advanced: bool = False
    next_due_date: date
