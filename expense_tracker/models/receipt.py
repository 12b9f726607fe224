"""
Receipt Data Models

Models for the receipt capture flow:
1. ParsedBill - what the parser thinks it saw (PROPOSED, editable)
2. ParseResult - tagged result handed from capture to the form
3. GroceryBill / GroceryBillItem - what is persisted after confirmation
4. ValidationIssue / ValidationResult - checks shown before saving

DESIGN DECISION: Line item numbers stay strings until the user confirms.
The parser output pre-fills a form, and the form edits text, so we only
convert to Decimal at persistence time.
"""

from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Annotated, Literal, Optional, Union
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# PARSER OUTPUT
# =============================================================================

class LineItem(BaseModel):
    """
    One item line from a receipt.

    Invariant: line_total is the last numeric token found on the source line.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    item_name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Item text with numeric tokens removed"
    )
    qty: str = Field(default="1", description="Quantity as typed on the receipt")
    unit_price: str = Field(..., description="Unit price as typed on the receipt")
    line_total: str = Field(..., description="Line total as typed on the receipt")


class ParsedBill(BaseModel):
    """
    Structured bill derived from raw OCR text.

    CRITICAL: This is PROPOSED data, NOT verified.
    Every field may be None/empty; the user corrects it in the form.
    """

    shop: str = Field(default="", description="First non-blank line of the receipt")
    parsed_date: Optional[date] = None
    total: Optional[Decimal] = None
    subtotal: Optional[Decimal] = None
    gst: Optional[Decimal] = None
    items: list[LineItem] = Field(default_factory=list)


class ParseSuccess(BaseModel):
    """The parser produced a bill (possibly with empty fields)."""

    kind: Literal["success"] = "success"
    bill: ParsedBill
    raw_text: str


class ParseEmpty(BaseModel):
    """There was nothing to parse."""

    kind: Literal["empty"] = "empty"
    reason: str = "No text was recognised on the receipt"


ParseResult = Annotated[Union[ParseSuccess, ParseEmpty], Field(discriminator="kind")]


# =============================================================================
# PERSISTED BILL
# =============================================================================

def normalize_amount_text(value) -> str:
    """
    Canonical decimal text for a user- or OCR-entered amount.

    A comma followed by one or two final digits is the decimal mark
    ("12,50" is 12.50). Any other comma groups thousands ("1,250" and
    "1,250.50").
    """
    text = str(value).strip().replace(" ", "")
    if "," not in text:
        return text
    head, _, tail = text.rpartition(",")
    if "." not in text and 1 <= len(tail) <= 2 and tail.isdigit():
        return head.replace(",", "") + "." + tail
    return text.replace(",", "")


def to_decimal(value: Optional[str]) -> Optional[Decimal]:
    """Convert form text to a Decimal, None when blank or malformed."""
    if value is None:
        return None
    text = normalize_amount_text(value)
    if not text:
        return None
    try:
        result = Decimal(text)
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


class GroceryBillItem(BaseModel):
    """A persisted receipt line."""

    id: UUID = Field(default_factory=uuid4)
    grocery_bill_id: UUID
    item_name: str = Field(..., min_length=1, max_length=200)
    qty: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    line_total: Optional[Decimal] = None

    @classmethod
    def from_line_item(cls, grocery_bill_id: UUID, item: LineItem) -> "GroceryBillItem":
        return cls(
            grocery_bill_id=grocery_bill_id,
            item_name=item.item_name,
            qty=to_decimal(item.qty),
            unit_price=to_decimal(item.unit_price),
            line_total=to_decimal(item.line_total),
        )


class GroceryBill(BaseModel):
    """
    A confirmed, itemized receipt linked to exactly one transaction.
    """

    id: UUID = Field(default_factory=uuid4)
    profile_id: UUID
    transaction_id: UUID
    shop_name: Optional[str] = Field(default=None, max_length=200)
    bill_date: Optional[date] = None
    subtotal: Optional[Decimal] = None
    gst_amount: Optional[Decimal] = None
    total: Optional[Decimal] = None
    raw_text: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    items: list[GroceryBillItem] = Field(default_factory=list, exclude=True)


class PriceComparison(BaseModel):
    """Unit prices of one item across shops."""

    item_name: str
    shops: list[dict] = Field(default_factory=list)
    cheapest_price: Decimal
    most_expensive_price: Decimal

    @property
    def spread(self) -> Decimal:
        return self.most_expensive_price - self.cheapest_price


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'inconsistent')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = None


class ValidationResult(BaseModel):
    """
    Result of validating a parsed bill before it is saved.

    Errors block saving; warnings are shown but the user may proceed.
    """

    validated_at: datetime = Field(default_factory=datetime.utcnow)
    is_valid: bool
    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")
