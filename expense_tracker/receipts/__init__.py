"""
Receipts Package

Heuristic parsing of OCR text into bills, and price comparison over
saved bills.
"""

from expense_tracker.receipts.parser import (
    ReceiptParser,
    extract_date,
    numeric_tokens,
    parse_receipt_text,
)
from expense_tracker.receipts.prices import compare_prices

__all__ = [
    "ReceiptParser",
    "compare_prices",
    "extract_date",
    "numeric_tokens",
    "parse_receipt_text",
]
