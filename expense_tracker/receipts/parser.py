"""
Receipt Text Parser

Turns raw OCR text into a ParsedBill that pre-fills the receipt form.

DESIGN DECISION: This is a lossy heuristic, not a validator.
- It NEVER raises: anything it cannot read comes back as None or empty
- Numbers stay as typed on the receipt (strings) for the editable form
- The user is the final authority; validation runs after they edit

Algorithm:
1. First non-blank line is the shop name
2. First date-like token anywhere in the text is the bill date
3. Total, subtotal and GST come from keyword lines scanned bottom-up
4. Every other line with a number becomes a candidate line item
"""

import re
from datetime import date
from typing import Optional

import structlog

from expense_tracker.models.receipt import (
    LineItem,
    ParsedBill,
    ParseEmpty,
    ParseResult,
    ParseSuccess,
    to_decimal,
)


logger = structlog.get_logger(__name__)

MAX_ITEMS = 50

NUMBER_PATTERN = re.compile(r"\d+(?:[.,]\d{1,2})?")

# YYYY-M-D and D-M-YY(YY), "-" or "/" separated
ISO_DATE_PATTERN = re.compile(r"\b(\d{4})[-/](\d{1,2})[-/](\d{1,2})\b")
DMY_DATE_PATTERN = re.compile(r"\b(\d{1,2})[-/](\d{1,2})[-/](\d{2}|\d{4})\b")

TOTAL_PATTERN = re.compile(r"\b(?:grand\s+total|amount\s+due|net\s+total|total)\b", re.IGNORECASE)
SUBTOTAL_PATTERN = re.compile(r"\bsub\s?total\b", re.IGNORECASE)
GST_PATTERN = re.compile(r"\b(?:gst|vat|tax)\b", re.IGNORECASE)

# Lines describing payment rather than purchases
EXCLUDED_ITEM_PATTERN = re.compile(
    r"\b(?:sub\s?total|total|gst|vat|tax|change|cash|card)\b",
    re.IGNORECASE,
)

# Punctuation left at the edges once numbers are stripped ("--", "@", "x")
EDGE_NOISE_PATTERN = re.compile(r"^[\W_]+|[\W_]+$")


def _clean_lines(text: str) -> list[str]:
    return [line.strip() for line in text.splitlines() if line.strip()]


def _build_date(year: str, month: str, day: str) -> Optional[date]:
    if len(year) == 2:
        year = "20" + year
    try:
        return date(int(year), int(month), int(day))
    except ValueError:
        return None


def extract_date(text: str) -> Optional[date]:
    """
    Find the first date-like token in the text.

    Both patterns are tried and the earliest match in the text wins.
    An impossible calendar date (month 13, 30 February) yields None.
    """
    iso = ISO_DATE_PATTERN.search(text)
    dmy = DMY_DATE_PATTERN.search(text)

    if iso and (dmy is None or iso.start() <= dmy.start()):
        year, month, day = iso.groups()
        return _build_date(year, month, day)
    if dmy:
        day, month, year = dmy.groups()
        return _build_date(year, month, day)
    return None


def _strip_dates(line: str) -> str:
    line = ISO_DATE_PATTERN.sub(" ", line)
    return DMY_DATE_PATTERN.sub(" ", line)


def numeric_tokens(line: str) -> list[str]:
    """Numeric tokens on a line, commas normalised to periods."""
    return [token.replace(",", ".") for token in NUMBER_PATTERN.findall(_strip_dates(line))]


def _last_number(line: str) -> Optional[str]:
    tokens = numeric_tokens(line)
    return tokens[-1] if tokens else None


class ReceiptParser:
    """
    Heuristic parser from OCR text to ParsedBill.

    Usage:
        bill = ReceiptParser().parse(ocr_text)
    """

    def __init__(self, max_items: int = MAX_ITEMS):
        self.max_items = max_items

    def parse(self, text: Optional[str]) -> ParsedBill:
        lines = _clean_lines(text or "")
        if not lines:
            return ParsedBill()

        total, subtotal, gst = self._extract_amounts(lines)
        items = self._extract_items(lines)

        bill = ParsedBill(
            shop=lines[0][:200],
            parsed_date=extract_date("\n".join(lines)),
            total=total,
            subtotal=subtotal,
            gst=gst,
            items=items,
        )
        logger.debug(
            "receipt_parsed",
            shop=bill.shop,
            items=len(bill.items),
            has_total=bill.total is not None,
        )
        return bill

    def _extract_amounts(self, lines: list[str]):
        total_token = subtotal_token = gst_token = None
        total_found = subtotal_found = gst_found = False

        # Bottom-most keyword line wins for each field
        for line in reversed(lines):
            if SUBTOTAL_PATTERN.search(line):
                if not subtotal_found:
                    subtotal_found = True
                    subtotal_token = _last_number(line)
            elif not total_found and TOTAL_PATTERN.search(line):
                total_found = True
                total_token = _last_number(line)

            if not gst_found and GST_PATTERN.search(line):
                gst_found = True
                gst_token = _last_number(line)

            if total_found and subtotal_found and gst_found:
                break

        if not total_found:
            for line in reversed(lines):
                token = _last_number(line)
                if token is not None:
                    total_token = token
                    break

        return to_decimal(total_token), to_decimal(subtotal_token), to_decimal(gst_token)

    def _extract_items(self, lines: list[str]) -> list[LineItem]:
        items: list[LineItem] = []

        for line in lines:
            if len(items) >= self.max_items:
                break
            if EXCLUDED_ITEM_PATTERN.search(line):
                continue

            tokens = numeric_tokens(line)
            if not tokens:
                continue

            name = NUMBER_PATTERN.sub(" ", _strip_dates(line))
            name = " ".join(name.split())
            name = EDGE_NOISE_PATTERN.sub("", name)
            if not name:
                continue

            if len(tokens) >= 3:
                qty, unit_price = tokens[0], tokens[1]
            else:
                # With one number it is both unit price and line total
                qty, unit_price = "1", tokens[0]

            items.append(
                LineItem(
                    item_name=name[:200],
                    qty=qty,
                    unit_price=unit_price,
                    line_total=tokens[-1],
                )
            )

        return items


def parse_receipt_text(text: Optional[str], max_items: int = MAX_ITEMS) -> ParseResult:
    """
    Parse OCR text into a tagged result for the capture form.

    Blank text is reported as ParseEmpty instead of an empty bill.
    """
    if not text or not text.strip():
        return ParseEmpty()
    bill = ReceiptParser(max_items=max_items).parse(text)
    return ParseSuccess(bill=bill, raw_text=text)
