"""Tests for the receipt text parser."""

from datetime import date
from decimal import Decimal

import pytest
from pydantic import TypeAdapter

from expense_tracker.models.receipt import ParseEmpty, ParseResult, ParseSuccess
from expense_tracker.receipts import (
    ReceiptParser,
    extract_date,
    numeric_tokens,
    parse_receipt_text,
)

from conftest import SUPERMART_RECEIPT


class TestSupermartReceipt:
    """The reference receipt with items, subtotal, GST and total."""

    def test_header_fields(self):
        """Shop, date and amounts come from their lines."""
        bill = ReceiptParser().parse(SUPERMART_RECEIPT)
        assert bill.shop == "SuperMart"
        assert bill.parsed_date == date(2024, 5, 1)
        assert bill.subtotal == Decimal("40.50")
        assert bill.gst == Decimal("2.00")
        assert bill.total == Decimal("42.50")

    def test_line_items(self):
        """Only Milk and Bread become items."""
        bill = ReceiptParser().parse(SUPERMART_RECEIPT)
        assert [item.model_dump() for item in bill.items] == [
            {"item_name": "Milk", "qty": "2", "unit_price": "15.00", "line_total": "30.00"},
            {"item_name": "Bread", "qty": "1", "unit_price": "10.50", "line_total": "10.50"},
        ]


class TestAmounts:
    """Total, subtotal and GST extraction."""

    def test_no_numbers_yields_empty_bill(self):
        """Text without numbers never raises and has no amounts or items."""
        bill = ReceiptParser().parse("Thank you\nfor shopping\nwith us")
        assert bill.total is None
        assert bill.subtotal is None
        assert bill.gst is None
        assert bill.items == []

    def test_total_falls_back_to_last_number(self):
        """Without a total line the last number in the text is the total."""
        bill = ReceiptParser().parse("Corner Shop\nRice 12.00\nSugar 8.50")
        assert bill.total == Decimal("8.50")

    def test_subtotal_line_is_not_the_total(self):
        """'Sub Total' below 'Total' doesn't steal the total."""
        bill = ReceiptParser().parse("Shop\nTotal 42.50\nSub Total 40.50")
        assert bill.total == Decimal("42.50")
        assert bill.subtotal == Decimal("40.50")

    def test_bottom_most_keyword_line_wins(self):
        """A running total higher up is ignored in favour of the last one."""
        bill = ReceiptParser().parse("Shop\nTotal 10.00\nBag 1.00\nGrand Total 11.00")
        assert bill.total == Decimal("11.00")

    def test_vat_and_tax_count_as_gst(self):
        """VAT and TAX labels fill the gst field."""
        assert ReceiptParser().parse("Shop\nVAT 5.00\nTotal 55.00").gst == Decimal("5.00")
        assert ReceiptParser().parse("Shop\nTax 1.25\nTotal 11.25").gst == Decimal("1.25")

    def test_last_number_on_line_is_taken(self):
        """'GST 8% 3.20' reads 3.20, not 8."""
        bill = ReceiptParser().parse("Shop\nGST 8% 3.20\nTotal 43.20")
        assert bill.gst == Decimal("3.20")

    def test_keyword_line_without_number_gives_none(self):
        """A total label with no amount is None, not an error."""
        bill = ReceiptParser().parse("Shop\nRice 12.00\nTOTAL")
        assert bill.total is None

    def test_comma_decimal_separator(self):
        """Commas are read as decimal points."""
        bill = ReceiptParser().parse("Shop\nEggs 12,50\nTotal 12,50")
        assert bill.total == Decimal("12.50")
        assert bill.items[0].line_total == "12.50"


class TestLineItems:
    """Line item heuristics."""

    def test_excluded_keywords(self):
        """Payment lines never become items."""
        bill = ReceiptParser().parse("Shop\nCash 100.00\nChange 57.50\nCard 10.00")
        assert bill.items == []

    def test_two_numbers_default_quantity(self):
        """With two numbers the first is the unit price and qty is 1."""
        item = ReceiptParser().parse("Shop\nApples 4.00 8.00").items[0]
        assert (item.qty, item.unit_price, item.line_total) == ("1", "4.00", "8.00")

    def test_line_without_name_is_skipped(self):
        """A line of bare numbers has no item name."""
        bill = ReceiptParser().parse("Shop\n12 34.00\nTea 3.00")
        assert [item.item_name for item in bill.items] == ["Tea"]

    @pytest.mark.parametrize("line", ["@ 5.00", "-- 2 5.00", "* 5.00 *"])
    def test_punctuation_only_name_is_skipped(self, line):
        """Lines whose name is only edge punctuation are not items."""
        bill = ReceiptParser().parse(f"Shop\n{line}\nTea 3.00")
        assert [item.item_name for item in bill.items] == ["Tea"]

    def test_edge_punctuation_trimmed_from_name(self):
        bill = ReceiptParser().parse("Shop\nEggs @ 2 0.50 1.00")
        assert bill.items[0].item_name == "Eggs"

    def test_whitespace_is_collapsed(self):
        """Names keep single spaces between words."""
        bill = ReceiptParser().parse("Shop\nBasmati    Rice   5kg 2 60.00 120.00")
        assert bill.items[0].item_name == "Basmati Rice kg"

    def test_item_cap(self):
        """No more than max_items are returned."""
        text = "Shop\n" + "\n".join(f"Item{chr(65 + i % 26)} {i + 1}.00" for i in range(60))
        assert len(ReceiptParser().parse(text).items) == 50
        assert len(ReceiptParser(max_items=5).parse(text).items) == 5

    @pytest.mark.parametrize("line", ["Milk 30.00", "Milk 2 30.00", "Milk 2 15.00 30.00"])
    def test_line_total_is_last_number(self, line):
        """line_total is always the last number on the line."""
        assert ReceiptParser().parse(f"Shop\n{line}").items[0].line_total == "30.00"


class TestDates:
    """Date extraction."""

    def test_day_month_two_digit_year(self):
        """D/M/YY is read day first with a 20xx year."""
        assert extract_date("Shop\n05/03/24 10:31") == date(2024, 3, 5)

    def test_day_month_four_digit_year(self):
        assert extract_date("Date: 7-11-2023") == date(2023, 11, 7)

    def test_first_date_wins(self):
        """The earliest date in the text is used."""
        assert extract_date("01/02/2024\nPrinted 2024-03-04") == date(2024, 2, 1)

    def test_impossible_date_is_none(self):
        """Month 13 is not a date."""
        assert extract_date("2024-13-45") is None

    def test_no_date(self):
        assert extract_date("no date here") is None

    @pytest.mark.parametrize("text", ["2024-5-1", "1/5/24", "31/12/2023", "2020/02/29"])
    def test_normalised_date_reparses_to_itself(self, text):
        """Parsing the normalised YYYY-MM-DD output gives the same date."""
        parsed = extract_date(text)
        assert parsed is not None
        assert extract_date(parsed.isoformat()) == parsed

    def test_date_line_is_not_an_item(self):
        """Digits of a date are not item numbers."""
        assert numeric_tokens("2024-05-01") == []


class TestParseResult:
    """Tagged result handed to the receipt form."""

    def test_blank_text_is_empty(self):
        assert isinstance(parse_receipt_text("  \n  "), ParseEmpty)
        assert isinstance(parse_receipt_text(None), ParseEmpty)

    def test_text_is_success(self):
        result = parse_receipt_text(SUPERMART_RECEIPT)
        assert isinstance(result, ParseSuccess)
        assert result.kind == "success"
        assert result.raw_text == SUPERMART_RECEIPT
        assert result.bill.total == Decimal("42.50")

    def test_discriminated_union(self):
        """The kind tag selects the variant when validating plain data."""
        adapter = TypeAdapter(ParseResult)
        assert isinstance(adapter.validate_python({"kind": "empty", "reason": "blank"}), ParseEmpty)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
