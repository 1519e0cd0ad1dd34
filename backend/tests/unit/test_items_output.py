"""Unit tests for items total validation, spreadsheet filenames and the
generated Order Items workbook"""

from io import BytesIO

import openpyxl

from contractflow.parsing import extract_location, extract_order_items
from contractflow.parsing.filename import (
    format_client_name,
    generate_spreadsheet_filename,
    sanitize_filename,
)
from contractflow.parsing.spreadsheet import clean_cell_text, generate_spreadsheet
from contractflow.parsing.table_extractor import Location, OrderItem
from contractflow.parsing.validation import (
    calculate_order_items_total,
    format_usd,
    validate_order_items_total,
)

from tests.fixtures.contract_samples import CONTRACT_HTML, CONTRACT_TEXT


class TestItemsTotal:
    def test_only_positive_item_rows_count(self):
        items = [
            OrderItem(type="maincategory", product_service="Pool:"),
            OrderItem(type="item", product_service="Shell", amount=1000.0),
            OrderItem(type="item", product_service="Credit", amount=-200.0),
            {"type": "item", "product_service": "Tile", "amount": "$1,500.00"},
            {"type": "subcategory", "product_service": "Decking", "amount": 99},
        ]
        assert calculate_order_items_total(items) == 2500.0

    def test_matching_total(self):
        result = validate_order_items_total(extract_order_items(CONTRACT_HTML), 10000)

        assert result.is_valid is True
        assert result.items_total == 10000.0
        assert result.difference == 0.0
        assert result.message is None

    def test_within_tolerance(self):
        items = [{"type": "item", "amount": 100.004}]
        assert validate_order_items_total(items, 100.0).is_valid is True

    def test_mismatch_message(self):
        result = validate_order_items_total(extract_order_items(CONTRACT_HTML), 9000)

        assert result.is_valid is False
        assert result.difference == 1000.0
        assert result.message == (
            "Order items total ($10,000.00) does not match Order Grand Total ($9,000.00). "
            "Difference: $1,000.00"
        )

    def test_missing_grand_total(self):
        result = validate_order_items_total([{"type": "item", "amount": 50}], None)

        assert result.is_valid is False
        assert result.order_grand_total == 0.0
        assert result.message == "Order Grand Total is missing or zero"

    def test_format_usd(self):
        assert format_usd(1234.5) == "1,234.50"


class TestFilenames:
    def test_format_client_name(self):
        assert format_client_name("Ely Przybyl") == "E. Przybyl"
        assert format_client_name("mary anne smith") == "M. smith"
        assert format_client_name("Cher") == "Cher"
        assert format_client_name("") == ""

    def test_sanitize_filename(self):
        assert sanitize_filename(' ..Pool: "Deck" / Spa?.. ') == "Pool Deck Spa"
        assert len(sanitize_filename("x" * 400)) == 247

    def test_full_filename(self):
        location = extract_location(CONTRACT_TEXT)
        assert generate_spreadsheet_filename(location) == "E. Przybyl - #9682 - 1041 Temple terrace.xlsx"

    def test_order_number_fallback(self):
        assert generate_spreadsheet_filename(Location(order_no="77")) == "Contract - #77.xlsx"

    def test_timestamp_fallback(self):
        filename = generate_spreadsheet_filename(Location())
        assert filename.startswith("contract-")
        assert filename.endswith(".xlsx")


class TestSpreadsheet:
    def _sheet(self, content):
        return openpyxl.load_workbook(BytesIO(content))["Order Items"]

    def test_layout(self):
        content = generate_spreadsheet(
            extract_order_items(CONTRACT_HTML),
            extract_location(CONTRACT_TEXT),
        )
        ws = self._sheet(content)

        assert ws["D15"].value == "Product/Service"
        assert ws["F15"].value == "Qty"
        assert ws["G15"].value == "Rate"
        assert ws["H15"].value == "Amount"
        assert ws["D16"].value == "Pool & Spa - Austin, TX 78701, United States"

        # Main categories are not written; the subcategory comes first.
        assert ws["D17"].value == "Excavation"
        assert ws["D18"].value == "Dig hole"
        assert ws["F18"].value == 2
        assert ws["G18"].value == 2000
        assert ws["H18"].value == 4000
        assert ws["D19"].value == "Haul dirt"
        assert ws["D20"].value is None

    def test_stored_item_dicts(self):
        items = [{"type": "item", "product_service": "Heater", "qty": None, "rate": "", "amount": 3200.0}]
        ws = self._sheet(generate_spreadsheet(items, Location(city="Round Rock", state="TX", zip="78664")))

        assert ws["D17"].value == "Heater"
        assert ws["F17"].value == 0
        assert ws["G17"].value == 0
        assert ws["H17"].value == 3200

    def test_formatting_bolds_location_header(self):
        content = generate_spreadsheet(
            extract_order_items(CONTRACT_HTML),
            extract_location(CONTRACT_TEXT),
            apply_formatting=True,
        )
        ws = self._sheet(content)

        assert ws["D16"].font.bold is True
        assert ws["D17"].fill.fill_type == "solid"

    def test_clean_cell_text(self):
        assert clean_cell_text("Pool\u200b  Deck\ufeff") == "Pool Deck"
