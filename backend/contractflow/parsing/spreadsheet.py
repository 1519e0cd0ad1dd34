"""Order items spreadsheet generation with openpyxl.

Layout of the "Order Items" sheet:

- Row 15: column headers
- Row 16: location header, D:E merged
- Row 17 onward: subcategory rows (D:E merged, bold; shaded when
  formatting is applied) and line items
  (D description, F qty, G rate, H amount). Main category rows are not
  written; the items below them carry the category in the database.
"""

import logging
import re
from io import BytesIO
from typing import Iterable, Union

import openpyxl
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.worksheet.worksheet import Worksheet

from ..observability.metrics import spreadsheets_generated_total
from .table_extractor import ITEM, SUB_CATEGORY, Location, OrderItem

logger = logging.getLogger(__name__)

SHEET_NAME = "Order Items"
HEADER_ROW = 15
LOCATION_ROW = 16
FIRST_ITEM_ROW = 17

DESCRIPTION_COL = 4
QTY_COL = 6
RATE_COL = 7
AMOUNT_COL = 8

_INVISIBLE_CHARS = re.compile("[\u200b-\u200d\ufeff\u202a-\u202e\u2060-\u206f]")

_SUBCATEGORY_FILL = PatternFill(fill_type="solid", start_color="FF495568", end_color="FF495568")
_SUBCATEGORY_FONT = Font(bold=True, color="FFFFFFFF")
_HEADER_FONT = Font(bold=True)
_MONEY_FORMAT = '"$"#,##0.00'


def clean_cell_text(text: str) -> str:
    """Strip zero-width and directional characters and collapse whitespace."""
    text = _INVISIBLE_CHARS.sub("", text or "")
    return re.sub(r"\s+", " ", text).strip()


def location_header(location: Location) -> str:
    return clean_cell_text(
        f"Pool & Spa - {location.city}, {location.state} {location.zip}, United States"
    )


def _value(item: Union[OrderItem, dict], name: str):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name)


def _number_or_zero(value):
    if value is None or value == "":
        return 0
    return value


def _write_headers(ws: Worksheet) -> None:
    for col, title in (
        (DESCRIPTION_COL, "Product/Service"),
        (QTY_COL, "Qty"),
        (RATE_COL, "Rate"),
        (AMOUNT_COL, "Amount"),
    ):
        cell = ws.cell(row=HEADER_ROW, column=col, value=title)
        cell.font = _HEADER_FONT

    ws.column_dimensions["D"].width = 60
    ws.column_dimensions["E"].width = 12
    for letter in ("F", "G", "H"):
        ws.column_dimensions[letter].width = 14


def generate_spreadsheet(
    items: Iterable[Union[OrderItem, dict]],
    location: Location,
    apply_formatting: bool = False,
) -> bytes:
    """Render order items into an xlsx workbook.

    Args:
        items: Parsed OrderItem objects or stored item dicts with the same keys
        location: Contract location for the row 16 header
        apply_formatting: Bold the location header and band the subcategory
            rows; otherwise subcategories are only bolded

    Returns:
        bytes: xlsx file content
    """
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = SHEET_NAME

    _write_headers(ws)

    header = ws.cell(row=LOCATION_ROW, column=DESCRIPTION_COL, value=location_header(location))
    header.font = Font(size=11, bold=apply_formatting)
    header.alignment = Alignment(vertical="middle", wrap_text=True)
    ws.merge_cells(
        start_row=LOCATION_ROW, start_column=DESCRIPTION_COL,
        end_row=LOCATION_ROW, end_column=DESCRIPTION_COL + 1,
    )

    row = FIRST_ITEM_ROW
    written = 0
    for item in items:
        item_type = _value(item, "type")
        text = clean_cell_text(str(_value(item, "product_service") or ""))

        if item_type == SUB_CATEGORY:
            cell = ws.cell(row=row, column=DESCRIPTION_COL, value=text)
            ws.merge_cells(
                start_row=row, start_column=DESCRIPTION_COL,
                end_row=row, end_column=DESCRIPTION_COL + 1,
            )
            if apply_formatting:
                for col in range(DESCRIPTION_COL, AMOUNT_COL + 1):
                    ws.cell(row=row, column=col).fill = _SUBCATEGORY_FILL
                cell.font = _SUBCATEGORY_FONT
            else:
                cell.font = _HEADER_FONT
        elif item_type == ITEM:
            cell = ws.cell(row=row, column=DESCRIPTION_COL, value=text)
            cell.alignment = Alignment(wrap_text=True, vertical="top")
            ws.merge_cells(
                start_row=row, start_column=DESCRIPTION_COL,
                end_row=row, end_column=DESCRIPTION_COL + 1,
            )
            ws.cell(row=row, column=QTY_COL, value=_number_or_zero(_value(item, "qty")))
            rate = ws.cell(row=row, column=RATE_COL, value=_number_or_zero(_value(item, "rate")))
            amount = ws.cell(row=row, column=AMOUNT_COL, value=_number_or_zero(_value(item, "amount")))
            rate.number_format = _MONEY_FORMAT
            amount.number_format = _MONEY_FORMAT
        else:
            continue

        row += 1
        written += 1

    buffer = BytesIO()
    wb.save(buffer)
    spreadsheets_generated_total.inc()
    logger.info(f"Generated spreadsheet with {written} rows")
    return buffer.getvalue()
