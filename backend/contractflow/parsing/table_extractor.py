"""Order items table and location extraction from contract emails.

The HTML body of a signed contract email holds the order items table. Two
layouts are in use:

- Old layout: main categories are bold spans (font-weight: bold or
  font-size: 14px) or <strong>, subcategories carry the ssg_title class.
- New layout: main categories are cells styled ``border-top:solid 1px #666``
  whose text starts with a 4-digit code ("0020 Calimingo - Pools and Spas"),
  subcategories are an empty first cell followed by a #BBB bordered cell.

Parsing stops at the first summary row (subtotal, tax, grand total,
balance) or at the progress payments table, whose addendum rows are
turned into their own main category with a single line item.
"""

import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional, Union

from bs4 import Tag

from .eml import ContractParseError
from .text_utils import (
    clean_text,
    direct_cells,
    extract_quantity,
    flatten_description,
    load_html,
    parse_money,
)

logger = logging.getLogger(__name__)

Number = Union[float, str]

MAIN_CATEGORY = "maincategory"
SUB_CATEGORY = "subcategory"
ITEM = "item"

_STOP_WORDS = ("subtotal", "tax", "grand total", "current balance", "current job balance")
_SUMMARY_WORDS = ("subtotal", "tax", "grand total", "current balance")
_CATEGORY_CODE = re.compile(r"^\d{4}\s+Calimingo")
_ADDENDUM_REF = re.compile(r"addendum\s*#\s*(\d+)", re.IGNORECASE)

_LOCATION_PATTERNS = {
    "order_no": re.compile(r"Order\s*Id[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
    "dbx_customer_id": re.compile(r"DBX\s+Customer\s+Id[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
    "client_name": re.compile(r"Client[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
    "street_address": re.compile(r"Address[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
    "city": re.compile(r"City[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
    "state": re.compile(r"State[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
    "zip": re.compile(r"Zip[:\uff1a]\s*([^\n\r]+)", re.IGNORECASE),
}


@dataclass
class Location:
    """Job-site location block of a contract email."""
    order_no: str = ""
    street_address: str = ""
    city: str = ""
    state: str = ""
    zip: str = ""
    client_name: str = ""
    dbx_customer_id: str = ""

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class OrderItem:
    """One row of a parsed order items table.

    Attributes:
        type: maincategory, subcategory or item
        product_service: Category name or line item description
        qty: Quantity ("" for category rows)
        rate: Unit rate ("" for category rows and addendum items)
        amount: Extended amount ("" for category rows)
        main_category: Enclosing main category name (with trailing colon)
        sub_category: Enclosing subcategory name
        is_optional: Row belongs to an optional package
        optional_package_number: Number of that optional package
    """
    type: str
    product_service: str
    qty: Number = ""
    rate: Number = ""
    amount: Number = ""
    main_category: Optional[str] = None
    sub_category: Optional[str] = None
    is_optional: bool = False
    optional_package_number: Optional[int] = None

    def to_dict(self) -> dict:
        return asdict(self)


def extract_location(text: str) -> Location:
    """Extract the location block from the plain-text body.

    Each field is the rest of the line after its label ("Client:",
    "City:", ...). Missing labels leave the field empty.

    Args:
        text: Plain-text email body

    Returns:
        Location: Extracted fields, empty strings when not found
    """
    location = Location()

    if not text or not text.strip():
        logger.warning("Empty text provided for location extraction")
        return location

    normalized = text.replace("\r\n", "\n").replace("\r", "\n")
    for field_name, pattern in _LOCATION_PATTERNS.items():
        match = pattern.search(normalized)
        if match:
            setattr(location, field_name, match.group(1).strip())

    if not location.client_name and not location.dbx_customer_id and not location.street_address:
        logger.warning(
            f"Could not extract client name, DBX Customer ID, or address from text. "
            f"Sample: {normalized[:500]!r}"
        )

    return location


def _is_header_row(cells: list[Tag]) -> bool:
    if len(cells) < 3:
        return False
    first, second, third = (clean_text(c.get_text()).upper() for c in cells[:3])
    return "DESCRIPTION" in first and "QTY" in second and "EXTENDED" in third


def find_items_table(soup) -> Optional[Tag]:
    """The order items table: ``table.pos`` or the first table with a
    DESCRIPTION / QTY / EXTENDED header row."""
    table = soup.select_one("table.pos")
    if table is not None:
        return table

    for candidate in soup.find_all("table"):
        for row in candidate.find_all("tr"):
            if _is_header_row(row.find_all("td")):
                return candidate
    return None


def _direct_rows(table: Tag) -> list[Tag]:
    bodies = table.find_all("tbody", recursive=False)
    if bodies:
        rows: list[Tag] = []
        for body in bodies:
            rows.extend(body.find_all("tr", recursive=False))
        return rows
    return table.find_all("tr", recursive=False)


def _has_class(tag: Optional[Tag], class_name: str) -> bool:
    if tag is None:
        return False
    return any(class_name in c for c in tag.get("class") or [])


def _progress_payment_items(nested_table: Tag) -> list[OrderItem]:
    """Addendum rows of the progress payments table as category + item pairs."""
    items: list[OrderItem] = []

    for row in nested_table.find_all("tr"):
        match = _ADDENDUM_REF.search(clean_text(row.get_text()))
        if not match:
            continue
        cells = row.find_all("td")
        if len(cells) < 3:
            continue

        amount = parse_money(clean_text(cells[2].get_text()))
        if amount < 1:
            max_amount = 0.0
            for cell in cells:
                cell_amount = parse_money(clean_text(cell.get_text()))
                if 1 <= cell_amount <= 1_000_000 and cell_amount > max_amount:
                    max_amount = cell_amount
            if max_amount > 0:
                amount = max_amount

        if amount > 0:
            name = f"Addendum #{match.group(1)}"
            items.append(OrderItem(type=MAIN_CATEGORY, product_service=f"{name}:"))
            items.append(OrderItem(
                type=ITEM,
                product_service=name,
                qty=1,
                rate=amount,
                amount=amount,
                main_category=f"{name}:",
            ))

    return items


def _is_stop_row(row_text: str, cell_count: int) -> bool:
    if any(word in row_text for word in _STOP_WORDS):
        return True
    if "phase" in row_text and any(w in row_text for w in ("completed", "amt paid", "date paid")):
        return True
    if "addendum #" in row_text and (
        "10/27/2023" in row_text or "date paid" in row_text or cell_count > 3
    ):
        return True
    return False


def _subcategory_name(row: Tag, cells: list[Tag]) -> Optional[str]:
    """Subcategory name of a row, or None when the row is not a subcategory."""
    first = cells[0]
    if _has_class(row, "ssg_title") or _has_class(first, "ssg_title"):
        return clean_text(first.get_text())

    if len(cells) < 2:
        return None
    second = cells[1]
    style = second.get("style", "")
    styled = (
        ("border-top:solid 1px #bbb" in style or "border-top:solid 1px #BBB" in style)
        and "letter-spacing:2px" in style
    )
    strong = second.find("strong")
    if not clean_text(first.get_text()) and styled and strong is not None:
        return clean_text(strong.get_text())
    return None


def _main_category_name(first: Tag) -> Optional[str]:
    """Full main category name ("0020 Calimingo - Pools and Spas - R2:"),
    or None when the cell is not a main category header."""
    html = first.decode_contents()
    bold_span = first.select_one('span[style*="font-weight: bold"], span[style*="font-size: 14px"]')
    strong = first.find("strong")
    old_format = (
        "font-weight: bold" in html
        or "font-size: 14px" in html
        or bold_span is not None
        or strong is not None
    )
    new_format = (
        "border-top:solid 1px #666" in first.get("style", "")
        and bool(_CATEGORY_CODE.match(clean_text(first.get_text())))
    )
    if not old_format and not new_format:
        return None

    if old_format:
        if bold_span is not None:
            name = clean_text(bold_span.get_text())
        elif strong is not None:
            name = clean_text(strong.get_text())
        else:
            name = clean_text(first.get_text())
    else:
        ends = [i for i in (html.find("<br"), html.find("<em")) if i > -1]
        head = html[:min(ends)] if ends else html
        name = clean_text(re.sub(r"</?[^>]+(>|$)", " ", head))

    name = re.sub(r":\s*$", "", name.strip()).strip()
    em = first.find("em")
    description = clean_text(em.get_text()) if em is not None else ""
    if description:
        name = f"{name} - {description}"
    return f"{name}:"


def extract_order_items(html: str) -> list[OrderItem]:
    """Extract the order items table from a contract email body.

    Args:
        html: HTML body of the contract email

    Returns:
        list[OrderItem]: Main categories, subcategories and line items in
        table order

    Raises:
        ContractParseError: If no order items table is present
    """
    soup = load_html(html or "")
    table = find_items_table(soup)
    if table is None:
        raise ContractParseError("Order Items Table not found")

    rows = _direct_rows(table)
    items: list[OrderItem] = []
    current_main: Optional[str] = None
    current_sub: Optional[str] = None

    for index, row in enumerate(rows):
        nested_table = row.select_one("td table")
        if nested_table is not None:
            items.extend(_progress_payment_items(nested_table))
            break

        cells = direct_cells(row)
        if not cells:
            continue

        if _is_stop_row(clean_text(row.get_text()).lower(), len(cells)):
            break

        sub_name = _subcategory_name(row, cells)
        if sub_name is not None:
            if sub_name:
                current_sub = sub_name
                items.append(OrderItem(type=SUB_CATEGORY, product_service=sub_name))
            continue

        if len(cells) < 3:
            continue

        first, qty_cell, amount_cell = cells[0], cells[1], cells[2]
        qty_text = clean_text(qty_cell.get_text())
        amount_text = clean_text(amount_cell.get_text())

        main_name = _main_category_name(first)
        if main_name is not None and qty_text and amount_text:
            current_main = main_name
            current_sub = None
            items.append(OrderItem(type=MAIN_CATEGORY, product_service=main_name))

            # A main category followed directly by its subtotal has no
            # line items of its own; its amount becomes one.
            if index + 1 < len(rows):
                next_text = clean_text(rows[index + 1].get_text()).lower()
                amount = parse_money(amount_text)
                if "subtotal" in next_text and amount > 0:
                    qty = extract_quantity(qty_text)
                    items.append(OrderItem(
                        type=ITEM,
                        product_service=re.sub(r":\s*$", "", main_name),
                        qty=qty,
                        rate=amount / qty if qty > 0 else amount,
                        amount=amount,
                        main_category=main_name,
                    ))
            continue

        style = first.get("style", "")
        indented = "padding-left: 30px" in style or "padding-left:30px" in style
        description = flatten_description(first)
        lowered = description.lower()

        if "description" in lowered and "qty" in qty_text.lower():
            continue
        if not description:
            continue
        if any(word in lowered for word in _SUMMARY_WORDS):
            continue
        if not (indented or (qty_text and amount_text)):
            continue

        qty = extract_quantity(qty_text)
        strong = amount_cell.find("strong")
        amount = parse_money(clean_text(strong.get_text()) if strong is not None else amount_text)

        if amount > 0 or indented:
            items.append(OrderItem(
                type=ITEM,
                product_service=description,
                qty=qty,
                rate=amount / qty if qty > 0 else 0,
                amount=amount,
                main_category=current_main,
                sub_category=current_sub,
            ))

    logger.info(f"Extracted {len(items)} order items from contract email")
    return items
