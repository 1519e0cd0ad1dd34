"""Addendum and original contract pages hosted on ProDBX.

Contract emails link to the signed original contract and to any addendums
as ``https://l1.prodbx.com/go/view/?<id>.<org>.<timestamp>`` pages. Each
page carries an items table with DESCRIPTION / QTY / EXTENDED columns and
no rate column.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from typing import Optional
from urllib.parse import urlsplit

import httpx
from bs4 import Tag

from ..config import get_settings
from ..observability.metrics import (
    addendum_fetch_total,
    addendum_fetch_duration_seconds,
    contracts_parsed_total,
    contract_items_extracted,
)
from .eml import ContractParseError
from .table_extractor import ITEM, MAIN_CATEGORY, SUB_CATEGORY, OrderItem
from .text_utils import (
    clean_text,
    extract_amount,
    extract_quantity,
    flatten_description,
    load_html,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

_ADDENDUM_URL = re.compile(r"^https?://(l1|login)\.prodbx\.com/go/view/\?", re.IGNORECASE)
_PAGE_ADDENDUM_NUMBER = re.compile(r"Addendum\s*#\s*:?\s*(\d+)", re.IGNORECASE)
_CATEGORY_CODE = re.compile(r"^\s*\d{4}\s+Calimingo", re.IGNORECASE)
_OPTIONAL_PACKAGE = re.compile(r"-OPTIONAL\s+PACKAGE\s+(\d+)-", re.IGNORECASE)
_SUMMARY_WORDS = ("subtotal", "tax", "grand total", "current balance")


class AddendumFetchError(Exception):
    """Raised when an addendum page cannot be fetched or processed."""
    pass


@dataclass
class AddendumData:
    """Parsed addendum page.

    Attributes:
        addendum_number: Number shown on the page ("7"), else the URL id
        items: Line items and subcategories of the addendum
        url: Page URL
        url_id: Id taken from the URL query ("35587")
    """
    addendum_number: str
    items: list[OrderItem] = field(default_factory=list)
    url: str = ""
    url_id: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "addendum_number": self.addendum_number,
            "items": [item.to_dict() for item in self.items],
            "url": self.url,
            "url_id": self.url_id,
        }


def validate_addendum_url(url: Optional[str]) -> bool:
    """True for l1/login.prodbx.com view URLs."""
    if not url:
        return False
    return bool(_ADDENDUM_URL.match(url.strip()))


def extract_addendum_number(url: str) -> str:
    """Id of a ProDBX page: the query string up to its first dot.

    ``https://l1.prodbx.com/go/view/?35587.426.20251112100816`` -> ``"35587"``

    Raises:
        ValueError: If no id can be found in the URL
    """
    try:
        query = urlsplit(url).query
        first = query.split(".")[0].strip()
        if first:
            return first

        match = re.search(r"[?&](\d+)\.", url)
        if match:
            return match.group(1)

        raise ValueError(f"Could not extract addendum number from URL: {url}")
    except ValueError as e:
        raise ValueError(f"Invalid URL format: {url}. Error: {e}") from e


def fetch_addendum_html(url: str, timeout: Optional[float] = None) -> str:
    """Download a ProDBX page.

    Args:
        url: Addendum or original contract URL
        timeout: Seconds before giving up (ADDENDUM_FETCH_TIMEOUT_SECONDS)

    Returns:
        str: Page HTML

    Raises:
        AddendumFetchError: Invalid URL, non-2xx status, empty body,
            timeout or transport failure
    """
    if not validate_addendum_url(url):
        raise AddendumFetchError(
            f"Failed to fetch addendum HTML: Invalid addendum URL format: {url}. "
            f"Expected format: https://l1.prodbx.com/go/view/?..."
        )

    if timeout is None:
        timeout = get_settings().ADDENDUM_FETCH_TIMEOUT_SECONDS

    start = time.monotonic()
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.get(url, headers={"User-Agent": USER_AGENT})
    except httpx.TimeoutException as e:
        addendum_fetch_total.labels(status="timeout").inc()
        raise AddendumFetchError(f"Timeout while fetching addendum URL: {url}") from e
    except httpx.HTTPError as e:
        addendum_fetch_total.labels(status="error").inc()
        raise AddendumFetchError(f"Failed to fetch addendum HTML: {e}") from e
    finally:
        addendum_fetch_duration_seconds.observe(time.monotonic() - start)

    if not response.is_success:
        addendum_fetch_total.labels(status="error").inc()
        raise AddendumFetchError(
            f"Failed to fetch addendum HTML: Failed to fetch addendum URL: "
            f"{response.status_code} {response.reason_phrase}"
        )

    html = response.text
    if not html or not html.strip():
        addendum_fetch_total.labels(status="error").inc()
        raise AddendumFetchError(
            "Failed to fetch addendum HTML: Empty HTML content received from addendum URL"
        )

    addendum_fetch_total.labels(status="success").inc()
    return html


def _page_table(soup, page_label: str) -> Tag:
    table = soup.select_one("table.pos")
    if table is not None:
        return table

    table = soup.find("table")
    if table is None:
        raise ContractParseError(
            f'Order Items Table not found in {page_label} HTML. Expected table with class "pos"'
        )
    logger.warning(f'Table with class "pos" not found, using first table instead for {page_label}')
    return table


def _is_subcategory_row(row: Tag, first: Tag) -> bool:
    for tag in (row, first):
        classes = tag.get("class") or []
        if any("ssg_title" in c or "subcategory" in c for c in classes):
            return True
    return False


def _is_bold(cell: Tag) -> bool:
    html = cell.decode_contents()
    return (
        "font-weight: bold" in html
        or "font-size: 14px" in html
        or cell.select_one('span[style*="font-weight: bold"], span[style*="font-size: 14px"]') is not None
        or cell.find("strong") is not None
        or cell.find("b") is not None
    )


def _main_category_text(cells: list[Tag]) -> Optional[str]:
    """Cleaned text of a main category row, None for other rows."""
    if len(cells) < 3:
        return None
    first = cells[0]
    text = clean_text(first.get_text())
    has_qty_and_extended = cells[1].get_text().strip() and cells[2].get_text().strip()
    if not has_qty_and_extended or not text:
        return None
    if _CATEGORY_CODE.match(text) or _is_bold(first):
        return text
    return None


def _line_item_values(cells: list[Tag]) -> Optional[tuple[str, float, float]]:
    """(description, qty, extended) of a line item row, None to skip it."""
    description = flatten_description(cells[0])
    qty_text = clean_text(cells[1].get_text())
    extended_text = clean_text(cells[2].get_text())
    lowered = description.lower()

    if not description:
        return None
    if "description" in lowered and "qty" in qty_text.lower():
        return None
    if any(word in lowered for word in _SUMMARY_WORDS):
        return None
    if _CATEGORY_CODE.match(description) and qty_text and extended_text:
        return None
    return description, extract_quantity(qty_text), extract_amount(extended_text)


def _is_column_header(row_text: str) -> bool:
    lowered = row_text.lower()
    return "description" in lowered and "qty" in lowered and "extended" in lowered


def parse_addendum(html: str, addendum_number: str, url: str) -> AddendumData:
    """Parse an addendum page into line items.

    Main category rows are tracked for context but not emitted. Items need
    a non-zero extended amount; negative amounts are credits and are kept.

    Args:
        html: Page HTML
        addendum_number: Id from the URL, used when the page shows none
        url: Page URL

    Returns:
        AddendumData: Items plus page and URL numbers

    Raises:
        ContractParseError: No table, no rows or no items on the page
    """
    try:
        soup = load_html(html)

        page_number = None
        match = _PAGE_ADDENDUM_NUMBER.search(soup.get_text())
        if match:
            page_number = match.group(1).strip()
            logger.debug(f"Addendum page number {page_number} (URL id {addendum_number})")

        table = _page_table(soup, f"addendum {addendum_number}")
        rows = table.find_all("tr")
        if not rows:
            raise ContractParseError("No rows found in addendum table")

        items: list[OrderItem] = []
        current_main: Optional[str] = None
        current_sub: Optional[str] = None

        for row in rows:
            cells = row.find_all("td")
            if not cells:
                continue
            if _is_column_header(row.get_text()):
                continue

            if _is_subcategory_row(row, cells[0]):
                name = clean_text(cells[0].get_text())
                if name:
                    current_sub = name
                    items.append(OrderItem(
                        type=SUB_CATEGORY,
                        product_service=name,
                        main_category=current_main,
                        sub_category=name,
                    ))
                continue

            main_text = _main_category_text(cells)
            if main_text is not None:
                current_main = main_text
                continue

            if len(cells) < 3:
                continue

            values = _line_item_values(cells)
            if values is None:
                description = flatten_description(cells[0])
                if _CATEGORY_CODE.match(description):
                    current_main = description
                continue

            description, qty, extended = values
            if extended != 0:
                items.append(OrderItem(
                    type=ITEM,
                    product_service=description,
                    qty=qty,
                    rate="",
                    amount=extended,
                    main_category=current_main,
                    sub_category=current_sub,
                ))

        if not items:
            raise ContractParseError(
                f"No order items found in addendum {addendum_number}. "
                f"Please verify the HTML structure."
            )
    except Exception as e:
        contracts_parsed_total.labels(source="addendum", status="error").inc()
        raise ContractParseError(f"Failed to parse addendum {addendum_number}: {e}") from e

    contracts_parsed_total.labels(source="addendum", status="success").inc()
    contract_items_extracted.labels(source="addendum").observe(len(items))
    display_number = page_number or addendum_number
    logger.info(f"Parsed addendum {display_number}: {len(items)} items found")

    return AddendumData(
        addendum_number=display_number,
        items=items,
        url=url,
        url_id=addendum_number,
    )


def _original_subcategory_name(row: Tag, cells: list[Tag]) -> Optional[str]:
    if len(cells) == 2 and not clean_text(cells[0].get_text()):
        style = cells[1].get("style", "")
        if "border-top:solid 1px #BBB" in style and "letter-spacing:2px" in style:
            strong = cells[1].find("strong")
            if strong is not None:
                name = clean_text(strong.get_text())
                if name:
                    return name

    if _is_subcategory_row(row, cells[0]):
        return clean_text(cells[0].get_text()) or None
    return None


def parse_original_contract(html: str, contract_id: str, url: str) -> list[OrderItem]:
    """Parse the signed original contract page.

    Unlike addendums, main categories are emitted with their qty and
    amount, and items are kept even when their amount is zero. Rows after
    an ``-OPTIONAL PACKAGE N-`` marker are flagged as optional package N.

    Raises:
        ContractParseError: No table, no rows or no items on the page
    """
    try:
        soup = load_html(html)
        table = _page_table(soup, "Original Contract")
        rows = table.find_all("tr")
        if not rows:
            raise ContractParseError("No rows found in Original Contract table")

        items: list[OrderItem] = []
        current_main: Optional[str] = None
        current_sub: Optional[str] = None
        package_number: Optional[int] = None

        def optional_flags() -> dict:
            if package_number:
                return {"is_optional": True, "optional_package_number": package_number}
            return {}

        for row in rows:
            cells = row.find_all("td")
            if not cells:
                continue

            row_text = row.get_text()
            marker = _OPTIONAL_PACKAGE.search(row_text)
            if marker and int(marker.group(1)) > 0:
                package_number = int(marker.group(1))
                logger.debug(f"Optional package {package_number} starts in contract {contract_id}")

            if _is_column_header(row_text):
                continue

            sub_name = _original_subcategory_name(row, cells)
            if sub_name:
                current_sub = sub_name
                items.append(OrderItem(
                    type=SUB_CATEGORY,
                    product_service=sub_name,
                    main_category=current_main,
                    sub_category=sub_name,
                    **optional_flags(),
                ))
                continue

            main_text = _main_category_text(cells)
            if main_text is not None:
                name = re.sub(r":\s*$", "", main_text.strip()).strip() + ":"
                current_main = name
                current_sub = None
                items.append(OrderItem(
                    type=MAIN_CATEGORY,
                    product_service=name,
                    qty=extract_quantity(clean_text(cells[1].get_text())),
                    rate="",
                    amount=extract_amount(clean_text(cells[2].get_text())),
                    main_category=name,
                    sub_category=None,
                    **optional_flags(),
                ))
                continue

            if len(cells) < 3:
                continue

            values = _line_item_values(cells)
            if values is None:
                continue

            description, qty, extended = values
            items.append(OrderItem(
                type=ITEM,
                product_service=description,
                qty=qty,
                rate="",
                amount=extended,
                main_category=current_main,
                sub_category=current_sub,
                **optional_flags(),
            ))

        if not items:
            raise ContractParseError(
                "No order items found in Original Contract. Please verify the HTML structure."
            )
    except Exception as e:
        contracts_parsed_total.labels(source="original_contract", status="error").inc()
        raise ContractParseError(f"Failed to parse Original Contract: {e}") from e

    contracts_parsed_total.labels(source="original_contract", status="success").inc()
    contract_items_extracted.labels(source="original_contract").observe(len(items))
    logger.info(f"Parsed Original Contract {contract_id}: {len(items)} items found")
    return items


def fetch_and_parse_addendum(url: str) -> AddendumData:
    """Validate, fetch and parse one addendum URL.

    Raises:
        AddendumFetchError: Any failure, prefixed with the URL
    """
    try:
        if not validate_addendum_url(url):
            raise AddendumFetchError(f"Invalid addendum URL format: {url}")

        addendum_number = extract_addendum_number(url)
        logger.info(f"Processing addendum #{addendum_number} from URL: {url}")
        html = fetch_addendum_html(url)
        return parse_addendum(html, addendum_number, url)
    except (AddendumFetchError, ContractParseError, ValueError) as e:
        raise AddendumFetchError(f"Failed to process addendum URL {url}: {e}") from e


def fetch_and_parse_addendums(urls: list[str]) -> list[AddendumData]:
    """Fetch and parse addendum URLs one after another.

    Failed URLs are logged and skipped.

    Raises:
        AddendumFetchError: Only when every URL failed
    """
    results: list[AddendumData] = []
    errors: list[str] = []

    for url in urls:
        try:
            results.append(fetch_and_parse_addendum(url))
        except AddendumFetchError as e:
            logger.error(f"Error processing addendum URL {url}: {e}")
            errors.append(str(e))

    if errors:
        logger.warning(f"{len(errors)} addendum(s) failed to process")

    if not results and urls:
        raise AddendumFetchError(
            f"All addendum URLs failed to process. Errors: {'; '.join(errors)}"
        )

    return results
