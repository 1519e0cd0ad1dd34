"""Text and number helpers shared by the contract page parsers."""

import re
from typing import Optional

from bs4 import BeautifulSoup, Tag

_ENTITIES = (
    ("&nbsp;", " "),
    ("&amp;", "&"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&apos;", "'"),
)

_LEADING_FLOAT = re.compile(r"^\s*[-+]?(\d+\.?\d*|\.\d+)")
_LEADING_QTY = re.compile(r"^(\d+(?:\.\d+)?)")
_SIGNED_AMOUNT = re.compile(r"^-?\d+(?:\.\d+)?")


def clean_text(text: Optional[str]) -> str:
    """Decode common HTML entities, drop asterisks and collapse whitespace."""
    if not text:
        return ""
    for entity, replacement in _ENTITIES:
        text = text.replace(entity, replacement)
    text = text.replace("*", "")
    return re.sub(r"\s+", " ", text).strip()


def parse_float(text: Optional[str]) -> float:
    """Parse the leading number of a string, 0.0 when there is none.

    Trailing garbage is ignored ("12.5 ea" -> 12.5), matching how amounts
    are typed into contract pages.
    """
    if not text:
        return 0.0
    match = _LEADING_FLOAT.match(text)
    if not match:
        return 0.0
    return float(match.group(0))


def parse_money(text: Optional[str]) -> float:
    """Leading number after removing dollar signs and thousands separators."""
    return parse_float(re.sub(r"[$,]", "", text or ""))


def extract_quantity(text: Optional[str]) -> float:
    """Leading quantity of a qty cell, defaulting to 1."""
    cleaned = (text or "").replace("\u00a0", " ").strip()
    match = _LEADING_QTY.match(cleaned)
    if not match:
        return 1.0
    return float(match.group(1))


def extract_amount(text: Optional[str]) -> float:
    """Signed amount of an extended cell.

    Negative values are kept so that credits on addendums survive.
    """
    cleaned = re.sub(r"[$,\s]", "", text or "")
    match = _SIGNED_AMOUNT.match(cleaned)
    if not match:
        return 0.0
    return float(match.group(0))


def flatten_description(cell: Tag) -> str:
    """Plain-text description of a cell.

    Inline formatting tags are unwrapped, line breaks become spaces and the
    remaining markup is stripped before cleaning.
    """
    html = cell.decode_contents()
    html = re.sub(r"<(strong|em|b|i)(\s[^>]*)?>", "", html, flags=re.IGNORECASE)
    html = re.sub(r"</(strong|em|b|i)>", "", html, flags=re.IGNORECASE)
    html = re.sub(r"<br\s*/?>", " ", html, flags=re.IGNORECASE)
    html = re.sub(r"<[^>]+>", " ", html)
    return clean_text(html)


def cell_text(cell: Optional[Tag]) -> str:
    if cell is None:
        return ""
    return cell.get_text().strip()


def direct_cells(row: Tag) -> list[Tag]:
    """td children of a row, ignoring cells of nested tables."""
    return row.find_all("td", recursive=False)


def load_html(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "html.parser")
