"""Detection of the selectable sections of a contract email.

The upload flow lets users choose which parts of an email to import: the
original contract table, each optional package and the addendum.
"""

import logging
import re
from dataclasses import dataclass, asdict
from typing import Optional

from .eml import ParsedEmail
from .text_utils import load_html

logger = logging.getLogger(__name__)

ORIGINAL = "original"
OPTIONAL_PACKAGE = "optional_package"
ADDENDUM = "addendum"

_OPTIONAL_PACKAGE = re.compile(r"-OPTIONAL\s+PACKAGE\s+(\d+)-[ \t]*([^\n]*)", re.IGNORECASE)
_ADDENDUM_NUMBER = re.compile(r"Addendum\s*#\s*:?\s*(\d+)", re.IGNORECASE)


@dataclass
class Section:
    type: str
    selected: bool
    number: Optional[int] = None
    name: Optional[str] = None

    def to_dict(self) -> dict:
        return asdict(self)


def detect_eml_sections(parsed_email: ParsedEmail) -> tuple[list[Section], bool]:
    """Sections found in the email HTML and whether it holds a table.

    Original contract and addendum sections are selected by default,
    optional packages are not.
    """
    if not parsed_email.html or not parsed_email.html.strip():
        return [], False

    soup = load_html(parsed_email.html)
    page_text = soup.get_text()
    has_table = soup.find("table") is not None

    sections: list[Section] = []
    if has_table:
        sections.append(Section(type=ORIGINAL, selected=True, name="Original Contract"))

    seen_packages: set[int] = set()
    for match in _OPTIONAL_PACKAGE.finditer(page_text):
        number = int(match.group(1))
        if number <= 0 or number in seen_packages:
            continue
        seen_packages.add(number)
        name = match.group(2).strip()[:100] or f"Optional Package {number}"
        sections.append(Section(type=OPTIONAL_PACKAGE, selected=False, number=number, name=name))

    match = _ADDENDUM_NUMBER.search(page_text)
    if match and int(match.group(1)) > 0:
        number = int(match.group(1))
        sections.append(Section(type=ADDENDUM, selected=True, number=number, name=f"Addendum #{number}"))

    logger.debug(f"Detected {len(sections)} sections in contract email (has_table={has_table})")
    return sections, has_table
