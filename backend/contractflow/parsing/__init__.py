"""Contract parsing: EML emails, ProDBX contract pages and addendums.

Turns signed contract emails and linked contract pages into a normalized
list of order items (main categories, subcategories and line items) plus
the job-site location, and renders that list into a spreadsheet.
"""

from .eml import ParsedEmail, parse_eml, ContractParseError
from .table_extractor import Location, OrderItem, extract_location, extract_order_items
from .addendum import (
    AddendumData,
    AddendumFetchError,
    validate_addendum_url,
    extract_addendum_number,
    fetch_addendum_html,
    parse_addendum,
    parse_original_contract,
    fetch_and_parse_addendum,
    fetch_and_parse_addendums,
)
from .links import ContractLinks, extract_contract_links
from .sections import Section, detect_eml_sections
from .validation import (
    TotalValidation,
    calculate_order_items_total,
    validate_order_items_total,
)
from .filename import generate_spreadsheet_filename, sanitize_filename
from .spreadsheet import generate_spreadsheet

__all__ = [
    "ParsedEmail",
    "parse_eml",
    "ContractParseError",
    "Location",
    "OrderItem",
    "extract_location",
    "extract_order_items",
    "AddendumData",
    "AddendumFetchError",
    "validate_addendum_url",
    "extract_addendum_number",
    "fetch_addendum_html",
    "parse_addendum",
    "parse_original_contract",
    "fetch_and_parse_addendum",
    "fetch_and_parse_addendums",
    "ContractLinks",
    "extract_contract_links",
    "Section",
    "detect_eml_sections",
    "TotalValidation",
    "calculate_order_items_total",
    "validate_order_items_total",
    "generate_spreadsheet_filename",
    "sanitize_filename",
    "generate_spreadsheet",
]
