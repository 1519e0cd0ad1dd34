"""Spreadsheet filenames derived from the contract location."""

import re
import time

from .table_extractor import Location

MAX_STEM_LENGTH = 247


def format_client_name(client_name: str) -> str:
    """ "Ely Przybyl" -> "E. Przybyl"; single names are kept as-is."""
    parts = (client_name or "").split()
    if not parts:
        return ""
    if len(parts) == 1:
        return parts[0]
    return f"{parts[0][0].upper()}. {parts[-1]}"


def sanitize_filename(filename: str) -> str:
    """Remove characters invalid on common filesystems and cap the length."""
    sanitized = re.sub(r'[<>:"/\\|?*]', "", filename)
    sanitized = re.sub(r"^[\s.]+|[\s.]+$", "", sanitized)
    sanitized = re.sub(r"\s+", " ", sanitized)
    if len(sanitized) > MAX_STEM_LENGTH:
        sanitized = re.sub(r"[\s-]+$", "", sanitized[:MAX_STEM_LENGTH])
    return sanitized


def generate_spreadsheet_filename(location: Location) -> str:
    """Filename such as ``E. Przybyl - #9682 - 1041 Temple terrace.xlsx``.

    Falls back to ``Contract - #{order_no}.xlsx`` and finally to a
    timestamped name when the location carries none of the parts.
    """
    parts = []
    client = format_client_name(location.client_name)
    if client:
        parts.append(client)
    if location.dbx_customer_id:
        parts.append(f"#{location.dbx_customer_id}")
    if location.street_address:
        parts.append(location.street_address)

    if not parts:
        if location.order_no:
            return sanitize_filename(f"Contract - #{location.order_no}.xlsx")
        return f"contract-{int(time.time() * 1000)}.xlsx"

    return f"{sanitize_filename(' - '.join(parts))}.xlsx"
