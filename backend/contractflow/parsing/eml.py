"""EML parser for signed contract emails.

Contract emails carry the order items table in their HTML body and the
job-site location block in their plain-text body. Both are extracted here;
attachments are ignored.
"""

import email
import email.policy
import logging
from dataclasses import dataclass
from datetime import datetime
from email.message import EmailMessage
from email.utils import parsedate_to_datetime
from typing import Optional, Union

logger = logging.getLogger(__name__)


class ContractParseError(Exception):
    """Raised when a contract email or contract page cannot be parsed."""
    pass


@dataclass
class ParsedEmail:
    """Bodies and headers of a parsed contract email.

    Attributes:
        html: Concatenated text/html parts ("" when absent)
        text: Concatenated text/plain parts ("" when absent)
        subject: Subject header
        from_address: From header as sent
        date: Parsed Date header
    """
    html: str
    text: str
    subject: Optional[str] = None
    from_address: Optional[str] = None
    date: Optional[datetime] = None


def _header(msg: EmailMessage, name: str) -> Optional[str]:
    value = msg.get(name)
    return str(value) if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.warning(f"Unparseable Date header in contract email: {value!r}")
        return None


def _collect_bodies(msg: EmailMessage) -> tuple[str, str]:
    html_parts: list[str] = []
    text_parts: list[str] = []

    for part in msg.walk():
        if part.is_multipart():
            continue
        if part.get_content_disposition() == "attachment":
            continue

        content_type = part.get_content_type()
        if content_type not in ("text/html", "text/plain"):
            continue

        try:
            content = part.get_content()
        except (LookupError, UnicodeDecodeError):
            payload = part.get_payload(decode=True) or b""
            content = payload.decode("utf-8", errors="replace")

        if content_type == "text/html":
            html_parts.append(content)
        else:
            text_parts.append(content)

    return "".join(html_parts), "".join(text_parts)


def parse_eml(content: Union[bytes, str]) -> ParsedEmail:
    """Parse an .eml file into its HTML and text bodies.

    Args:
        content: Raw .eml bytes or an already decoded string

    Returns:
        ParsedEmail: Bodies plus subject, sender and date

    Raises:
        ContractParseError: If the message cannot be parsed
    """
    try:
        if isinstance(content, str):
            msg = email.message_from_string(content, policy=email.policy.default)
        else:
            msg = email.message_from_bytes(content, policy=email.policy.default)

        html, text = _collect_bodies(msg)
        parsed = ParsedEmail(
            html=html,
            text=text,
            subject=_header(msg, "Subject"),
            from_address=_header(msg, "From"),
            date=_parse_date(_header(msg, "Date")),
        )
    except Exception as e:
        logger.error(f"Failed to parse EML file: {e}")
        raise ContractParseError(f"Failed to parse EML file: {e}") from e

    logger.debug(
        f"Parsed contract email subject={parsed.subject!r} "
        f"html_chars={len(parsed.html)} text_chars={len(parsed.text)}"
    )
    return parsed
