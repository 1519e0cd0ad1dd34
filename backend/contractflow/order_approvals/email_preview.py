"""Order approval confirmation email.

Builds the HTML confirmation and the payload a webhook would receive.
Nothing is sent from here; the preview endpoint returns the payload as is.
"""

import html
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional
from zoneinfo import ZoneInfo

from ..models.order_approval import OrderApproval

CONSENT_REMINDER = (
    "When you approved this order, you acknowledged and agreed that your approval decision, "
    "your organization name, and the approval timestamp are permanently recorded; that this "
    "approval is a binding business, legal, and compliance record; that you had reviewed the "
    "product/service descriptions, quantities, rates, and amounts; and that you were authorized "
    "to approve on behalf of your organization."
)

DISPLAY_TIMEZONE = ZoneInfo("America/Los_Angeles")
PLACEHOLDER = "\u2014"

_CELL = "border:1px solid #dddddd; padding:10px 8px; font-family:Arial,sans-serif; font-size:13px; color:#232F47;"
_HEAD = "border:1px solid #232F47; padding:10px 8px; color:#fff; font-family:Arial,sans-serif; font-size:13px;"
_LABEL = "padding:6px 0; width:210px; font-family:Arial,sans-serif; font-size:13px; font-weight:bold; color:#232F47;"
_VALUE = "padding:6px 0; font-family:Arial,sans-serif; font-size:13px; color:#232F47;"
_TITLE = "padding:0 35px 12px; font-family:Arial,sans-serif; font-size:18px; line-height:24px; color:#D79A29;"
_TEXT = "padding:0 35px 20px; font-family:Arial,sans-serif; font-size:13px; line-height:22px; color:#232F47;"


@dataclass
class EmailItem:
    product_service: str
    qty: float
    rate: float
    amount: float


@dataclass
class OrderApprovalEmail:
    html_email: str
    subject: str
    reference_no: str
    approval_id: str
    vendor_email: str
    approved_at: str
    trigger_source: str = "manual_button"
    test_mode: bool = True

    def to_dict(self) -> dict:
        return asdict(self)


def format_currency(value: float) -> str:
    """USD with thousands separators and 2 decimals: -$1,234.50"""
    sign = "-" if value < 0 else ""
    return f"{sign}${abs(value):,.2f}"


def format_qty(value: float) -> str:
    return f"{value:.2f}"


def format_timestamp(value: datetime) -> str:
    """Pacific time, e.g. "March 04, 2025 at 2:05 PM PST"."""
    local = value.astimezone(DISPLAY_TIMEZONE)
    hour = local.hour % 12 or 12
    return f"{local:%B %d, %Y} at {hour}:{local:%M %p} {local.tzname()}"


def _number(value) -> Optional[float]:
    if value is None:
        return None
    try:
        return float(Decimal(str(value)))
    except (InvalidOperation, ValueError):
        return None


def email_items(approval: OrderApproval) -> List[EmailItem]:
    """Snapshot rows of an approval; a missing amount falls back to qty x rate."""
    items = []
    for item in approval.items:
        qty = _number(item.qty) or 0.0
        rate = _number(item.rate) or 0.0
        amount = _number(item.amount)
        items.append(EmailItem(
            product_service=(item.product_service or "").strip() or "Untitled Item",
            qty=qty,
            rate=rate,
            amount=qty * rate if amount is None else amount,
        ))
    return items


def _detail_row(label: str, value: str) -> str:
    return (
        f'<tr><td style="{_LABEL}">{html.escape(label)}</td>'
        f'<td style="{_VALUE}">{html.escape(value)}</td></tr>'
    )


def render_email_html(
    reference_no: str,
    customer_name: str,
    project_manager: str,
    vendor_contact: str,
    vendor_phone: str,
    vendor_email: str,
    approval_timestamp: str,
    items: List[EmailItem],
) -> str:
    """Render the confirmation email; every value is HTML escaped."""
    rows = []
    for index, item in enumerate(items):
        background = "background-color:#f9f9f9;" if index % 2 == 1 else ""
        rows.append(
            f'<tr style="{background}">'
            f'<td style="{_CELL} word-wrap:break-word;">{html.escape(item.product_service)}</td>'
            f'<td style="{_CELL} text-align:right;">{html.escape(format_qty(item.qty))}</td>'
            f'<td style="{_CELL} text-align:right;">{html.escape(format_currency(item.rate))}</td>'
            f'<td style="{_CELL} text-align:right;">{html.escape(format_currency(item.amount))}</td>'
            "</tr>"
        )

    details = "".join([
        _detail_row("Reference No:", reference_no),
        _detail_row("Customer Name:", customer_name),
        _detail_row("Project Manager:", project_manager),
        _detail_row("Vendor Contact Person / Name:", vendor_contact),
        _detail_row("Vendor Contact Number:", vendor_phone),
        _detail_row("Vendor Email:", vendor_email),
        _detail_row("Vendor Approval Timestamp:", approval_timestamp),
    ])
    body_rows = "".join(rows)

    return f"""<!DOCTYPE html>
<html>
<head>
<meta http-equiv="Content-Type" content="text/html; charset=utf-8"/>
<meta content="width=device-width, initial-scale=1.0" name="viewport">
</head>
<body bgcolor="#fff" style="margin:0; padding:0; background-color:#fff;">
<table width="600" align="center" border="0" cellpadding="0" cellspacing="0" style="margin:0 auto; width:600px;">
<tr><td style="padding:26px 35px 8px; font-family:Arial,sans-serif; font-size:28px; line-height:34px; color:#D79A29;">Order Approval Confirmation</td></tr>
<tr><td style="{_TEXT}">This email serves as an official copy of approved vendor order items for your records.</td></tr>
<tr><td style="padding:0 35px 20px;"><table width="100%" border="0" cellpadding="0" cellspacing="0">{details}</table></td></tr>
<tr><td style="{_TITLE}">Acknowledgement and consent</td></tr>
<tr><td style="{_TEXT}">{html.escape(CONSENT_REMINDER)}</td></tr>
<tr><td style="{_TITLE}">Order Items</td></tr>
<tr><td style="padding:0 35px 32px;">
<table width="100%" border="0" cellpadding="0" cellspacing="0" style="width:100%; border-collapse:collapse; table-layout:fixed;">
<thead><tr style="background:#232F47;">
<th style="{_HEAD} text-align:left; width:45%;">PRODUCT/SERVICE</th>
<th style="{_HEAD} text-align:right; width:15%;">QTY</th>
<th style="{_HEAD} text-align:right; width:20%;">RATE</th>
<th style="{_HEAD} text-align:right; width:20%;">AMOUNT</th>
</tr></thead>
<tbody>{body_rows}</tbody>
</table>
</td></tr>
<tr><td style="padding:28px 30px; background:#232F47; color:#ffffff; font-family:Arial,sans-serif; font-size:13px; line-height:22px; text-align:center;">This is an automated copy of the approved order. Retain for your records.</td></tr>
</table>
</body>
</html>"""


def build_email_payload(approval: OrderApproval, now: Optional[datetime] = None) -> OrderApprovalEmail:
    """Confirmation email payload for an approval.

    The approval timestamp is the vendor's approval time, else the last
    update of the record.

    Args:
        approval: Approval with vendor, customer, creator and items loaded
        now: Fallback time when the record has no timestamps

    Returns:
        OrderApprovalEmail: HTML, subject and webhook metadata
    """
    vendor = approval.vendor
    customer = approval.customer
    creator = approval.creator

    approved_at = approval.vendor_approved_at or approval.updated_at or now or datetime.now(DISPLAY_TIMEZONE)
    if approved_at.tzinfo is None:
        approved_at = approved_at.replace(tzinfo=timezone.utc)

    reference_no = approval.reference_no or PLACEHOLDER
    vendor_name = (vendor.name if vendor else None) or PLACEHOLDER
    contact_person = (vendor.contact_person if vendor else None) or PLACEHOLDER
    vendor_email = (vendor.email if vendor else None) or ""

    html_email = render_email_html(
        reference_no=reference_no,
        customer_name=(customer.client_name if customer else None) or PLACEHOLDER,
        project_manager=(creator.email if creator else None) or PLACEHOLDER,
        vendor_contact=f"{contact_person} / {vendor_name}",
        vendor_phone=(vendor.phone if vendor else None) or PLACEHOLDER,
        vendor_email=vendor_email,
        approval_timestamp=format_timestamp(approved_at),
        items=email_items(approval),
    )

    return OrderApprovalEmail(
        html_email=html_email,
        subject=f"Order Approval Confirmation - {reference_no}",
        reference_no=reference_no,
        approval_id=str(approval.id),
        vendor_email=vendor_email,
        approved_at=approved_at.isoformat(),
    )
