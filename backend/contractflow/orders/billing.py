"""Progress billing calculations.

Percentages are on a 0-100 scale. An invoice can be linked to order item
rows; each link carries the amount billed against that row, and the links
of all non-excluded invoices may never bill more than the row's amount.
"""

from dataclasses import dataclass, asdict
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Dict, Iterable, List, Optional

from ..models.invoice import Invoice
from ..models.order import Order, OrderItem
from ..parsing.table_extractor import ITEM

FIRST_INVOICE_ROW = 354
LAST_INVOICE_ROW = 391
CENT = Decimal("0.01")


class LineItemLinkError(Exception):
    """Raised when order items cannot be linked to an invoice.

    Attributes:
        errors: One {"order_item_id", "reason"} entry per rejected item
    """

    def __init__(self, message: str, errors: Optional[List[dict]] = None):
        super().__init__(message)
        self.errors = errors or []


class InvoiceSlotError(Exception):
    """Raised when every invoice row of the order is taken"""
    pass


def _number(value: Any) -> float:
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _cents(value: Any) -> Decimal:
    """Money value rounded to cents; blanks and garbage count as 0."""
    if value is None or value == "":
        return Decimal("0.00")
    try:
        return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        return Decimal("0.00")


def completed_amount(progress_overall_pct: Any, amount: Any) -> Optional[float]:
    """pct / 100 x amount, or None when either side is not positive."""
    pct = _number(progress_overall_pct)
    value = _number(amount)
    if pct > 0 and value > 0:
        return pct / 100 * value
    return None


def calculate_this_bill(item: OrderItem) -> float:
    """Amount billable now for an item row.

    Uses the stored this_bill when set, otherwise
    (overall% - previously invoiced%) / 100 x amount when that is positive.
    """
    this_bill = _number(item.this_bill)
    if this_bill:
        return this_bill

    amount = _number(item.amount)
    new_pct = _number(item.progress_overall_pct) - _number(item.previously_invoiced_pct)
    if new_pct > 0 and amount > 0:
        return new_pct / 100 * amount
    return 0.0


@dataclass
class LinkCheck:
    valid: bool
    error: Optional[str] = None


def validate_item_for_linking_with_amount(
    item: OrderItem,
    invoice_amount: float,
    existing_invoice_amounts: float = 0.0,
) -> LinkCheck:
    """Check whether ``invoice_amount`` may be billed against an item.

    Args:
        item: Order item row
        invoice_amount: Amount this invoice would bill for the item
        existing_invoice_amounts: Amount other invoices already bill for it

    Returns:
        LinkCheck: valid flag and the reason when invalid
    """
    if _number(item.progress_overall_pct) <= 0:
        return LinkCheck(False, "Item must have Progress Overall % greater than 0")

    if invoice_amount <= 0:
        return LinkCheck(False, "Invoice amount must be greater than 0")

    billed = _cents(existing_invoice_amounts) + _cents(invoice_amount)
    if billed > _cents(item.amount):
        remaining = _cents(item.amount) - _cents(existing_invoice_amounts)
        return LinkCheck(False, f"Would exceed item amount. Remaining billable: ${remaining:.2f}")

    return LinkCheck(True)


def linked_amounts_by_item(invoices: Iterable[Invoice], skip_invoice_id=None) -> Dict[str, float]:
    """Sum of linked amounts per order item over non-excluded invoices.

    Amounts are added as cents so a split that bills an item exactly adds
    up to the item amount.
    """
    totals: Dict[str, Decimal] = {}
    for invoice in invoices:
        if invoice.exclude or invoice.id == skip_invoice_id:
            continue
        for link in invoice.linked_line_items or []:
            if not isinstance(link, dict) or "order_item_id" not in link:
                continue
            item_id = str(link["order_item_id"])
            totals[item_id] = totals.get(item_id, Decimal("0.00")) + _cents(link.get("this_bill_amount"))
    return {item_id: float(total) for item_id, total in totals.items()}


def build_links(
    order: Order,
    invoice: Invoice,
    requested: List[dict],
) -> List[dict]:
    """Validate requested links and return the JSON stored on the invoice.

    Args:
        order: Order owning the invoice
        invoice: Invoice being linked
        requested: [{"order_item_id", "this_bill_amount" or None}]; a missing
            amount bills the item's calculated this_bill

    Returns:
        List[dict]: Links as stored in Invoice.linked_line_items

    Raises:
        LineItemLinkError: If no requested id is an item row of the order or
            any item fails validation
    """
    items = {str(item.id): item for item in order.items if item.item_type == ITEM}
    existing = linked_amounts_by_item(order.invoices, skip_invoice_id=invoice.id)

    links = []
    errors = []
    for entry in requested:
        item_id = str(entry["order_item_id"])
        item = items.get(item_id)
        if item is None:
            continue

        amount = entry.get("this_bill_amount")
        amount = calculate_this_bill(item) if amount is None else _number(amount)

        check = validate_item_for_linking_with_amount(item, amount, existing.get(item_id, 0.0))
        if not check.valid:
            errors.append({"order_item_id": item_id, "reason": check.error})
            continue
        links.append({"order_item_id": item_id, "this_bill_amount": round(amount, 2)})

    if not links and not errors:
        raise LineItemLinkError(
            f"None of the provided {len(requested)} item ID(s) were found or are valid for linking"
        )
    if errors:
        raise LineItemLinkError(f"Validation failed for {len(errors)} item(s)", errors)

    return links


def linkable_items(order: Order, invoice: Invoice) -> List[dict]:
    """Item rows with their billing state relative to one invoice."""
    existing = linked_amounts_by_item(order.invoices, skip_invoice_id=invoice.id)
    linked = {
        str(link["order_item_id"]): _number(link.get("this_bill_amount"))
        for link in invoice.linked_line_items or []
        if isinstance(link, dict) and "order_item_id" in link
    }

    rows = []
    for item in order.items:
        if item.item_type != ITEM:
            continue
        item_id = str(item.id)
        this_bill = calculate_this_bill(item)
        existing_invoiced = existing.get(item_id, 0.0)
        check = validate_item_for_linking_with_amount(item, this_bill, existing_invoiced)
        rows.append({
            "order_item_id": item_id,
            "row_index": item.row_index,
            "product_service": item.product_service,
            "amount": _number(item.amount),
            "progress_overall_pct": _number(item.progress_overall_pct),
            "previously_invoiced_pct": _number(item.previously_invoiced_pct),
            "this_bill": this_bill,
            "existing_invoiced": existing_invoiced,
            "remaining_billable": float(_cents(item.amount) - _cents(existing_invoiced)),
            "is_linked": item_id in linked,
            "linked_amount": linked.get(item_id),
            "can_link": check.valid,
            "reason": check.error,
        })
    return rows


def next_invoice_row(invoices: Iterable[Invoice]) -> int:
    """First free invoice row in 354..391.

    Raises:
        InvoiceSlotError: If all rows are taken
    """
    taken = {invoice.row_index for invoice in invoices if invoice.row_index is not None}
    for row in range(FIRST_INVOICE_ROW, LAST_INVOICE_ROW + 1):
        if row not in taken:
            return row
    raise InvoiceSlotError("Maximum number of invoices reached")


@dataclass
class InvoiceSummary:
    original_contract_price: float
    total_completed: float
    balance_remaining: float
    less_payments_received: float
    total_due_upon_receipt: float
    percent_completed: float

    def to_dict(self) -> dict:
        return asdict(self)


def invoice_summary(order: Order) -> InvoiceSummary:
    """Progress billing totals of an order.

    Completed work is derived from the item percentages; payments come from
    the non-excluded invoices and are reported as a negative number.
    """
    original = _number(order.order_grand_total)

    total_completed = 0.0
    for item in order.items:
        if item.item_type == ITEM:
            total_completed += completed_amount(item.progress_overall_pct, item.amount) or 0.0

    payments = sum(
        (Decimal(invoice.payments_received or 0) for invoice in order.invoices if not invoice.exclude),
        Decimal("0"),
    )
    less_payments = -float(payments)

    return InvoiceSummary(
        original_contract_price=original,
        total_completed=total_completed,
        balance_remaining=original - total_completed,
        less_payments_received=less_payments,
        total_due_upon_receipt=total_completed + less_payments,
        percent_completed=(total_completed / original * 100) if original > 0 else 0.0,
    )
