"""Order item editing, project status and invoice bookkeeping.

Routers call these helpers inside the request transaction; every helper
flushes but never commits.
"""

import logging
from decimal import Decimal
from typing import List, Optional

from sqlalchemy.orm import Session

from ..changes.service import (
    log_change,
    log_customer_edit,
    log_if_changed,
    log_invoice_change,
    log_order_edit,
    log_stage_update,
)
from ..contracts.service import ITEM_FIELDS, apply_item_fields, to_decimal
from ..customers.service import COMPLETED, PENDING_UPDATES, update_customer_status
from ..models.base import utcnow
from ..models.change_history import ChangeType
from ..models.invoice import Invoice
from ..models.order import Order, OrderItem
from ..models.user import User
from ..parsing.table_extractor import ITEM
from . import billing
from .schemas import DATE_PATTERN, STAGES, InvoiceCreate, InvoiceUpdate, OrderItemIn, ProjectStatusUpdate

logger = logging.getLogger(__name__)

PROJECT_DATE_FIELDS = ("contract_date", "first_build_invoice_date", "project_start_date", "project_end_date")

INVOICE_FIELDS = ("invoice_number", "invoice_date", "invoice_amount", "payments_received", "exclude")

_TRACKED_ITEM_FIELDS = ("product_service",) + ITEM_FIELDS


class ProjectStatusError(Exception):
    """Raised for an invalid stage or project date"""
    pass


def with_completed_amount(item: OrderItemIn) -> OrderItemIn:
    """Derive completed_amount for item rows with progress and an amount."""
    if item.type != ITEM:
        return item
    derived = billing.completed_amount(item.progress_overall_pct, item.amount)
    if derived is None:
        return item
    return item.model_copy(update={"completed_amount": round(derived, 2)})


def _row_changes(order_item: OrderItem) -> dict:
    return {field: getattr(order_item, field) for field in _TRACKED_ITEM_FIELDS}


def update_order_items(db: Session, user: User, order: Order, items: List[OrderItemIn]) -> Order:
    """Replace the item rows of an order.

    Rows submitted with the id of an existing row update that row in place,
    so invoice links to it survive. Other existing rows are deleted and rows
    without a known id are inserted.

    Args:
        db: Database session
        user: Editing user
        order: Order whose rows are replaced
        items: Rows in display order; row_index follows list order

    Returns:
        Order: The updated order
    """
    existing = {str(row.id): row for row in order.items}
    kept = set()
    new_rows = []
    added = 0

    for index, submitted in enumerate(items):
        submitted = with_completed_amount(submitted)
        row = existing.get(submitted.id) if submitted.id else None
        if row is not None and submitted.id not in kept:
            before = _row_changes(row)
            apply_item_fields(row, submitted, index)
            for field, old_value in before.items():
                log_if_changed(
                    db, user, ChangeType.CELL_EDIT, field, old_value, getattr(row, field),
                    order_id=order.id,
                    customer_id=order.customer_id,
                    order_item_id=row.id,
                    row_index=index,
                )
            kept.add(submitted.id)
        else:
            row = apply_item_fields(OrderItem(org_id=order.org_id), submitted, index)
            added += 1
        new_rows.append(row)

    removed = len(existing) - len(kept)
    order.items = new_rows
    order.updated_by = user.id
    order.updated_at = utcnow()
    db.flush()

    log_change(
        db, user, ChangeType.ROW_UPDATE, "items",
        f"{len(existing)} rows",
        f"{len(new_rows)} rows ({added} added, {removed} removed)",
        order_id=order.id,
        customer_id=order.customer_id,
    )
    update_customer_status(db, order.customer)
    logger.info(f"Order {order.order_no}: saved {len(new_rows)} item rows")
    return order


def update_project_status(db: Session, user: User, order: Order, data: ProjectStatusUpdate) -> Order:
    """Apply stage and project date changes.

    Moving the order to ``completed`` completes the order itself and
    recalculates the customer status, which stays pending while invoices
    are open. Leaving ``completed`` puts the order back to pending_updates.

    Raises:
        ProjectStatusError: If a date is not MM/DD/YYYY or the stage is unknown
    """
    changes = data.model_dump(exclude_unset=True)

    for field in PROJECT_DATE_FIELDS:
        value = changes.get(field)
        if value and not DATE_PATTERN.match(value):
            raise ProjectStatusError(f"Invalid {field} format. Expected MM/DD/YYYY")

    stage = changes.get("stage")
    if "stage" in changes and stage and stage not in STAGES:
        raise ProjectStatusError(f"Invalid stage value. Must be one of: {', '.join(STAGES)}")

    for field in PROJECT_DATE_FIELDS:
        if field not in changes:
            continue
        value = changes[field] or None
        log_order_edit(db, user, field, getattr(order, field), value, order.id, order.customer_id)
        setattr(order, field, value)

    if "stage" in changes:
        stage = stage or None
        if stage != order.stage:
            log_stage_update(db, user, order.stage, stage, order.id, order.customer_id)
            order.stage = stage

    order.updated_by = user.id
    order.updated_at = utcnow()
    db.flush()

    # the order is completed exactly while its stage is completed
    if order.stage == COMPLETED or order.status == COMPLETED:
        customer = order.customer
        new_order_status = COMPLETED if order.stage == COMPLETED else PENDING_UPDATES
        if order.status != new_order_status:
            log_order_edit(db, user, "status", order.status, new_order_status, order.id, order.customer_id)
            order.status = new_order_status
        old_status = customer.status
        new_status = update_customer_status(db, customer)
        log_customer_edit(db, user, "status", old_status, new_status, customer.id)

    return order


def _invoice_label(invoice: Invoice) -> str:
    return f"Invoice {invoice.invoice_number or invoice.id}"


def create_invoice(db: Session, user: User, order: Order, data: InvoiceCreate) -> Invoice:
    """Add an invoice in the next free workbook row.

    Raises:
        InvoiceSlotError: If all invoice rows are taken
    """
    invoice = Invoice(
        org_id=order.org_id,
        order_id=order.id,
        row_index=billing.next_invoice_row(order.invoices),
        invoice_number=data.invoice_number or None,
        invoice_date=data.invoice_date,
        invoice_amount=to_decimal(data.invoice_amount),
        payments_received=to_decimal(data.payments_received) or Decimal("0"),
        exclude=data.exclude,
    )
    order.invoices.append(invoice)
    db.flush()

    log_invoice_change(
        db, user, ChangeType.ROW_ADD, "invoice", None,
        f"Invoice {invoice.invoice_number or 'New'}",
        order.id, order.customer_id, row_index=invoice.row_index,
    )
    update_customer_status(db, order.customer)
    return invoice


def _requested_links(data: InvoiceUpdate) -> Optional[List[dict]]:
    if data.linked_line_items is not None:
        return [link.model_dump() for link in data.linked_line_items]
    if data.linked_line_item_ids is not None:
        return [{"order_item_id": item_id, "this_bill_amount": None} for item_id in data.linked_line_item_ids]
    return None


def update_invoice(db: Session, user: User, order: Order, invoice: Invoice, data: InvoiceUpdate) -> Invoice:
    """Update invoice fields and item links.

    When links are given the invoice amount becomes the sum of the linked
    amounts and overrides any invoice_amount in the same request.

    Raises:
        LineItemLinkError: If the requested links are invalid
    """
    changes = data.model_dump(exclude_unset=True, include=set(INVOICE_FIELDS))
    requested = _requested_links(data)

    if requested is not None:
        if requested:
            links = billing.build_links(order, invoice, requested)
            invoice.linked_line_items = links
            changes["invoice_amount"] = sum(link["this_bill_amount"] for link in links)
        else:
            invoice.linked_line_items = None

    before = {field: getattr(invoice, field) for field in INVOICE_FIELDS}
    for field, value in changes.items():
        if field in ("invoice_amount", "payments_received"):
            value = to_decimal(value)
            if field == "payments_received" and value is None:
                value = Decimal("0")
        elif field == "exclude":
            value = bool(value)
        elif field == "invoice_number":
            value = value or None
        setattr(invoice, field, value)

    invoice.updated_at = utcnow()
    db.flush()

    for field, old_value in before.items():
        log_if_changed(
            db, user, ChangeType.ROW_UPDATE, field, old_value, getattr(invoice, field),
            order_id=order.id,
            customer_id=order.customer_id,
            row_index=invoice.row_index,
        )

    update_customer_status(db, order.customer)
    return invoice


def delete_invoice(db: Session, user: User, order: Order, invoice: Invoice) -> None:
    label = _invoice_label(invoice)
    row_index = invoice.row_index
    order.invoices.remove(invoice)
    db.flush()

    log_invoice_change(
        db, user, ChangeType.ROW_DELETE, "invoice", label, None,
        order.id, order.customer_id, row_index=row_index,
    )
    update_customer_status(db, order.customer)
