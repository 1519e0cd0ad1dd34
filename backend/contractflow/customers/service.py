"""Customer status, alerts and trash lifecycle.

A customer stays in ``pending_updates`` until every order is completed and
every invoice is fully paid. Deleting a customer only moves it to the
trash; the cleanup job purges it with all dependent rows once the
retention window has passed.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ..config import get_settings
from ..models.base import utcnow
from ..models.change_history import AlertAcknowledgment, ChangeHistory
from ..models.customer import Customer
from ..models.invoice import Invoice
from ..models.order import Order, OrderItem
from ..models.order_approval import OrderApproval, OrderApprovalItem
from ..parsing.validation import TotalValidation, validate_order_items_total

logger = logging.getLogger(__name__)

PENDING_UPDATES = "pending_updates"
COMPLETED = "completed"
CUSTOMER_STATUSES = (PENDING_UPDATES, COMPLETED)

DEFAULT_STAGE = "waiting_for_permit"
ORDER_ITEMS_MISMATCH = "order_items_mismatch"


def open_balance(invoice: Invoice) -> Decimal:
    """Amount still owed on an invoice (amount minus payments received)."""
    return Decimal(invoice.invoice_amount or 0) - Decimal(invoice.payments_received or 0)


def calculate_customer_status(db: Session, customer: Customer) -> str:
    """Derive the customer status from its orders and invoices.

    Returns:
        str: "completed" when all orders are completed and no invoice has an
        open balance, otherwise "pending_updates"
    """
    orders = db.query(Order).filter(Order.customer_id == customer.id).all()
    if not orders:
        return PENDING_UPDATES

    if any(order.status != COMPLETED for order in orders):
        return PENDING_UPDATES

    invoices = (
        db.query(Invoice)
        .filter(Invoice.order_id.in_([order.id for order in orders]))
        .all()
    )
    if any(open_balance(invoice) > 0 for invoice in invoices):
        return PENDING_UPDATES

    return COMPLETED


def update_customer_status(db: Session, customer: Customer) -> str:
    """Recalculate and store the customer status. Returns the new status."""
    new_status = calculate_customer_status(db, customer)
    if customer.status != new_status:
        logger.info(f"Customer {customer.id} status {customer.status} -> {new_status}")
        customer.status = new_status
    customer.updated_at = utcnow()
    db.flush()
    return new_status


def recalculate_customer_status_for_order(db: Session, order_id: UUID) -> Optional[str]:
    """Refresh the status of the customer owning an order.

    Called after order item and invoice changes. Unknown orders are ignored.
    """
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        return None
    return update_customer_status(db, order.customer)


def latest_order(customer: Customer) -> Optional[Order]:
    # Customer.orders is ordered by created_at
    return customer.orders[-1] if customer.orders else None


def customer_stage(customer: Customer) -> str:
    """Stage of the most recent order; orders without a stage count as waiting."""
    order = latest_order(customer)
    return (order.stage if order else None) or DEFAULT_STAGE


def validate_order(order: Order) -> TotalValidation:
    """Check that the stored items of an order add up to its grand total."""
    return validate_order_items_total(
        [item.to_dict() for item in order.items],
        float(order.order_grand_total or 0),
    )


def acknowledged_alert_types(db: Session, customer_id: UUID) -> set:
    rows = (
        db.query(AlertAcknowledgment.alert_type)
        .filter(AlertAcknowledgment.customer_id == customer_id)
        .all()
    )
    return {row[0] for row in rows}


def validation_issues(
    customer: Customer, acknowledged: Iterable[str], orders: Optional[Iterable[Order]] = None
) -> List[str]:
    """Unacknowledged item total mismatches, one message per order.

    Only ``orders`` are checked when given, otherwise every order of the
    customer.
    """
    if ORDER_ITEMS_MISMATCH in set(acknowledged):
        return []

    issues = []
    for order in customer.orders if orders is None else orders:
        if not validate_order(order).is_valid:
            issues.append(f"Order {order.order_no}: Items total mismatch")
    return issues


def invoicing_status(db: Session, customer: Customer) -> dict:
    """Open balance and invoice count over all orders of a customer."""
    invoices = (
        db.query(Invoice)
        .join(Order, Invoice.order_id == Order.id)
        .filter(Order.customer_id == customer.id)
        .all()
    )
    balance = sum((open_balance(inv) for inv in invoices if not inv.exclude), Decimal("0"))
    return {
        "status": customer.status,
        "open_balance": float(balance),
        "invoice_count": len(invoices),
    }


def soft_delete_customer(customer: Customer) -> None:
    now = utcnow()
    customer.deleted_at = now
    customer.updated_at = now


def restore_customer(customer: Customer) -> None:
    customer.deleted_at = None
    customer.updated_at = utcnow()


def purge_customer(db: Session, customer: Customer) -> None:
    """Delete a customer and everything hanging off it.

    Rows are removed children first so the foreign keys hold on PostgreSQL:
    approval items, approvals, alert acknowledgments, invoices, order items,
    change history, orders and finally the customer.
    """
    customer_id = customer.id
    order_ids = [row[0] for row in db.query(Order.id).filter(Order.customer_id == customer_id).all()]
    approval_ids = [
        row[0]
        for row in db.query(OrderApproval.id).filter(OrderApproval.customer_id == customer_id).all()
    ]

    if approval_ids:
        db.query(OrderApprovalItem).filter(
            OrderApprovalItem.order_approval_id.in_(approval_ids)
        ).delete(synchronize_session=False)
        db.query(OrderApproval).filter(OrderApproval.id.in_(approval_ids)).delete(
            synchronize_session=False
        )

    db.query(AlertAcknowledgment).filter(AlertAcknowledgment.customer_id == customer_id).delete(
        synchronize_session=False
    )

    history_filter = [ChangeHistory.customer_id == customer_id]
    if order_ids:
        db.query(Invoice).filter(Invoice.order_id.in_(order_ids)).delete(synchronize_session=False)
        db.query(OrderItem).filter(OrderItem.order_id.in_(order_ids)).delete(synchronize_session=False)
        history_filter.append(ChangeHistory.order_id.in_(order_ids))

    db.query(ChangeHistory).filter(or_(*history_filter)).delete(synchronize_session=False)
    db.query(Order).filter(Order.customer_id == customer_id).delete(synchronize_session=False)
    db.query(Customer).filter(Customer.id == customer_id).delete(synchronize_session=False)
    db.expire_all()

    logger.info(f"Permanently deleted customer {customer_id} with {len(order_ids)} orders")


def purge_expired_trash(db: Session, org_id: Optional[UUID] = None, retention_days: Optional[int] = None) -> List[str]:
    """Permanently delete customers trashed longer than the retention window.

    Args:
        db: Database session
        org_id: Restrict to one organization; None purges all organizations
        retention_days: Override for TRASH_RETENTION_DAYS

    Returns:
        List[str]: Ids of the purged customers
    """
    if retention_days is None:
        retention_days = get_settings().TRASH_RETENTION_DAYS
    cutoff = utcnow() - timedelta(days=retention_days)

    query = db.query(Customer).filter(
        Customer.deleted_at.isnot(None),
        Customer.deleted_at < cutoff,
    )
    if org_id is not None:
        query = query.filter(Customer.org_id == org_id)

    deleted_ids = []
    for customer in query.all():
        customer_id = str(customer.id)
        purge_customer(db, customer)
        deleted_ids.append(customer_id)

    logger.info(f"Trash cleanup removed {len(deleted_ids)} customers older than {retention_days} days")
    return deleted_ids
