"""Order items, project status and invoice endpoints"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session, joinedload, selectinload

from ..database import get_db
from ..dependencies import TenantQuery
from ..auth.dependencies import ContractEditor, StaffUser
from ..auth.permissions import contract_filter
from ..models.invoice import Invoice
from ..models.order import Order
from ..models.user import User
from . import billing, service
from .schemas import InvoiceCreate, InvoiceUpdate, OrderItemsUpdate, ProjectStatusUpdate

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _get_order(db: Session, order_id: UUID, user: User) -> Order:
    """Order of the user's organization that the user may see, or 404."""
    query = (
        TenantQuery.scoped_query(db, Order, user.org_id)
        .options(
            joinedload(Order.customer),
            selectinload(Order.items),
            selectinload(Order.invoices),
        )
        .filter(Order.id == order_id)
    )
    predicate = contract_filter(user)
    if predicate is not None:
        query = query.filter(predicate)

    order = query.first()
    if order is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return order


def _get_invoice(order: Order, invoice_id: UUID) -> Invoice:
    for invoice in order.invoices:
        if invoice.id == invoice_id:
            return invoice
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invoice not found")


@router.get("/{order_id}")
def get_order(order_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    order = _get_order(db, order_id, current_user)
    return {"order": order.to_dict(), "customer": order.customer.to_dict()}


@router.get("/{order_id}/items")
def list_order_items(order_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    order = _get_order(db, order_id, current_user)
    return {"items": [item.to_dict() for item in order.items]}


@router.put("/{order_id}/items")
def update_order_items(
    order_id: UUID,
    data: OrderItemsUpdate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Replace the order's item rows.

    completed_amount of item rows is recalculated from progress and amount.
    """
    order = _get_order(db, order_id, current_user)
    service.update_order_items(db, current_user, order, data.items)
    db.commit()
    db.refresh(order)
    return {"items": [item.to_dict() for item in order.items]}


@router.patch("/{order_id}/project-status")
def update_project_status(
    order_id: UUID,
    data: ProjectStatusUpdate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Update stage and project dates.

    Raises:
        HTTPException 400: Invalid stage or date format
    """
    order = _get_order(db, order_id, current_user)
    try:
        service.update_project_status(db, current_user, order, data)
    except service.ProjectStatusError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.commit()
    db.refresh(order)
    return {"order": order.to_dict()}


@router.get("/{order_id}/invoice-summary")
def get_invoice_summary(order_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    order = _get_order(db, order_id, current_user)
    return billing.invoice_summary(order).to_dict()


@router.get("/{order_id}/invoices")
def list_invoices(order_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    order = _get_order(db, order_id, current_user)
    return {"invoices": [invoice.to_dict() for invoice in order.invoices]}


@router.post("/{order_id}/invoices", status_code=status.HTTP_201_CREATED)
def create_invoice(
    order_id: UUID,
    data: InvoiceCreate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Create an invoice in the next free row.

    Raises:
        HTTPException 400: All invoice rows are taken
    """
    order = _get_order(db, order_id, current_user)
    try:
        invoice = service.create_invoice(db, current_user, order, data)
    except billing.InvoiceSlotError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    db.commit()
    db.refresh(invoice)
    logger.info(f"Created invoice {invoice.id} in row {invoice.row_index} for order {order.order_no}")
    return {"invoice": invoice.to_dict()}


@router.patch("/{order_id}/invoices/{invoice_id}")
def update_invoice(
    order_id: UUID,
    invoice_id: UUID,
    data: InvoiceUpdate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Update an invoice and its linked items.

    Raises:
        HTTPException 400: Linked items are missing or fail validation; the
            detail carries validation_errors per rejected item
    """
    order = _get_order(db, order_id, current_user)
    invoice = _get_invoice(order, invoice_id)

    try:
        service.update_invoice(db, current_user, order, invoice, data)
    except billing.LineItemLinkError as e:
        db.rollback()
        detail = {"error": str(e)}
        if e.errors:
            detail["validation_errors"] = e.errors
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)

    db.commit()
    db.refresh(invoice)
    return {"invoice": invoice.to_dict()}


@router.delete("/{order_id}/invoices/{invoice_id}")
def delete_invoice(
    order_id: UUID,
    invoice_id: UUID,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    order = _get_order(db, order_id, current_user)
    invoice = _get_invoice(order, invoice_id)
    service.delete_invoice(db, current_user, order, invoice)
    db.commit()
    return {"success": True}


@router.get("/{order_id}/invoices/{invoice_id}/line-items")
def list_invoice_line_items(
    order_id: UUID,
    invoice_id: UUID,
    current_user: StaffUser,
    db: Session = Depends(get_db),
):
    """Item rows with their link state for one invoice.

    linked_items are the rows currently linked; total_billed_amount sums
    their linked amounts.
    """
    order = _get_order(db, order_id, current_user)
    invoice = _get_invoice(order, invoice_id)
    items = billing.linkable_items(order, invoice)
    linked = [item for item in items if item["is_linked"]]
    return {
        "items": items,
        "linked_items": linked,
        "total_billed_amount": sum(item["linked_amount"] or 0 for item in linked),
    }
