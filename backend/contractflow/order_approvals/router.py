"""Order approval (vendor negotiation) endpoints.

Project staff create an approval for a vendor and a customer, select order
items into it while it is a draft and send it to the vendor. Vendor portal
users see their own approvals once sent and may approve or retract.
"""

import logging
import math
from typing import Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ..database import get_db
from ..dependencies import TenantQuery
from ..auth.dependencies import CurrentUser, StaffUser
from ..auth.permissions import is_vendor
from ..contracts.service import to_decimal
from ..models.base import utcnow
from ..models.customer import Customer
from ..models.order import Order, OrderItem
from ..models.order_approval import OrderApproval, OrderApprovalItem
from ..models.user import User
from ..models.vendor import Vendor
from ..observability.metrics import approval_stage_transitions_total
from ..vendors.service import VendorNotFoundError, vendor_for_user
from .email_preview import build_email_payload
from .reference import generate_reference_number
from .schemas import (
    ApprovedBatchRequest,
    ItemSelection,
    NegotiatedAmountsUpdate,
    OrderApprovalCreate,
    OrderApprovalUpdate,
)
from .stages import (
    VENDOR_VISIBLE_STAGES,
    ApprovalStage,
    StageTransitionError,
    resolve_flag,
    validate_send,
    validate_stage_change,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/order-approvals", tags=["Order Approval"])

SORT_COLUMNS = {
    "reference_no": OrderApproval.reference_no,
    "vendor": Vendor.name,
    "date_created": OrderApproval.date_created,
    "stage": OrderApproval.stage,
}

_VISIBLE_TO_VENDOR = [stage.value for stage in VENDOR_VISIBLE_STAGES]


def _number(value) -> Optional[float]:
    return float(value) if value is not None else None


def _own_vendor_id(db: Session, user: User) -> Optional[UUID]:
    """Vendor id of a vendor user, or None when no vendor record matches."""
    if not user.email:
        return None
    try:
        return vendor_for_user(db, user).id
    except VendorNotFoundError:
        return None


def _get_approval(db: Session, approval_id: UUID, user: User) -> OrderApproval:
    """Approval of the user's organization the user may see.

    Raises:
        HTTPException 404: Not found in the organization
        HTTPException 403: A vendor user asks for another vendor's approval
            or one that was not sent yet
    """
    approval = (
        TenantQuery.scoped_query(db, OrderApproval, user.org_id)
        .options(
            joinedload(OrderApproval.vendor),
            joinedload(OrderApproval.customer),
            joinedload(OrderApproval.order),
            joinedload(OrderApproval.creator),
            selectinload(OrderApproval.items),
        )
        .filter(OrderApproval.id == approval_id)
        .first()
    )
    if approval is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order approval not found")

    if is_vendor(user):
        vendor_id = _own_vendor_id(db, user)
        if vendor_id is None or vendor_id != approval.vendor_id or approval.stage not in _VISIBLE_TO_VENDOR:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")

    return approval


def _require_staff(user: User, action: str) -> None:
    if is_vendor(user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=f"Vendors cannot {action}")


def serialize_approval(approval: OrderApproval) -> dict:
    vendor = approval.vendor
    customer = approval.customer
    order = approval.order
    return {
        "id": str(approval.id),
        "reference_no": approval.reference_no,
        "vendor_id": str(approval.vendor_id),
        "vendor_name": vendor.name if vendor else None,
        "vendor_email": vendor.email if vendor else None,
        "customer_id": str(approval.customer_id),
        "customer_name": customer.client_name if customer else None,
        "dbx_customer_id": customer.dbx_customer_id if customer else None,
        "order_id": str(approval.order_id) if approval.order_id else None,
        "order_no": order.order_no if order else None,
        "stage": approval.stage,
        "pm_approved": approval.pm_approved,
        "vendor_approved": approval.vendor_approved,
        "vendor_approved_at": approval.vendor_approved_at.isoformat() if approval.vendor_approved_at else None,
        "date_created": approval.date_created.isoformat() if approval.date_created else None,
        "sent_at": approval.sent_at.isoformat() if approval.sent_at else None,
        "created_by": str(approval.created_by),
        "updated_at": approval.updated_at.isoformat() if approval.updated_at else None,
        "deleted_at": approval.deleted_at.isoformat() if approval.deleted_at else None,
    }


def serialize_approval_item(item: OrderApprovalItem, order_item: Optional[OrderItem] = None) -> dict:
    return {
        "id": str(item.id),
        "order_item_id": str(item.order_item_id),
        "product_service": item.product_service,
        "qty": _number(item.qty),
        "rate": _number(item.rate),
        "amount": _number(item.amount),
        "negotiated_vendor_amount": _number(item.negotiated_vendor_amount),
        "snapshot_date": item.snapshot_date.isoformat() if item.snapshot_date else None,
        "order_item": order_item.to_dict() if order_item else None,
    }


def _selected_items(db: Session, approval: OrderApproval) -> List[dict]:
    """Snapshots with the current order item row, when it still exists."""
    ids = [item.order_item_id for item in approval.items]
    current = {}
    if ids:
        current = {row.id: row for row in db.query(OrderItem).filter(OrderItem.id.in_(ids)).all()}
    return [serialize_approval_item(item, current.get(item.order_item_id)) for item in approval.items]


def _approved_entry(item: OrderApprovalItem) -> dict:
    approval = item.approval
    return {
        "approval_id": str(approval.id),
        "reference_no": approval.reference_no,
        "vendor_id": str(approval.vendor_id),
        "vendor_name": approval.vendor.name if approval.vendor else None,
        "negotiated_vendor_amount": _number(item.negotiated_vendor_amount),
        "approved_at": (approval.vendor_approved_at or approval.updated_at).isoformat(),
        "snapshot": {
            "product_service": item.product_service,
            "amount": _number(item.amount),
            "qty": _number(item.qty),
            "rate": _number(item.rate),
        },
    }


def _approved_items_query(db: Session, org_id: UUID, customer_id: Optional[UUID] = None):
    query = (
        db.query(OrderApprovalItem)
        .join(OrderApproval, OrderApprovalItem.order_approval_id == OrderApproval.id)
        .options(joinedload(OrderApprovalItem.approval).joinedload(OrderApproval.vendor))
        .filter(
            OrderApproval.org_id == org_id,
            OrderApproval.stage == ApprovalStage.APPROVED.value,
            OrderApproval.deleted_at.is_(None),
        )
    )
    if customer_id:
        query = query.filter(OrderApproval.customer_id == customer_id)
    return query


@router.get("")
def list_order_approvals(
    current_user: CurrentUser,
    db: Session = Depends(get_db),
    search: Optional[str] = Query(None, description="Matches reference number or vendor name"),
    sort_by: str = Query("date_created", pattern="^(reference_no|vendor|date_created|stage)$"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    trash_only: bool = Query(False),
    include_deleted: bool = Query(False),
    vendor_id: Optional[UUID] = Query(None),
):
    """List approvals with search, sorting and pagination.

    Vendor users only get their own approvals in negotiating or approved.
    """
    query = (
        TenantQuery.scoped_query(db, OrderApproval, current_user.org_id)
        .outerjoin(Vendor, OrderApproval.vendor_id == Vendor.id)
        .options(joinedload(OrderApproval.vendor), joinedload(OrderApproval.customer), joinedload(OrderApproval.order))
    )

    if trash_only:
        query = query.filter(OrderApproval.deleted_at.isnot(None))
    elif not include_deleted:
        query = query.filter(OrderApproval.deleted_at.is_(None))

    if is_vendor(current_user):
        own_vendor_id = _own_vendor_id(db, current_user)
        if own_vendor_id is None:
            return {"approvals": [], "pagination": {"page": 1, "limit": limit, "total": 0, "total_pages": 0}}
        query = query.filter(
            OrderApproval.vendor_id == own_vendor_id,
            OrderApproval.stage.in_(_VISIBLE_TO_VENDOR),
        )
    elif vendor_id:
        query = query.filter(OrderApproval.vendor_id == vendor_id)

    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(OrderApproval.reference_no.ilike(pattern), Vendor.name.ilike(pattern)))

    total = query.count()
    direction = asc if sort_order == "asc" else desc
    approvals = (
        query.order_by(direction(SORT_COLUMNS[sort_by]), desc(OrderApproval.date_created))
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "approvals": [serialize_approval(approval) for approval in approvals],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": math.ceil(total / limit),
        },
    }


@router.post("", status_code=status.HTTP_201_CREATED)
def create_order_approval(data: OrderApprovalCreate, current_user: CurrentUser, db: Session = Depends(get_db)):
    """Create a draft approval with the next reference number.

    Raises:
        HTTPException 403: Vendor users
        HTTPException 400: vendor_id or customer_id missing
        HTTPException 404: Unknown vendor, customer or order
    """
    _require_staff(current_user, "create approvals")
    if not data.vendor_id or not data.customer_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields: vendor_id, customer_id",
        )

    org_id = current_user.org_id
    TenantQuery.get_or_404(db, Vendor, data.vendor_id, org_id, detail="Vendor not found")
    TenantQuery.get_or_404(db, Customer, data.customer_id, org_id, detail="Customer not found")
    if data.order_id:
        TenantQuery.get_or_404(db, Order, data.order_id, org_id, detail="Order not found")

    approval = OrderApproval(
        org_id=org_id,
        reference_no=generate_reference_number(db, org_id),
        vendor_id=data.vendor_id,
        customer_id=data.customer_id,
        order_id=data.order_id,
        stage=ApprovalStage.DRAFT.value,
        pm_approved=False,
        vendor_approved=False,
        created_by=current_user.id,
    )
    db.add(approval)
    db.commit()

    logger.info(f"Order approval {approval.reference_no} created by {current_user.username}")
    return {"approval": serialize_approval(_get_approval(db, approval.id, current_user))}


@router.get("/approved")
def list_approved_for_item(
    current_user: StaffUser,
    db: Session = Depends(get_db),
    order_item_id: str = Query(...),
    customer_id: Optional[UUID] = Query(None),
):
    """Approved approvals containing an order item; a malformed id yields []."""
    try:
        item_id = UUID(order_item_id)
    except ValueError:
        return []

    items = (
        _approved_items_query(db, current_user.org_id, customer_id)
        .filter(OrderApprovalItem.order_item_id == item_id)
        .all()
    )
    return [_approved_entry(item) for item in items]


@router.post("/approved-batch")
def list_approved_batch(data: ApprovedBatchRequest, current_user: StaffUser, db: Session = Depends(get_db)):
    """Approved approvals per order item id.

    Items without an approved approval are left out of the map.
    """
    item_ids = set()
    for raw in data.order_item_ids:
        try:
            item_ids.add(UUID(raw))
        except ValueError:
            continue

    if data.order_id:
        rows = (
            TenantQuery.scoped_query(db, OrderItem, current_user.org_id)
            .filter(OrderItem.order_id == data.order_id)
            .all()
        )
        item_ids.update(row.id for row in rows)

    if not item_ids:
        return {}

    result: Dict[str, List[dict]] = {}
    items = (
        _approved_items_query(db, current_user.org_id, data.customer_id)
        .filter(OrderApprovalItem.order_item_id.in_(item_ids))
        .all()
    )
    for item in items:
        result.setdefault(str(item.order_item_id), []).append(_approved_entry(item))
    return result


@router.get("/{approval_id}")
def get_order_approval(approval_id: UUID, current_user: CurrentUser, db: Session = Depends(get_db)):
    approval = _get_approval(db, approval_id, current_user)
    data = serialize_approval(approval)
    data["created_by_email"] = approval.creator.email if approval.creator else None
    data["selected_items"] = _selected_items(db, approval)
    return {"approval": data}


@router.patch("/{approval_id}")
def update_order_approval(
    approval_id: UUID,
    data: OrderApprovalUpdate,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
):
    """Change stage or sign-offs.

    Vendor users may only set vendor_approved, and only while negotiating.
    A vendor approval with the disclaimer accepted records vendor_approved_at.

    Raises:
        HTTPException 400: Deleted or approved record, or an invalid stage change
        HTTPException 403: Vendor user changing stage or PM approval
    """
    approval = _get_approval(db, approval_id, current_user)

    if approval.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot update deleted approval")
    if approval.stage == ApprovalStage.APPROVED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Approved orders are read-only")

    vendor_user = is_vendor(current_user)
    if vendor_user:
        if data.stage is not None or data.pm_approved is not None:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Vendors can only approve/retract items",
            )
        if approval.stage != ApprovalStage.NEGOTIATING.value:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Vendors can only approve/retract in negotiating stage",
            )

    if data.stage is not None:
        try:
            validate_stage_change(
                approval.stage,
                data.stage,
                pm_approved=resolve_flag(data.pm_approved, approval.pm_approved),
                vendor_approved=resolve_flag(data.vendor_approved, approval.vendor_approved),
            )
        except StageTransitionError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
        approval_stage_transitions_total.labels(from_stage=approval.stage, to_stage=data.stage).inc()
        approval.stage = data.stage

    if data.pm_approved is not None and not vendor_user:
        approval.pm_approved = data.pm_approved
    if data.vendor_approved is not None:
        approval.vendor_approved = data.vendor_approved
        if vendor_user and data.vendor_approved and data.disclaimer_accepted:
            approval.vendor_approved_at = utcnow()

    approval.updated_at = utcnow()
    db.commit()
    db.refresh(approval)

    logger.info(f"Order approval {approval.reference_no} updated by {current_user.username}: stage={approval.stage}")
    return {"approval": serialize_approval(approval)}


@router.delete("/{approval_id}")
def delete_order_approval(approval_id: UUID, current_user: CurrentUser, db: Session = Depends(get_db)):
    _require_staff(current_user, "delete approvals")
    approval = _get_approval(db, approval_id, current_user)
    if approval.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Approval already deleted")

    approval.deleted_at = utcnow()
    approval.updated_at = utcnow()
    db.commit()
    return {"approval": serialize_approval(approval)}


@router.get("/{approval_id}/items")
def list_approval_items(approval_id: UUID, current_user: CurrentUser, db: Session = Depends(get_db)):
    approval = _get_approval(db, approval_id, current_user)
    return {"items": _selected_items(db, approval)}


@router.put("/{approval_id}/items")
def select_approval_items(
    approval_id: UUID,
    data: ItemSelection,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
):
    """Replace the selected order items, snapshotting their current values.

    Raises:
        HTTPException 400: Not a draft, or items outside the customer's orders
    """
    _require_staff(current_user, "update item selection")
    approval = _get_approval(db, approval_id, current_user)

    if approval.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot update deleted approval")
    if approval.stage != ApprovalStage.DRAFT.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Item selection can only be changed in draft stage",
        )

    item_ids = list(dict.fromkeys(data.order_item_ids))
    order_items = []
    if item_ids:
        order_ids = [
            row.id for row in
            db.query(Order.id).filter(Order.org_id == approval.org_id, Order.customer_id == approval.customer_id).all()
        ]
        if not order_ids:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No orders found for this customer")

        found = {
            row.id: row for row in
            db.query(OrderItem).filter(OrderItem.order_id.in_(order_ids), OrderItem.id.in_(item_ids)).all()
        }
        if len(found) != len(item_ids):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Some item IDs do not belong to orders for this customer",
            )
        order_items = [found[item_id] for item_id in item_ids]

    approval.items.clear()
    db.flush()

    now = utcnow()
    for order_item in order_items:
        approval.items.append(OrderApprovalItem(
            org_id=approval.org_id,
            order_item_id=order_item.id,
            product_service=order_item.product_service,
            qty=order_item.qty,
            rate=order_item.rate,
            amount=order_item.amount,
            snapshot_date=now,
            created_at=now,
        ))
    approval.updated_at = now
    db.commit()
    db.refresh(approval)

    return {"items": _selected_items(db, approval)}


@router.patch("/{approval_id}/items")
def update_negotiated_amounts(
    approval_id: UUID,
    data: NegotiatedAmountsUpdate,
    current_user: CurrentUser,
    db: Session = Depends(get_db),
):
    """Set negotiated vendor amounts of selected items.

    Raises:
        HTTPException 400: Deleted or approved record, or ids not in this approval
    """
    _require_staff(current_user, "update amounts")
    approval = _get_approval(db, approval_id, current_user)

    if approval.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot update deleted approval")
    if approval.stage == ApprovalStage.APPROVED.value:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Approved orders are read-only")

    by_id = {item.id: item for item in approval.items}
    if any(entry.order_approval_item_id not in by_id for entry in data.items):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Some item IDs do not belong to this approval",
        )

    for entry in data.items:
        by_id[entry.order_approval_item_id].negotiated_vendor_amount = to_decimal(entry.negotiated_vendor_amount)
    approval.updated_at = utcnow()
    db.commit()
    db.refresh(approval)

    return {"items": _selected_items(db, approval)}


@router.post("/{approval_id}/send")
def send_order_approval(approval_id: UUID, current_user: CurrentUser, db: Session = Depends(get_db)):
    """Send a draft to the vendor: the approval moves to negotiating.

    Raises:
        HTTPException 400: Deleted, not a draft or without selected items
    """
    _require_staff(current_user, "send approvals")
    approval = _get_approval(db, approval_id, current_user)

    try:
        validate_send(approval.stage, len(approval.items), deleted=approval.deleted_at is not None)
    except StageTransitionError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    now = utcnow()
    approval_stage_transitions_total.labels(
        from_stage=approval.stage, to_stage=ApprovalStage.NEGOTIATING.value,
    ).inc()
    approval.stage = ApprovalStage.NEGOTIATING.value
    approval.sent_at = now
    approval.updated_at = now
    db.commit()
    db.refresh(approval)

    logger.info(f"Order approval {approval.reference_no} sent to vendor {approval.vendor_id}")
    return {"approval": serialize_approval(approval), "message": "Approval sent to vendor successfully"}


@router.get("/{approval_id}/preview-email")
def preview_order_approval_email(approval_id: UUID, current_user: CurrentUser, db: Session = Depends(get_db)):
    """Confirmation email payload, built without sending anything."""
    _require_staff(current_user, "preview order approval emails")
    approval = _get_approval(db, approval_id, current_user)
    if approval.deleted_at is not None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order approval not found")

    return build_email_payload(approval).to_dict()
