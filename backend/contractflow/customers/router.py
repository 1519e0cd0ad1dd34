"""Customer management API endpoints"""

import logging
import secrets
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload, selectinload

from ..config import get_settings
from ..database import get_db
from ..dependencies import TenantQuery
from ..auth.dependencies import (
    AdminUser,
    ContractEditor,
    StaffUser,
    get_current_user,
    require_roles,
    security,
)
from ..auth.permissions import contract_filter, is_admin
from ..auth.roles import UserRole
from ..changes.service import (
    history_query,
    log_customer_delete,
    log_customer_edit,
    log_customer_restore,
    serialize_change,
)
from ..models.change_history import AlertAcknowledgment, ChangeHistory
from ..models.customer import Customer
from ..models.order import Order
from ..models.user import User
from ..models.base import utcnow
from . import service
from .schemas import (
    AlertAcknowledgeRequest,
    CheckExistsResponse,
    CleanupResult,
    CustomerListResponse,
    CustomerResponse,
    CustomerSummary,
    CustomerUpdate,
    InvoicingStatusUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/customers", tags=["customers"])

_ADDRESS_FIELDS = ("street_address", "city", "state", "zip")


def _get_customer(db: Session, customer_id: UUID, user: User) -> Customer:
    return TenantQuery.get_or_404(db, Customer, customer_id, user.org_id, detail="Customer not found")


def _visible_orders(customer: Customer, user: User):
    """Orders of the customer the user may see."""
    if contract_filter(user) is None:
        return list(customer.orders)
    names = {name for name in (user.username, user.sales_rep_name) if name}
    return [order for order in customer.orders if order.sales_rep in names]


@router.get("", response_model=CustomerListResponse)
def list_customers(
    current_user: StaffUser,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
    include_deleted: bool = Query(False),
    trash_only: bool = Query(False),
    search: Optional[str] = Query(None, description="Matches client name, dbx id, email or address"),
):
    """List customers, latest modified first.

    Each row carries the stage of the latest order, the number of contracts
    and whether an unacknowledged items total mismatch exists. Sales reps
    only see customers with at least one of their orders.
    """
    query = TenantQuery.scoped_query(db, Customer, current_user.org_id)

    if trash_only:
        query = query.filter(Customer.deleted_at.isnot(None))
    elif not include_deleted:
        query = query.filter(Customer.deleted_at.is_(None))

    if status_filter and status_filter != "all":
        query = query.filter(Customer.status == status_filter)

    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Customer.client_name.ilike(pattern),
                Customer.dbx_customer_id.ilike(pattern),
                Customer.email.ilike(pattern),
                Customer.street_address.ilike(pattern),
            )
        )

    predicate = contract_filter(current_user)
    if predicate is not None:
        query = query.filter(Customer.orders.any(predicate))

    customers = (
        query.options(selectinload(Customer.orders).selectinload(Order.items))
        .order_by(Customer.updated_at.desc())
        .all()
    )

    acknowledged = {}
    if customers:
        rows = (
            db.query(AlertAcknowledgment.customer_id, AlertAcknowledgment.alert_type)
            .filter(AlertAcknowledgment.customer_id.in_([c.id for c in customers]))
            .all()
        )
        for customer_id, alert_type in rows:
            acknowledged.setdefault(customer_id, set()).add(alert_type)

    summaries = []
    for customer in customers:
        orders = _visible_orders(customer, current_user)
        issues = service.validation_issues(customer, acknowledged.get(customer.id, set()), orders)
        summaries.append(
            CustomerSummary(
                **CustomerResponse.model_validate(customer).model_dump(),
                stage=service.customer_stage(customer),
                contract_count=len(orders),
                order_grand_total=sum(float(o.order_grand_total or 0) for o in orders),
                has_validation_issues=bool(issues),
                validation_issues=issues or None,
            )
        )

    logger.debug(f"Listed {len(summaries)} customers for org {current_user.org_id}")
    return CustomerListResponse(customers=summaries, total=len(summaries))


@router.get("/check-exists", response_model=CheckExistsResponse)
def check_customer_exists(
    current_user: StaffUser,
    dbx_customer_id: str = Query(..., min_length=1),
    db: Session = Depends(get_db),
):
    """Check whether a customer with this ProDBX id is already stored (or trashed)."""
    customer = (
        TenantQuery.scoped_query(db, Customer, current_user.org_id)
        .filter(Customer.dbx_customer_id == dbx_customer_id)
        .first()
    )
    if customer is None:
        return CheckExistsResponse(exists=False)
    return CheckExistsResponse(exists=True, is_deleted=customer.is_deleted, customer_id=customer.id)


@router.post("/cleanup-trash", response_model=CleanupResult)
def cleanup_trash(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
):
    """Purge customers that stayed in the trash past the retention window.

    When CLEANUP_API_TOKEN is configured the scheduler authenticates with it
    and all organizations are purged. Otherwise an admin token is required
    and only the admin's organization is purged.

    Raises:
        HTTPException 401: Wrong cleanup token
        HTTPException 403: Caller is not an admin
    """
    expected = get_settings().CLEANUP_API_TOKEN
    if expected:
        if not secrets.compare_digest(credentials.credentials, expected):
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
        org_id = None
    else:
        user = get_current_user(credentials, db)
        if not is_admin(user):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
        org_id = user.org_id

    deleted_ids = service.purge_expired_trash(db, org_id=org_id)
    db.commit()
    return CleanupResult(deleted_count=len(deleted_ids), deleted_ids=deleted_ids)


@router.get("/{customer_id}")
def get_customer(customer_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    """Customer with its orders, their items, invoices and total validation."""
    customer = _get_customer(db, customer_id, current_user)

    orders = []
    for order in _visible_orders(customer, current_user):
        data = order.to_dict()
        data["items"] = [item.to_dict() for item in order.items]
        data["invoices"] = [invoice.to_dict() for invoice in order.invoices]
        data["validation"] = service.validate_order(order).to_dict()
        orders.append(data)

    return {
        "customer": customer.to_dict(),
        "stage": service.customer_stage(customer),
        "orders": orders,
    }


@router.patch("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: UUID,
    data: CustomerUpdate,
    current_user: ContractEditor,
    db: Session = Depends(get_db),
):
    """Edit customer fields, logging one customer_edit entry per changed field."""
    customer = _get_customer(db, customer_id, current_user)

    for field, value in data.model_dump(exclude_unset=True).items():
        if value is None:
            if field == "client_name":
                continue
            if field in _ADDRESS_FIELDS:
                value = ""
        log_customer_edit(db, current_user, field, getattr(customer, field), value, customer.id)
        setattr(customer, field, value)

    customer.updated_at = utcnow()
    db.commit()
    db.refresh(customer)
    return customer


@router.delete("/{customer_id}")
def delete_customer(customer_id: UUID, current_user: ContractEditor, db: Session = Depends(get_db)):
    """Move a customer to the trash."""
    customer = _get_customer(db, customer_id, current_user)
    if customer.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer is already deleted")

    log_customer_delete(db, current_user, customer.id, customer.client_name or "Unknown Customer")
    service.soft_delete_customer(customer)
    db.commit()

    retention = get_settings().TRASH_RETENTION_DAYS
    return {
        "message": f"Customer moved to trash. It will be permanently deleted after {retention} days.",
        "deleted_at": customer.deleted_at.isoformat(),
    }


@router.post("/{customer_id}/recover")
def recover_customer(customer_id: UUID, current_user: ContractEditor, db: Session = Depends(get_db)):
    customer = _get_customer(db, customer_id, current_user)
    if not customer.is_deleted:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Customer is not in trash")

    log_customer_restore(db, current_user, customer.id, customer.client_name or "Unknown Customer")
    service.restore_customer(customer)
    db.commit()
    return {"message": "Customer recovered from trash successfully"}


@router.delete("/{customer_id}/permanent")
def permanently_delete_customer(customer_id: UUID, current_user: AdminUser, db: Session = Depends(get_db)):
    """Delete a trashed customer and all associated data. Cannot be undone.

    Raises:
        HTTPException 400: Customer is not in the trash
        HTTPException 404: Customer not found in this organization
    """
    customer = _get_customer(db, customer_id, current_user)
    if not customer.is_deleted:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Customer must be moved to trash before permanent deletion",
        )

    service.purge_customer(db, customer)
    db.commit()
    logger.info(f"User {current_user.id} permanently deleted customer {customer_id}")
    return {"message": "Customer and all associated data permanently deleted successfully"}


@router.get("/{customer_id}/alerts")
def get_customer_alerts(customer_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    """Active order-items mismatch alert and the acknowledgments on record."""
    customer = _get_customer(db, customer_id, current_user)

    mismatched = []
    for order in customer.orders:
        validation = service.validate_order(order)
        if not validation.is_valid:
            mismatched.append({
                "order_id": str(order.id),
                "order_no": order.order_no,
                "validation": validation.to_dict(),
            })

    rows = (
        db.query(AlertAcknowledgment, User)
        .outerjoin(User, AlertAcknowledgment.acknowledged_by == User.id)
        .filter(AlertAcknowledgment.customer_id == customer.id)
        .all()
    )
    acknowledgments = [
        {
            "alert_type": ack.alert_type,
            "acknowledged_by": {
                "id": str(user.id) if user else None,
                "username": user.username if user else "Unknown",
            },
            "acknowledged_at": ack.acknowledged_at.isoformat(),
        }
        for ack, user in rows
    ]
    acknowledged_types = {ack["alert_type"] for ack in acknowledgments}

    alerts = []
    if mismatched:
        alerts.append({
            "alert_type": service.ORDER_ITEMS_MISMATCH,
            "acknowledged": service.ORDER_ITEMS_MISMATCH in acknowledged_types,
            "orders": mismatched,
        })

    return {"alerts": alerts, "acknowledgments": acknowledgments}


@router.post("/{customer_id}/alerts/acknowledge")
def acknowledge_alert(
    customer_id: UUID,
    data: AlertAcknowledgeRequest,
    current_user: StaffUser,
    db: Session = Depends(get_db),
):
    customer = _get_customer(db, customer_id, current_user)

    ack = (
        db.query(AlertAcknowledgment)
        .filter(
            AlertAcknowledgment.customer_id == customer.id,
            AlertAcknowledgment.alert_type == data.alert_type,
        )
        .first()
    )
    if ack is None:
        ack = AlertAcknowledgment(
            org_id=current_user.org_id,
            customer_id=customer.id,
            alert_type=data.alert_type,
            acknowledged_by=current_user.id,
        )
        db.add(ack)
    else:
        ack.acknowledged_by = current_user.id
        ack.acknowledged_at = utcnow()

    db.commit()
    return {"message": "Alert acknowledged successfully"}


@router.get("/{customer_id}/history")
def get_customer_history(
    customer_id: UUID,
    current_user: StaffUser,
    db: Session = Depends(get_db),
    period: str = Query("all", pattern="^(day|week|month|all)$"),
    limit: int = Query(10, ge=1, le=100),
    offset: Optional[int] = Query(None, ge=0),
    page: int = Query(1, ge=1),
):
    """Change history of one customer, newest first."""
    customer = _get_customer(db, customer_id, current_user)

    query = history_query(db, current_user.org_id, period=period, customer_id=customer.id)
    total = query.count()
    if offset is None:
        offset = (page - 1) * limit

    changes = (
        query.options(
            joinedload(ChangeHistory.user),
            joinedload(ChangeHistory.customer),
            joinedload(ChangeHistory.order),
        )
        .offset(offset)
        .limit(limit)
        .all()
    )

    return {
        "history": [serialize_change(change) for change in changes],
        "total": total,
        "limit": limit,
        "offset": offset,
        "has_more": offset + limit < total,
    }


@router.get("/{customer_id}/invoicing-status")
def get_invoicing_status(customer_id: UUID, current_user: StaffUser, db: Session = Depends(get_db)):
    customer = _get_customer(db, customer_id, current_user)
    return service.invoicing_status(db, customer)


@router.patch("/{customer_id}/invoicing-status", response_model=CustomerResponse)
def set_invoicing_status(
    customer_id: UUID,
    data: InvoicingStatusUpdate,
    current_user: User = Depends(
        require_roles(UserRole.ADMIN, UserRole.CONTRACT_MANAGER, UserRole.ACCOUNTANT)
    ),
    db: Session = Depends(get_db),
):
    """Override the derived customer status.

    The next order or invoice change recalculates it again.
    """
    customer = _get_customer(db, customer_id, current_user)
    log_customer_edit(db, current_user, "status", customer.status, data.status, customer.id)
    customer.status = data.status
    customer.updated_at = utcnow()
    db.commit()
    db.refresh(customer)
    return customer
