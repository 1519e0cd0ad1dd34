"""Change history logging for customers, orders, order items and invoices.

Every business edit is recorded as one change_history row per field with
the old and new value normalized to strings. Logging never breaks the
operation being logged: failures are written to the application log and
rolled back to a savepoint.
"""

import logging
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.base import utcnow
from ..models.change_history import ChangeHistory, ChangeType
from ..models.user import User

logger = logging.getLogger(__name__)

NUMERIC_TOLERANCE = 0.0001


def value_to_string(value: Any) -> Optional[str]:
    """Normalize a value for storage and comparison.

    None and blank strings become None, strings are stripped, dates use
    ISO format and numbers use their shortest string form.
    """
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    text = str(value).strip()
    return text or None


def _as_float(text: str) -> Optional[float]:
    try:
        return float(text)
    except ValueError:
        return None


def values_are_equal(old: Any, new: Any) -> bool:
    """Compare two values, numerically when both parse as numbers."""
    old_str = value_to_string(old)
    new_str = value_to_string(new)

    if old_str is None and new_str is None:
        return True
    if old_str is None or new_str is None:
        return False

    old_num = _as_float(old_str)
    new_num = _as_float(new_str)
    if old_num is not None and new_num is not None:
        return abs(old_num - new_num) < NUMERIC_TOLERANCE

    return old_str == new_str


def log_change(
    db: Session,
    user: Optional[User],
    change_type: ChangeType,
    field_name: str,
    old_value: Any,
    new_value: Any,
    *,
    customer_id: Optional[UUID] = None,
    order_id: Optional[UUID] = None,
    order_item_id: Optional[UUID] = None,
    row_index: Optional[int] = None,
) -> Optional[ChangeHistory]:
    """Record one change in change_history.

    The row is flushed inside a savepoint and committed with the caller's
    transaction.

    Args:
        db: Database session
        user: User making the change; the entry is skipped when None
        change_type: Kind of change
        field_name: Changed field ("client_name", "invoice", "stage", ...)
        old_value: Value before the change
        new_value: Value after the change
        customer_id: Affected customer
        order_id: Affected order
        order_item_id: Affected order item
        row_index: Row of the affected item or invoice

    Returns:
        ChangeHistory: The created entry, or None when nothing was logged
    """
    if user is None:
        logger.warning(f"Skipping change log for {field_name}: no user")
        return None

    entry = ChangeHistory(
        org_id=user.org_id,
        change_type=ChangeType(change_type).value,
        field_name=field_name,
        old_value=value_to_string(old_value),
        new_value=value_to_string(new_value),
        changed_by=user.id,
        customer_id=customer_id,
        order_id=order_id,
        order_item_id=order_item_id,
        row_index=row_index,
    )

    try:
        with db.begin_nested():
            db.add(entry)
            db.flush()
    except SQLAlchemyError as e:
        logger.error(f"Error logging {change_type} change for {field_name}: {e}")
        return None

    logger.debug(f"Logged {ChangeType(change_type).value} for field {field_name}")
    return entry


def log_if_changed(
    db: Session,
    user: Optional[User],
    change_type: ChangeType,
    field_name: str,
    old_value: Any,
    new_value: Any,
    **options: Any,
) -> Optional[ChangeHistory]:
    """Log the change only when the values differ."""
    if values_are_equal(old_value, new_value):
        return None
    return log_change(db, user, change_type, field_name, old_value, new_value, **options)


def log_order_item_change(
    db: Session,
    user: Optional[User],
    change_type: ChangeType,
    field_name: str,
    old_value: Any,
    new_value: Any,
    order_id: UUID,
    customer_id: UUID,
    order_item_id: Optional[UUID] = None,
    row_index: Optional[int] = None,
) -> Optional[ChangeHistory]:
    return log_change(
        db, user, change_type, field_name, old_value, new_value,
        order_id=order_id,
        customer_id=customer_id,
        order_item_id=order_item_id,
        row_index=row_index,
    )


def log_customer_edit(db, user, field_name, old_value, new_value, customer_id):
    return log_if_changed(
        db, user, ChangeType.CUSTOMER_EDIT, field_name, old_value, new_value,
        customer_id=customer_id,
    )


def log_order_edit(db, user, field_name, old_value, new_value, order_id, customer_id):
    return log_if_changed(
        db, user, ChangeType.ORDER_EDIT, field_name, old_value, new_value,
        order_id=order_id,
        customer_id=customer_id,
    )


def log_invoice_change(
    db: Session,
    user: Optional[User],
    change_type: ChangeType,
    field_name: str,
    old_value: Any,
    new_value: Any,
    order_id: UUID,
    customer_id: UUID,
    row_index: Optional[int] = None,
) -> Optional[ChangeHistory]:
    return log_change(
        db, user, change_type, field_name, old_value, new_value,
        order_id=order_id,
        customer_id=customer_id,
        row_index=row_index,
    )


def log_contract_add(db, user, customer_id, order_id, description):
    """Log a newly stored contract ("Contract for Jane Doe - Order #1234")."""
    return log_change(
        db, user, ChangeType.CONTRACT_ADD, "contract", None, description,
        customer_id=customer_id,
        order_id=order_id,
    )


def log_stage_update(db, user, old_stage, new_stage, order_id, customer_id):
    return log_change(
        db, user, ChangeType.STAGE_UPDATE, "stage", old_stage, new_stage,
        order_id=order_id,
        customer_id=customer_id,
    )


def log_customer_delete(db, user, customer_id, customer_name):
    return log_change(
        db, user, ChangeType.CUSTOMER_DELETE, "customer", customer_name, "deleted",
        customer_id=customer_id,
    )


def log_customer_restore(db, user, customer_id, customer_name):
    return log_change(
        db, user, ChangeType.CUSTOMER_RESTORE, "customer", "deleted", customer_name,
        customer_id=customer_id,
    )


PERIOD_DAYS = {"day": 1, "week": 7, "month": 30}


def history_query(
    db: Session,
    org_id: UUID,
    period: str = "all",
    customer_id: Optional[UUID] = None,
    change_type: Optional[str] = None,
    changed_by: Optional[UUID] = None,
    search: Optional[str] = None,
):
    """Change history of an organization, newest first.

    period is day, week, month (last 30 days) or all.
    """
    query = db.query(ChangeHistory).filter(ChangeHistory.org_id == org_id)

    days = PERIOD_DAYS.get(period)
    if days:
        query = query.filter(ChangeHistory.changed_at >= utcnow() - timedelta(days=days))
    if customer_id:
        query = query.filter(ChangeHistory.customer_id == customer_id)
    if change_type:
        query = query.filter(ChangeHistory.change_type == change_type)
    if changed_by:
        query = query.filter(ChangeHistory.changed_by == changed_by)
    if search:
        query = query.filter(ChangeHistory.field_name.ilike(f"%{search}%"))

    return query.order_by(ChangeHistory.changed_at.desc())


def serialize_change(change: ChangeHistory) -> dict:
    """Change entry with author, customer and order summaries."""
    data = change.to_dict()
    data["customer"] = (
        {
            "id": str(change.customer.id),
            "dbx_customer_id": change.customer.dbx_customer_id,
            "client_name": change.customer.client_name,
        }
        if change.customer else None
    )
    data["order"] = (
        {"id": str(change.order.id), "order_no": change.order.order_no}
        if change.order else None
    )
    return data
