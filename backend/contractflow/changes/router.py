"""Organization-wide change timeline."""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session, joinedload

from ..database import get_db
from ..auth.dependencies import StaffUser
from ..auth.permissions import contract_filter
from ..models.change_history import ChangeHistory, ChangeType
from ..models.order import Order
from .service import history_query, serialize_change


router = APIRouter(prefix="/timeline", tags=["Change History"])


@router.get("")
def get_timeline(
    current_user: StaffUser,
    db: Session = Depends(get_db),
    period: str = Query("all", pattern="^(day|week|month|all)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    offset: Optional[int] = Query(None, ge=0),
    change_type: Optional[ChangeType] = Query(None),
    user_id: Optional[UUID] = Query(None),
    customer_id: Optional[UUID] = Query(None),
    search: Optional[str] = Query(None),
):
    """Latest changes across all customers of the organization.

    Sales reps only see changes on their own orders. offset takes
    precedence over page when both are given.
    """
    query = history_query(
        db,
        current_user.org_id,
        period=period,
        customer_id=customer_id,
        change_type=change_type.value if change_type else None,
        changed_by=user_id,
        search=search,
    )

    predicate = contract_filter(current_user)
    if predicate is not None:
        query = query.join(Order, ChangeHistory.order_id == Order.id).filter(predicate)

    total = query.count()
    if offset is None:
        offset = (page - 1) * limit
    else:
        page = offset // limit + 1
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
        "changes": [serialize_change(c) for c in changes],
        "total": total,
        "page": page,
        "limit": limit,
        "has_more": offset + limit < total,
    }
