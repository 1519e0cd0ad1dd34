"""Audit log query endpoint (admin only).

Audit logs are immutable and cannot be created, updated, or deleted through
the API.
"""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from datetime import datetime
from typing import Optional

from ..database import get_db
from ..models.audit_log import AuditLog
from ..auth.dependencies import AdminUser
from .schemas import AuditLogListResponse


router = APIRouter(prefix="/audit", tags=["Audit Logs"])


@router.get("", response_model=AuditLogListResponse)
def query_audit_logs(
    current_user: AdminUser,
    db: Session = Depends(get_db),
    action: Optional[str] = Query(None, description="Filter by action, e.g. LOGIN_FAILED"),
    entity_type: Optional[str] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    page: int = Query(1, ge=1),
    per_page: int = Query(50, ge=1, le=100),
) -> AuditLogListResponse:
    """Query the organization's audit log, newest first."""
    query = db.query(AuditLog).filter(AuditLog.org_id == current_user.org_id)

    if action:
        query = query.filter(AuditLog.action == action)
    if entity_type:
        query = query.filter(AuditLog.entity_type == entity_type)
    if start_date:
        query = query.filter(AuditLog.created_at >= start_date)
    if end_date:
        query = query.filter(AuditLog.created_at <= end_date)

    total = query.count()
    entries = (
        query.order_by(AuditLog.created_at.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )

    return AuditLogListResponse(entries=entries, total=total, page=page, per_page=per_page)
