"""Audit logging service for account and security events.

Events:
- USER_REGISTERED, LOGIN_SUCCESS, LOGIN_FAILED
- USER_UPDATED, USER_ROLE_CHANGED, USER_SUSPENDED
- PASSWORD_RESET, USER_DELETED
- CUSTOMER_PURGED (trash cleanup)

Field-level contract edits are not audit events; they go through
changes.service into change_history.
"""

from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional, Dict, Any
from fastapi import Request

from ..models.audit_log import AuditLog


def log_audit_event(
    db: Session,
    org_id: UUID,
    action: str,
    actor_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> AuditLog:
    """Create an audit log entry.

    The entry is flushed but not committed; it becomes durable with the
    caller's transaction.

    Args:
        db: Database session
        org_id: Organization ID
        action: Event action (e.g., "USER_REGISTERED", "LOGIN_SUCCESS")
        actor_id: User who performed the action (None for anonymous/system events)
        entity_type: Type of entity affected (e.g., "user", "customer")
        entity_id: ID of affected entity
        metadata: Additional context as JSON
        ip_address: Client IP address
        user_agent: Client User-Agent header

    Returns:
        AuditLog: The created audit log entry
    """
    audit_entry = AuditLog(
        org_id=org_id,
        actor_id=actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata_json=metadata,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    db.add(audit_entry)
    db.flush()

    return audit_entry


def get_client_ip(request: Request) -> Optional[str]:
    """Client IP, honouring the first hop of X-Forwarded-For."""
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else None


def log_from_request(
    db: Session,
    request: Request,
    org_id: UUID,
    action: str,
    actor_id: Optional[UUID] = None,
    entity_type: Optional[str] = None,
    entity_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> AuditLog:
    """Create an audit log entry taking IP and User-Agent from the request."""
    return log_audit_event(
        db=db,
        org_id=org_id,
        action=action,
        actor_id=actor_id,
        entity_type=entity_type,
        entity_id=entity_id,
        metadata=metadata,
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
    )
