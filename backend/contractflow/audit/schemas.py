"""Pydantic schemas for audit log endpoints (read-only)."""

from pydantic import BaseModel, Field, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import Optional


class AuditLogResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: UUID
    org_id: UUID
    actor_id: Optional[UUID] = None
    action: str = Field(..., description="Event action (LOGIN_SUCCESS, USER_UPDATED, etc.)")
    entity_type: Optional[str] = None
    entity_id: Optional[UUID] = None
    metadata: Optional[dict] = Field(None, validation_alias="metadata_json")
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime


class AuditLogListResponse(BaseModel):
    entries: list[AuditLogResponse]
    total: int
    page: int
    per_page: int
