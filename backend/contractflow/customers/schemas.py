"""Pydantic schemas for customer management"""

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


class CustomerUpdate(BaseModel):
    """Editable customer fields. Only fields present in the request are changed."""
    client_name: Optional[str] = Field(None, min_length=1, max_length=500)
    email: Optional[str] = Field(None, max_length=320)
    phone: Optional[str] = Field(None, max_length=50)
    street_address: Optional[str] = Field(None, max_length=500)
    city: Optional[str] = Field(None, max_length=200)
    state: Optional[str] = Field(None, max_length=50)
    zip: Optional[str] = Field(None, max_length=20)

    @field_validator('client_name')
    @classmethod
    def validate_client_name(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Client name cannot be empty")
        return v.strip() if v else v


class CustomerResponse(BaseModel):
    id: UUID
    dbx_customer_id: str
    client_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: str
    city: str
    state: str
    zip: str
    status: str
    deleted_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CustomerSummary(CustomerResponse):
    """Row of the customer list with data from the customer's orders."""
    stage: str
    contract_count: int
    order_grand_total: float
    has_validation_issues: bool
    validation_issues: Optional[List[str]] = None


class CustomerListResponse(BaseModel):
    customers: List[CustomerSummary]
    total: int


class CheckExistsResponse(BaseModel):
    exists: bool
    is_deleted: bool = False
    customer_id: Optional[UUID] = None


class AlertAcknowledgeRequest(BaseModel):
    alert_type: str = Field(..., min_length=1, max_length=100)


class InvoicingStatusUpdate(BaseModel):
    status: Literal["pending_updates", "completed"]


class CleanupResult(BaseModel):
    deleted_count: int
    deleted_ids: List[str]
