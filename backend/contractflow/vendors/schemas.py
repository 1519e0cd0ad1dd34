"""Vendor schemas"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class VendorFields(BaseModel):
    phone: Optional[str] = None
    contact_person: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip: Optional[str] = None
    category: Optional[str] = None
    notes: Optional[str] = None
    specialties: Optional[List[str]] = None

    @field_validator(
        'phone', 'contact_person', 'address', 'city', 'state', 'zip', 'category', 'notes',
    )
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v)


class VendorBase(VendorFields):
    email: Optional[str] = None

    @field_validator('email')
    @classmethod
    def blank_email_to_none(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v)


class VendorCreate(VendorBase):
    name: str = Field(..., min_length=1, max_length=255)
    status: str = Field("active", pattern="^(active|inactive)$")

    @field_validator('name')
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Vendor name is required")
        return v


class VendorUpdate(VendorBase):
    name: Optional[str] = Field(None, max_length=255)
    status: Optional[str] = Field(None, pattern="^(active|inactive)$")

    @field_validator('name')
    @classmethod
    def strip_name(cls, v: Optional[str]) -> Optional[str]:
        return _clean(v)


class VendorProfileUpdate(VendorFields):
    """Fields a vendor user may change on their own record.

    Name, email and status stay under the organization's control.
    """


class VendorResponse(BaseModel):
    id: UUID
    name: str
    email: Optional[str]
    phone: Optional[str]
    contact_person: Optional[str]
    address: Optional[str]
    city: Optional[str]
    state: Optional[str]
    zip: Optional[str]
    category: Optional[str]
    status: str
    notes: Optional[str]
    specialties: Optional[List[str]]
    deleted_at: Optional[datetime]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class VendorListResponse(BaseModel):
    vendors: List[VendorResponse]
    pagination: Pagination


class VendorImportError(BaseModel):
    row: int
    name: Optional[str]
    error: str


class VendorImportResult(BaseModel):
    total_rows: int
    imported_count: int
    skipped_count: int
    error_count: int
    errors: List[VendorImportError]
