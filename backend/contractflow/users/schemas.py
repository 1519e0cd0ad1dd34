"""Pydantic schemas for user administration endpoints.

All schemas exclude password_hash (never returned in API responses).
"""

from pydantic import BaseModel, EmailStr, Field
from typing import Optional

from ..auth.schemas import UserResponse


class UserUpdate(BaseModel):
    """PATCH /users/{id}. Omitted fields are left unchanged; an empty
    role or sales_rep_name clears the value."""
    role: Optional[str] = Field(
        None,
        pattern="^(admin|contract_manager|sales_rep|accountant|viewer|vendor|)$",
        examples=["contract_manager"],
    )
    status: Optional[str] = Field(
        None,
        pattern="^(pending|active|suspended)$",
        examples=["active"],
    )
    email: Optional[EmailStr] = None
    sales_rep_name: Optional[str] = Field(None, max_length=255)


class PasswordReset(BaseModel):
    new_password: str = Field(..., min_length=1)


class UserListResponse(BaseModel):
    users: list[UserResponse]
    total: int
