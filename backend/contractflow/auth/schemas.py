"""Pydantic schemas for authentication endpoints"""

from pydantic import BaseModel, EmailStr, Field, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import Optional


class RegisterRequest(BaseModel):
    """Self-service registration. The account starts pending without a role."""
    org_slug: str = Field(..., min_length=2, max_length=100)
    username: str = Field(..., min_length=1, max_length=255)
    password: str = Field(..., min_length=1)
    email: Optional[EmailStr] = None


class LoginRequest(BaseModel):
    org_slug: str = Field(..., min_length=2, max_length=100)
    username: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class UserResponse(BaseModel):
    """User information response (excludes password_hash)."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    org_id: UUID
    username: str
    email: Optional[str] = None
    role: Optional[str] = None
    status: str
    sales_rep_name: Optional[str] = None
    last_login_at: Optional[datetime] = None
    created_at: datetime


class RegisterResponse(BaseModel):
    success: bool = True
    message: str
    user: UserResponse


class LoginResponse(BaseModel):
    """Response schema for successful login.

    Attributes:
        access_token: JWT access token
        token_type: Token type (always "bearer")
        expires_in: Token expiry in seconds
        user: The logged-in user
    """
    access_token: str
    token_type: str = "bearer"
    expires_in: int = 3600
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
