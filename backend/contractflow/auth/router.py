"""Authentication endpoints: registration, login and current user."""

import logging
from datetime import datetime, timezone
from typing import Annotated
from fastapi import APIRouter, Depends, HTTPException, status, Request
from sqlalchemy.orm import Session
from sqlalchemy import and_

from ..database import get_db
from ..models.user import User
from ..models.org import Org
from ..audit.service import log_from_request
from .schemas import (
    RegisterRequest, RegisterResponse, LoginRequest, LoginResponse, MeResponse, UserResponse,
)
from .password import hash_password, verify_password, validate_password_length
from .jwt import create_access_token, _get_jwt_expiry_minutes
from .dependencies import CurrentUser
from .roles import UserStatus


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Authentication"])


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    data: RegisterRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Register a new account awaiting admin approval.

    Raises:
        HTTPException 400: Password too short
        HTTPException 404: Unknown organization
        HTTPException 409: Username or email already registered in the org
    """
    is_valid, message = validate_password_length(data.password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)

    org = db.query(Org).filter(Org.slug == data.org_slug).first()
    if not org:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")

    username = data.username.strip()
    existing = db.query(User).filter(User.org_id == org.id, User.username == username).first()
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Username already exists")

    email = data.email.lower() if data.email else None
    if email:
        existing_email = db.query(User).filter(User.org_id == org.id, User.email == email).first()
        if existing_email:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    user = User(
        org_id=org.id,
        username=username,
        email=email,
        password_hash=hash_password(data.password),
        role=None,
        status=UserStatus.PENDING.value,
    )
    db.add(user)
    db.flush()

    log_from_request(
        db=db,
        request=request,
        org_id=org.id,
        action="USER_REGISTERED",
        actor_id=user.id,
        entity_type="user",
        entity_id=user.id,
        metadata={"username": username},
    )
    db.commit()
    db.refresh(user)

    logger.info("User registered", extra={"org_id": org.id, "user_id": user.id})

    return RegisterResponse(
        message="Registration successful. Your account is pending admin approval.",
        user=UserResponse.model_validate(user),
    )


@router.post("/login", response_model=LoginResponse)
def login(
    credentials: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Authenticate a user and return a JWT access token.

    Pending and suspended accounts are rejected with 403 once the password
    has been verified, so the status is only revealed to the account owner.

    Raises:
        HTTPException 401: Unknown org, unknown user or wrong password
        HTTPException 403: Account pending approval or suspended
    """
    org = db.query(Org).filter(Org.slug == credentials.org_slug).first()
    if not org:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    user = db.query(User).filter(
        and_(
            User.org_id == org.id,
            User.username == credentials.username.strip()
        )
    ).first()

    if not user or not verify_password(credentials.password, user.password_hash):
        log_from_request(
            db=db,
            request=request,
            org_id=org.id,
            action="LOGIN_FAILED",
            metadata={"username": credentials.username, "reason": "invalid_credentials"},
        )
        db.commit()
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password"
        )

    if user.status != UserStatus.ACTIVE.value:
        reason = "Account pending approval" if user.status == UserStatus.PENDING.value else "Account suspended"
        log_from_request(
            db=db,
            request=request,
            org_id=org.id,
            action="LOGIN_FAILED",
            actor_id=user.id,
            metadata={"username": user.username, "reason": user.status},
        )
        db.commit()
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=reason)

    user.last_login_at = datetime.now(timezone.utc)
    log_from_request(
        db=db,
        request=request,
        org_id=org.id,
        action="LOGIN_SUCCESS",
        actor_id=user.id,
        metadata={"username": user.username},
    )
    db.commit()
    db.refresh(user)

    access_token = create_access_token(
        user_id=user.id,
        org_id=user.org_id,
        role=user.role,
        username=user.username
    )

    return LoginResponse(
        access_token=access_token,
        token_type="bearer",
        expires_in=_get_jwt_expiry_minutes() * 60,
        user=UserResponse.model_validate(user),
    )


@router.get("/me", response_model=MeResponse)
def get_me(current_user: CurrentUser):
    """Get current authenticated user information."""
    return MeResponse(user=UserResponse.model_validate(current_user))
