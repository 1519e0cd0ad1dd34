"""User administration endpoints.

Admins approve self-registered accounts by assigning a role and setting the
status to active, reset passwords, and suspend accounts. All mutations are
written to the audit log. Vendor portal users read and edit their own
vendor record under /users/vendor.
"""

from fastapi import APIRouter, Depends, HTTPException, status, Request, Query
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Optional

from ..database import get_db
from ..models.user import User
from ..auth.dependencies import AdminUser, CurrentUser
from ..auth.password import hash_password, validate_password_length
from ..auth.permissions import is_vendor
from ..auth.roles import UserStatus
from ..auth.schemas import UserResponse
from ..audit.service import log_from_request
from ..models.base import utcnow
from ..models.vendor import Vendor
from ..vendors.schemas import VendorProfileUpdate, VendorResponse
from ..vendors.service import VendorNotFoundError, vendor_for_user
from .schemas import UserUpdate, PasswordReset, UserListResponse


router = APIRouter(prefix="/users", tags=["User Management"])


def _get_org_user(db: Session, user_id: UUID, org_id: UUID) -> User:
    user = db.query(User).filter(User.id == user_id, User.org_id == org_id).first()
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    return user


@router.get("", response_model=UserListResponse)
def list_users(
    current_user: AdminUser,
    db: Session = Depends(get_db),
    status_filter: Optional[str] = Query(None, alias="status"),
    role: Optional[str] = Query(None),
) -> UserListResponse:
    """List users in the organization, newest first."""
    query = db.query(User).filter(User.org_id == current_user.org_id)
    if status_filter:
        query = query.filter(User.status == status_filter)
    if role:
        query = query.filter(User.role == role)

    users = query.order_by(User.created_at.desc()).all()
    return UserListResponse(users=users, total=len(users))


def _own_vendor(db: Session, user: User) -> Vendor:
    """Vendor record of a vendor portal user.

    Raises:
        HTTPException 403: The user is not a vendor
        HTTPException 400: The user has no email to match on
        HTTPException 404: No vendor record carries the user's email
    """
    if not is_vendor(user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only vendor users can access their vendor profile",
        )
    if not user.email:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="User email is required to find vendor profile",
        )
    try:
        return vendor_for_user(db, user)
    except VendorNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))


@router.get("/vendor", response_model=VendorResponse)
def get_own_vendor(current_user: CurrentUser, db: Session = Depends(get_db)):
    return _own_vendor(db, current_user)


@router.patch("/vendor", response_model=VendorResponse)
def update_own_vendor(data: VendorProfileUpdate, current_user: CurrentUser, db: Session = Depends(get_db)):
    """Let a vendor user edit the contact details of their own record."""
    vendor = _own_vendor(db, current_user)
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(vendor, field, value)
    vendor.updated_at = utcnow()
    db.commit()
    db.refresh(vendor)
    return vendor


@router.get("/{user_id}", response_model=UserResponse)
def get_user(user_id: UUID, current_user: AdminUser, db: Session = Depends(get_db)):
    return _get_org_user(db, user_id, current_user.org_id)


@router.patch("/{user_id}", response_model=UserResponse)
def update_user(
    user_id: UUID,
    request: Request,
    data: UserUpdate,
    current_user: AdminUser,
    db: Session = Depends(get_db),
):
    """Update role, status, email or sales rep name.

    Raises:
        HTTPException 400: Admin tries to suspend or deactivate themselves
        HTTPException 404: User not found in this organization
        HTTPException 409: Email already used by another user
    """
    user = _get_org_user(db, user_id, current_user.org_id)
    fields = data.model_dump(exclude_unset=True)

    if user.id == current_user.id and fields.get("status", UserStatus.ACTIVE.value) != UserStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot change the status of your own account",
        )

    if fields.get("email"):
        email = fields["email"].lower()
        clash = db.query(User).filter(
            User.org_id == current_user.org_id,
            User.email == email,
            User.id != user.id,
        ).first()
        if clash:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already registered")

    changes = {}
    for field, value in fields.items():
        if field in ("role", "sales_rep_name", "email"):
            value = value or None
        old = getattr(user, field)
        if old != value:
            setattr(user, field, value)
            changes[field] = {"old": old, "new": getattr(user, field)}

    if changes:
        log_from_request(
            db=db,
            request=request,
            org_id=current_user.org_id,
            action="USER_UPDATED",
            actor_id=current_user.id,
            entity_type="user",
            entity_id=user.id,
            metadata=changes,
        )
        if "role" in changes:
            log_from_request(
                db=db,
                request=request,
                org_id=current_user.org_id,
                action="USER_ROLE_CHANGED",
                actor_id=current_user.id,
                entity_type="user",
                entity_id=user.id,
                metadata={"old_role": changes["role"]["old"], "new_role": changes["role"]["new"]},
            )

    db.commit()
    db.refresh(user)
    return user


@router.post("/{user_id}/reset-password")
def reset_password(
    user_id: UUID,
    request: Request,
    data: PasswordReset,
    current_user: AdminUser,
    db: Session = Depends(get_db),
):
    is_valid, message = validate_password_length(data.new_password)
    if not is_valid:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=message)

    user = _get_org_user(db, user_id, current_user.org_id)
    user.password_hash = hash_password(data.new_password)

    log_from_request(
        db=db,
        request=request,
        org_id=current_user.org_id,
        action="PASSWORD_RESET",
        actor_id=current_user.id,
        entity_type="user",
        entity_id=user.id,
    )
    db.commit()

    return {"success": True}


@router.delete("/{user_id}")
def delete_user(
    user_id: UUID,
    request: Request,
    current_user: AdminUser,
    db: Session = Depends(get_db),
):
    """Suspend a user. Rows they authored in change_history stay attributed."""
    if user_id == current_user.id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete your own account")

    user = _get_org_user(db, user_id, current_user.org_id)
    user.status = UserStatus.SUSPENDED.value

    log_from_request(
        db=db,
        request=request,
        org_id=current_user.org_id,
        action="USER_SUSPENDED",
        actor_id=current_user.id,
        entity_type="user",
        entity_id=user.id,
    )
    db.commit()

    return {"success": True}
