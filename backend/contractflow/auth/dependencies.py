"""FastAPI dependencies for authentication and authorization.

Usage:
    @router.get("/protected")
    def protected_endpoint(user: CurrentUser):
        ...

    @router.delete("/users/{user_id}")
    def admin_endpoint(user: User = Depends(require_roles(UserRole.ADMIN))):
        ...
"""

from typing import Callable, Annotated
from uuid import UUID

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.user import User
from .jwt import decode_token
from .roles import STAFF_ROLES, UserRole, UserStatus
from .permissions import has_role, can_edit_contracts


security = HTTPBearer()


def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """Extract and validate the JWT token, returning the authenticated user.

    Args:
        credentials: HTTP Bearer token from request header
        db: Database session

    Returns:
        User: The authenticated user object

    Raises:
        HTTPException 401: If token is missing, invalid, expired, or user not found
        HTTPException 403: If the account is pending or suspended
    """
    token = credentials.credentials

    try:
        payload = decode_token(token)

        user_id_str = payload.get("sub")
        if not user_id_str:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid token: missing user ID claim",
                headers={"WWW-Authenticate": "Bearer"},
            )

        user_id = UUID(user_id_str)

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid token claims: {str(e)}",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = db.query(User).filter(User.id == user_id).first()
    if not user:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User not found",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if user.status != UserStatus.ACTIVE.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"User account is {user.status}",
        )

    return user


def require_roles(*allowed_roles: UserRole) -> Callable:
    """Create a dependency that admits only users holding one of the roles.

    Args:
        allowed_roles: Roles allowed to access the endpoint

    Returns:
        Callable: FastAPI dependency returning the current user

    Example:
        @router.post("/vendors")
        def create_vendor(
            user: User = Depends(require_roles(UserRole.ADMIN, UserRole.CONTRACT_MANAGER))
        ):
            ...
    """

    def role_dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_role(current_user, allowed_roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=(
                    "Insufficient permissions. Required role: "
                    + " or ".join(r.value for r in allowed_roles)
                ),
            )
        return current_user

    return role_dependency


def get_current_admin(current_user: User = Depends(require_roles(UserRole.ADMIN))) -> User:
    """Convenience dependency for admin-only endpoints."""
    return current_user


def get_contract_editor(current_user: User = Depends(get_current_user)) -> User:
    """Dependency for endpoints that modify contracts (admin, contract_manager)."""
    if not can_edit_contracts(current_user):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to edit contracts",
        )
    return current_user


def get_staff_user(current_user: User = Depends(get_current_user)) -> User:
    """Dependency for internal endpoints closed to vendor portal users."""
    if not has_role(current_user, STAFF_ROLES):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Vendor users cannot access this resource",
        )
    return current_user


CurrentUser = Annotated[User, Depends(get_current_user)]
StaffUser = Annotated[User, Depends(get_staff_user)]
ContractEditor = Annotated[User, Depends(get_contract_editor)]
AdminUser = Annotated[User, Depends(get_current_admin)]
