"""Role checks shared by routers.

These are plain predicates over a User so they can be used both inside
FastAPI dependencies and in service code that filters query results.
"""

from typing import Iterable, Optional, Union

from sqlalchemy import or_

from ..models.user import User
from ..models.order import Order
from .roles import UserRole, CONTRACT_EDITOR_ROLES, CONTRACT_VIEWER_ROLES


def has_role(user: Optional[User], required: Union[UserRole, str, Iterable]) -> bool:
    """Return True if the user holds the role (or one of the roles).

    Users without a role (pending registrations) never match.
    """
    if user is None or not user.role:
        return False

    if isinstance(required, (UserRole, str)):
        required = [required]

    return user.role in {UserRole(r).value for r in required}


def is_admin(user: Optional[User]) -> bool:
    return has_role(user, UserRole.ADMIN)


def is_vendor(user: Optional[User]) -> bool:
    return has_role(user, UserRole.VENDOR)


def can_edit_contracts(user: Optional[User]) -> bool:
    return has_role(user, CONTRACT_EDITOR_ROLES)


def can_view_all_contracts(user: Optional[User]) -> bool:
    return has_role(user, CONTRACT_VIEWER_ROLES)


def can_manage_users(user: Optional[User]) -> bool:
    return is_admin(user)


def contract_filter(user: Optional[User]):
    """SQL predicate restricting orders to those the user may see.

    Returns None when no restriction applies. Sales reps only see orders whose
    sales_rep matches their configured sales_rep_name or their username.
    """
    if not has_role(user, UserRole.SALES_REP):
        return None

    names = {user.username}
    if user.sales_rep_name:
        names.add(user.sales_rep_name)

    return or_(*[Order.sales_rep == name for name in sorted(names)])
