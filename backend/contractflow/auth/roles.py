"""User roles and account states for ContractFlow.

Roles are flat (no hierarchy); each capability lists the roles it admits:

    Capability            admin  contract_manager  sales_rep  accountant  viewer  vendor
    Manage users            x
    Edit contracts          x           x
    View all contracts      x           x                         x          x
    View own contracts                                 x
    Negotiate approvals                                                              x
"""

from enum import Enum


class UserRole(str, Enum):
    """User roles. Values are stored as TEXT in the database."""
    ADMIN = "admin"
    CONTRACT_MANAGER = "contract_manager"
    SALES_REP = "sales_rep"
    ACCOUNTANT = "accountant"
    VIEWER = "viewer"
    VENDOR = "vendor"


class UserStatus(str, Enum):
    """Account lifecycle: self-registered users wait in PENDING until an admin activates them."""
    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"


CONTRACT_EDITOR_ROLES = frozenset({UserRole.ADMIN, UserRole.CONTRACT_MANAGER})

CONTRACT_VIEWER_ROLES = frozenset({
    UserRole.ADMIN,
    UserRole.CONTRACT_MANAGER,
    UserRole.ACCOUNTANT,
    UserRole.VIEWER,
})

STAFF_ROLES = frozenset(role for role in UserRole if role != UserRole.VENDOR)
