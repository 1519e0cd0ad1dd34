"""SQLAlchemy Models for ContractFlow"""

from .base import Base
from .org import Org
from .user import User
from .audit_log import AuditLog
from .customer import Customer
from .order import Order, OrderItem
from .invoice import Invoice
from .change_history import ChangeHistory, ChangeType, AlertAcknowledgment
from .vendor import Vendor
from .order_approval import OrderApproval, OrderApprovalItem, ReferenceNumberSequence

__all__ = [
    "Base",
    "Org",
    "User",
    "AuditLog",
    "Customer",
    "Order",
    "OrderItem",
    "Invoice",
    "ChangeHistory",
    "ChangeType",
    "AlertAcknowledgment",
    "Vendor",
    "OrderApproval",
    "OrderApprovalItem",
    "ReferenceNumberSequence",
]
