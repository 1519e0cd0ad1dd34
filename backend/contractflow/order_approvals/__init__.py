"""Vendor negotiation workflow (order approvals)"""

from .router import router

__all__ = ["router"]
