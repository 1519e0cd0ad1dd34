"""Vendor directory"""

from .router import router

__all__ = ["router"]
