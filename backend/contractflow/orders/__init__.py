"""Order items, progress billing and invoices"""

from .router import router

__all__ = ["router"]
