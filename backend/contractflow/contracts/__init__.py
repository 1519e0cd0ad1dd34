"""Contract parsing endpoints and stored contracts"""

from .router import parse_router, router

__all__ = ["parse_router", "router"]
