"""Customer management module for ContractFlow"""

from .router import router

__all__ = ["router"]
