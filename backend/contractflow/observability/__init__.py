"""Logging, request correlation, metrics and health checks"""

from .logging_config import configure_logging
from .middleware import RequestIDMiddleware, get_request_id
from .router import router

__all__ = ["configure_logging", "RequestIDMiddleware", "get_request_id", "router"]
