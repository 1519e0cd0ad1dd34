"""Request correlation middleware.

Every request gets an id (taken from the X-Request-ID header when the
caller sends one). The id lives in a context variable so log records
emitted while handling the request carry it.
"""

import logging
import time
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def get_request_id() -> str:
    return request_id_var.get() or "no-request-id"


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Tag the request with an id, log its outcome and echo the id back."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        token = request_id_var.set(request_id)
        started = time.perf_counter()

        try:
            response = await call_next(request)
        except Exception:
            elapsed_ms = (time.perf_counter() - started) * 1000
            logger.exception(f"{request.method} {request.url.path} failed after {elapsed_ms:.1f}ms")
            raise
        finally:
            request_id_var.reset(token)

        elapsed_ms = (time.perf_counter() - started) * 1000
        logger.info(
            f"{request.method} {request.url.path} -> {response.status_code} ({elapsed_ms:.1f}ms)",
            extra={"status_code": response.status_code, "duration_ms": round(elapsed_ms, 2)},
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
