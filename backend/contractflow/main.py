"""ContractFlow Backend - Main FastAPI Application

Multi-tenant construction contract management: contract parsing, customers,
orders and invoicing, vendors and vendor order approvals.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .observability import RequestIDMiddleware, configure_logging
from .observability import router as observability_router
from .auth.router import router as auth_router
from .users.router import router as users_router
from .audit.router import router as audit_router
from .customers import router as customers_router
from .contracts import parse_router as contract_parse_router
from .contracts import router as contracts_router
from .orders import router as orders_router
from .vendors import router as vendors_router
from .order_approvals import router as order_approvals_router
from .changes.router import router as timeline_router

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = get_settings()
    logger.info(f"ContractFlow API starting up (env={settings.ENV})")
    yield
    logger.info("ContractFlow API shutting down")


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Field level details for request bodies that fail validation."""
    logger.warning(f"Validation error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error": "validation_error",
            "message": "Request validation failed",
            "details": jsonable_errors(exc),
        },
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Log the database error; the client only gets a generic message."""
    logger.error(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "database_error",
            "message": "A database error occurred. Please try again later.",
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "internal_error",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


def jsonable_errors(exc: RequestValidationError) -> list:
    """Validation errors without the raw exception objects pydantic keeps in ctx."""
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


def create_app() -> FastAPI:
    """Build the FastAPI application.

    Logging is configured from settings before any router is mounted, so
    import time log records already use the configured format.

    Returns:
        FastAPI: Application with middleware, exception handlers and routers
    """
    settings = get_settings()
    configure_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    expose_docs = settings.ENV != "production"
    app = FastAPI(
        title="ContractFlow API",
        description="Multi-tenant construction contract management",
        version="0.1.0",
        docs_url="/docs" if expose_docs else None,
        redoc_url="/redoc" if expose_docs else None,
        openapi_url="/openapi.json" if expose_docs else None,
        lifespan=lifespan,
    )

    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[origin.strip() for origin in settings.CORS_ORIGINS.split(",") if origin.strip()],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Content-Disposition"],
    )

    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, database_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(observability_router)

    app.include_router(auth_router, prefix=API_PREFIX)
    app.include_router(users_router, prefix=API_PREFIX)
    app.include_router(audit_router, prefix=API_PREFIX)

    app.include_router(customers_router, prefix=API_PREFIX)
    app.include_router(contract_parse_router, prefix=API_PREFIX)
    app.include_router(contracts_router, prefix=API_PREFIX)
    app.include_router(orders_router, prefix=API_PREFIX)
    app.include_router(vendors_router, prefix=API_PREFIX)
    app.include_router(order_approvals_router, prefix=API_PREFIX)
    app.include_router(timeline_router, prefix=API_PREFIX)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, Any]:
        return {
            "name": "ContractFlow API",
            "version": "0.1.0",
            "status": "running",
            "docs": "/docs" if expose_docs else None,
        }

    @app.get(API_PREFIX, include_in_schema=False)
    async def api_root() -> dict[str, Any]:
        return {
            "version": "v1",
            "status": "active",
            "endpoints": {
                "auth": f"{API_PREFIX}/auth",
                "users": f"{API_PREFIX}/users",
                "customers": f"{API_PREFIX}/customers",
                "contracts": f"{API_PREFIX}/contracts",
                "orders": f"{API_PREFIX}/orders",
                "vendors": f"{API_PREFIX}/vendors",
                "order_approvals": f"{API_PREFIX}/order-approvals",
                "timeline": f"{API_PREFIX}/timeline",
            },
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "contractflow.main:app",
        host="0.0.0.0",
        port=8000,
        reload=get_settings().ENV == "development",
    )
