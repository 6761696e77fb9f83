"""Storefront API main application module.

This module initializes the FastAPI application and configures
logging, middleware, routers, exception handlers and startup/shutdown
events.
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from storefront.api.auth import router as auth_router
from storefront.api.cart import router as cart_router
from storefront.api.health import router as health_router
from storefront.api.middleware import setup_middleware
from storefront.api.orders import admin_router as admin_orders_router
from storefront.api.orders import router as orders_router
from storefront.api.products import router as products_router
from storefront.api.wishlist import router as wishlist_router
from storefront.domain.exceptions import DomainError
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import engine

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(message)s",
    stream=sys.stderr,
)
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.JSONRenderer(),
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    wrapper_class=structlog.stdlib.BoundLogger,
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup and shutdown events.

    Args:
        app: The FastAPI application instance.

    Yields:
        None after startup, cleanup happens after yield.
    """
    logger.info(
        "Starting Storefront API",
        version=settings.api_version,
        debug=settings.debug,
    )

    yield

    logger.info("Shutting down Storefront API")
    await engine.dispose()


app = FastAPI(
    title="Storefront API",
    description="E-commerce backend: catalog, cart, checkout and order lifecycle",
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware (must be added before custom middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Setup custom middleware (request ID, error handling)
setup_middleware(app)

# Include routers
app.include_router(health_router, tags=["Health"])
app.include_router(auth_router, prefix=settings.api_prefix)
app.include_router(products_router, prefix=settings.api_prefix)
app.include_router(cart_router, prefix=settings.api_prefix)
app.include_router(orders_router, prefix=settings.api_prefix)
app.include_router(admin_orders_router, prefix=settings.api_prefix)
app.include_router(wishlist_router, prefix=settings.api_prefix)


# ============================================================================
# Custom Exception Handlers
# ============================================================================


def _error_response(request: Request, status_code: int, error_code: str, message: str, details) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": getattr(request.state, "request_id", None),
        },
    )


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError):
    """Render business rule violations with their error code and status."""
    if exc.status_code >= 500:
        logger.warning(
            "Request failed",
            path=request.url.path,
            error_code=exc.error_code,
            details=exc.details,
        )
    return _error_response(request, exc.status_code, exc.error_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Render request validation failures as 400 VALIDATION_ERROR."""
    errors = [
        {
            "field": ".".join(str(part) for part in err.get("loc", ())[1:]),
            "message": err.get("msg", ""),
        }
        for err in exc.errors()
    ]
    return _error_response(request, 400, "VALIDATION_ERROR", "Request validation failed", {"errors": errors})


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    detail = exc.detail
    if isinstance(detail, dict):
        error_code = detail.get("error_code", "ERROR")
        message = detail.get("message", str(detail))
        details = detail.get("details", {})
    else:
        error_code = "ERROR"
        message = str(detail)
        details = {}

    return _error_response(request, exc.status_code, error_code, message, details)


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions with consistent format."""
    logger.exception(
        "Unhandled exception in handler",
        path=request.url.path,
        method=request.method,
        error=str(exc),
    )
    return _error_response(request, 500, "INTERNAL_ERROR", "An internal error occurred", {})
