"""Health check endpoints.

Provides endpoints for monitoring service health and readiness.
"""

import structlog
from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from storefront.api.dependencies import SessionDep
from storefront.infrastructure.config import settings

logger = structlog.get_logger()

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    service: str
    version: str


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Check service health.

    Returns:
        Health status with service name and version.
    """
    return HealthResponse(
        status="healthy",
        service="storefront-api",
        version=settings.api_version,
    )


@router.get("/ready")
async def readiness_check(session: SessionDep):
    """Check that the database answers.

    Returns:
        Readiness status, 503 when the database is unreachable.
    """
    try:
        await session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "ready"}
