"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from challengehub import __version__
from challengehub.api.dependencies import AppSettings, DbSession

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    timestamp: datetime
    database: str
    processor_mode: str
    webhooks_configured: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
async def health_check(db: DbSession, settings: AppSettings) -> HealthResponse:
    """Report database reachability and how the processor is wired.

    A missing webhook secret degrades the service: every delivery would be
    rejected and funding would only settle through explicit confirmation.
    """
    db_ok = True
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError as exc:
        logger.warning("Database health check failed: %s", exc)
        db_ok = False

    webhooks_configured = bool(settings.webhook_secret)
    return HealthResponse(
        status="healthy" if db_ok and webhooks_configured else "degraded",
        version=__version__,
        timestamp=datetime.now(timezone.utc),
        database="healthy" if db_ok else "unhealthy",
        processor_mode=settings.processor_mode,
        webhooks_configured=webhooks_configured,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    """Readiness check for container orchestration."""
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
