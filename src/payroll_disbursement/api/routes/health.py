"""Health check endpoints."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError

from payroll_disbursement.api.dependencies import AppSettings, DbSession
from payroll_disbursement.database import GRADE_NAMES
from payroll_disbursement.models import Account, Grade

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: datetime
    database: str
    version: str


class ReadinessResponse(BaseModel):
    """Readiness check response; ``missing`` names absent reference data."""

    status: str
    missing: list[str] = []


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
)
def health_check(db: DbSession, settings: AppSettings) -> HealthResponse:
    """Check API and database health."""
    db_status = "unhealthy"
    try:
        db.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError:
        logger.warning("Database health check failed", exc_info=True)

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        database=db_status,
        version=settings.engine_version,
    )


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
def readiness_check(db: DbSession, settings: AppSettings):
    """Ready once the grade table and the external funding account exist."""
    missing: list[str] = []
    grade_count = db.scalar(select(func.count()).select_from(Grade)) or 0
    if grade_count < len(GRADE_NAMES):
        missing.append("grades")
    if db.get(Account, settings.external_funding_account_id) is None:
        missing.append("external_funding_account")

    if missing:
        logger.warning("Not ready, missing reference data: %s", ", ".join(missing))
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not_ready", "missing": missing},
        )
    return ReadinessResponse(status="ready")


@router.get("/live", status_code=status.HTTP_200_OK)
def liveness_check() -> dict[str, str]:
    """Liveness check for container orchestration."""
    return {"status": "alive"}
