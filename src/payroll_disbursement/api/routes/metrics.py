"""Metrics endpoint."""

from typing import Literal

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from payroll_disbursement.api.dependencies import DbSession
from payroll_disbursement.metrics import MetricsCollector

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
def get_metrics(
    db: DbSession,
    format: Literal["prometheus", "json"] = "prometheus",
    company_id: str | None = None,
) -> Response:
    """Disbursement metrics in Prometheus text or JSON format."""
    metrics = MetricsCollector(db, company_id=company_id).collect_all()
    if format == "json":
        return JSONResponse(metrics.to_dict())
    return PlainTextResponse(metrics.to_prometheus(), media_type="text/plain; version=0.0.4")
