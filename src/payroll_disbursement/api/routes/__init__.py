"""API routes."""

from payroll_disbursement.api.routes.accounts import router as accounts_router
from payroll_disbursement.api.routes.batches import router as batches_router
from payroll_disbursement.api.routes.employees import router as employees_router
from payroll_disbursement.api.routes.health import router as health_router
from payroll_disbursement.api.routes.metrics import router as metrics_router
from payroll_disbursement.api.routes.transactions import router as transactions_router

__all__ = [
    "accounts_router",
    "batches_router",
    "employees_router",
    "health_router",
    "metrics_router",
    "transactions_router",
]
