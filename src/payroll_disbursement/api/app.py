"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payroll_disbursement import __version__
from payroll_disbursement.api.routes import (
    accounts_router,
    batches_router,
    employees_router,
    health_router,
    metrics_router,
    transactions_router,
)
from payroll_disbursement.database import init_db
from payroll_disbursement.errors import PayrollError
from payroll_disbursement.events import EventEmitter, log_event

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    init_db()
    yield


def create_app(emitter: EventEmitter | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payroll Disbursement API",
        description="Payroll batch disbursement with a role-scoped ledger",
        version=__version__,
        lifespan=lifespan,
    )

    if emitter is None:
        emitter = EventEmitter()
        emitter.on_all(log_event)
    app.state.emitter = emitter

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(PayrollError)
    async def payroll_error_handler(request: Request, exc: PayrollError) -> JSONResponse:
        """Map domain errors to their HTTP status and error code."""
        logger.info("%s %s rejected: %s %s", request.method, request.url.path, exc.code, exc)
        return JSONResponse(status_code=exc.http_status, content=exc.to_dict())

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(metrics_router)
    app.include_router(batches_router, prefix="/api/v1")
    app.include_router(accounts_router, prefix="/api/v1")
    app.include_router(transactions_router, prefix="/api/v1")
    app.include_router(employees_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
