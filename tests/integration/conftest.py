"""Integration test fixtures: the API bound to an in-memory database."""

from collections.abc import AsyncGenerator, Generator
from types import SimpleNamespace

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.orm import Session

from payroll_disbursement.api.app import create_app
from payroll_disbursement.api.dependencies import get_app_settings, get_db_session


@pytest.fixture
def app(session_factory, settings, emitter, session) -> FastAPI:
    """Application whose sessions and settings come from the test fixtures.

    Depends on ``session`` so reference data is seeded before any request.
    """
    app = create_app(emitter=emitter)

    def override_session() -> Generator[Session, None, None]:
        with session_factory() as db:
            try:
                yield db
            except Exception:
                db.rollback()
                raise

    app.dependency_overrides[get_db_session] = override_session
    app.dependency_overrides[get_app_settings] = lambda: settings
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def admin() -> dict[str, str]:
    return {"X-Actor-Role": "ADMIN", "X-Actor-Id": "admin-1"}


def employer(company_id: str) -> dict[str, str]:
    return {"X-Actor-Role": "EMPLOYER", "X-Actor-Id": "employer-1", "X-Actor-Company-Id": company_id}


def employee_of(emp) -> dict[str, str]:
    return {
        "X-Actor-Role": "EMPLOYEE",
        "X-Actor-Id": emp.employee_id,
        "X-Actor-Grade-Rank": str(emp.grade_rank),
        "X-Actor-Company-Id": emp.company_id,
    }


@pytest.fixture
def actors() -> SimpleNamespace:
    """Header builders for each actor role."""
    return SimpleNamespace(admin=admin, employer=employer, employee=employee_of)
