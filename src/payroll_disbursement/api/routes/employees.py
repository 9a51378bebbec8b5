"""Employee listing endpoint."""

from typing import Annotated

from fastapi import APIRouter, Query
from sqlalchemy import select

from payroll_disbursement.api.dependencies import CurrentActor, DbSession, scope_for
from payroll_disbursement.api.schemas import EmployeeListResponse, EmployeeResponse
from payroll_disbursement.models import Employee, Grade

router = APIRouter(prefix="/employees", tags=["employees"])


@router.get("", response_model=EmployeeListResponse)
def list_employees(
    db: DbSession,
    actor: CurrentActor,
    company_id: str | None = None,
    grade: Annotated[int | None, Query(ge=1, le=6)] = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> EmployeeListResponse:
    """List the employees visible to the caller."""
    scope = scope_for(db, actor, company_filter=company_id)

    stmt = select(Employee).join(Grade, Employee.grade_id == Grade.grade_id)
    stmt = scope.restrict_employees(stmt)
    if company_id:
        stmt = stmt.where(Employee.company_id == company_id)
    if grade is not None:
        stmt = stmt.where(Grade.rank == grade)
    if status_filter:
        stmt = stmt.where(Employee.status == status_filter.upper())

    employees = db.scalars(stmt.order_by(Grade.rank, Employee.code)).unique().all()
    return EmployeeListResponse(
        items=[EmployeeResponse.model_validate(e) for e in employees],
        total=len(employees),
    )
