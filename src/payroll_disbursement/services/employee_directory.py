"""Employee directory contract and its SQL implementation.

The disbursement core does not own the employee lifecycle; it only asks
the directory for the active employees of a company when a batch is
created and for a hierarchy snapshot when resolving visibility.
"""

from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_disbursement.models import Account, Employee, EmployeeStatus, Grade, OwnerType
from payroll_disbursement.services.role_scope import EmployeeRef, HierarchySnapshot


class EmployeeDirectory(Protocol):
    """Source of employee records."""

    def list_active_employees(self, company_id: str) -> list[EmployeeRef]:
        """Active employees of a company, in a stable order."""
        ...

    def hierarchy_snapshot(self, company_id: str | None = None) -> HierarchySnapshot:
        """Employees and company accounts, optionally for one company."""
        ...


class SqlEmployeeDirectory:
    """Employee directory backed by the ORM tables."""

    def __init__(self, session: Session):
        self.session = session

    def list_active_employees(self, company_id: str) -> list[EmployeeRef]:
        rows = self.session.execute(
            select(Employee.employee_id, Employee.company_id, Grade.rank, Employee.account_id)
            .join(Grade, Employee.grade_id == Grade.grade_id)
            .where(
                Employee.company_id == company_id,
                Employee.status == EmployeeStatus.ACTIVE.value,
            )
            .order_by(Grade.rank, Employee.code, Employee.employee_id)
        ).all()
        return [
            EmployeeRef(
                employee_id=row[0],
                company_id=row[1],
                grade_rank=row[2],
                account_id=row[3],
            )
            for row in rows
        ]

    def hierarchy_snapshot(self, company_id: str | None = None) -> HierarchySnapshot:
        emp_stmt = select(
            Employee.employee_id, Employee.company_id, Grade.rank, Employee.account_id
        ).join(Grade, Employee.grade_id == Grade.grade_id)
        acct_stmt = select(Account.account_id, Account.company_id).where(
            Account.owner_type == OwnerType.COMPANY.value,
            Account.company_id.is_not(None),
        )
        if company_id is not None:
            emp_stmt = emp_stmt.where(Employee.company_id == company_id)
            acct_stmt = acct_stmt.where(Account.company_id == company_id)

        employees = tuple(
            EmployeeRef(employee_id=r[0], company_id=r[1], grade_rank=r[2], account_id=r[3])
            for r in self.session.execute(emp_stmt).all()
        )
        company_accounts = {r[0]: r[1] for r in self.session.execute(acct_stmt).all()}
        return HierarchySnapshot(employees=employees, company_accounts=company_accounts)
