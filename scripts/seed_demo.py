"""Load a demo company into the database.

Usage:
    python -m scripts.seed_demo [--database-url URL] [--opening-balance N]

Creates one company with a funded main account and ten employees spread
over the six grades. Useful for setting up a development environment or
trying the API by hand.
"""

from __future__ import annotations

import argparse
import sys

from sqlalchemy import select

from payroll_disbursement.database import get_session, init_db
from payroll_disbursement.errors import PayrollError
from payroll_disbursement.models import Account, Company, Employee, Grade, OwnerType
from payroll_disbursement.services import FundingService

DEMO_EMPLOYEES = [
    ("1001", "John A", 1),
    ("1002", "Jane B", 2),
    ("1003", "Amit C", 3),
    ("1004", "Sarah D", 3),
    ("1005", "Fahim E", 4),
    ("1006", "Nadia F", 4),
    ("1007", "Kamal G", 5),
    ("1008", "Rina H", 5),
    ("1009", "Tareq I", 6),
    ("1010", "Shanta J", 6),
]


def seed_demo(company_name: str, opening_balance: int) -> str:
    """Create the demo company and return its ID."""
    with get_session() as session:
        grades = {g.rank: g for g in session.scalars(select(Grade)).all()}

        company = Company(name=company_name)
        session.add(company)
        session.flush()

        main = Account(
            owner_type=OwnerType.COMPANY.value,
            owner_id=company.company_id,
            company_id=company.company_id,
            account_name=f"{company_name} main account",
        )
        session.add(main)
        session.flush()
        company.main_account_id = main.account_id

        for code, name, rank in DEMO_EMPLOYEES:
            account = Account(
                owner_type=OwnerType.EMPLOYEE.value,
                company_id=company.company_id,
                account_name=name,
            )
            session.add(account)
            session.flush()
            employee = Employee(
                company_id=company.company_id,
                grade_id=grades[rank].grade_id,
                account_id=account.account_id,
                code=code,
                name=name,
            )
            session.add(employee)
            session.flush()
            account.owner_id = employee.employee_id
        session.commit()

        if opening_balance:
            FundingService(session).top_up(
                account_id=main.account_id,
                amount=opening_balance,
                description="Opening balance",
            )

        print(f"Company:      {company.company_id}")
        print(f"Main account: {main.account_id}")
        print(f"Employees:    {len(DEMO_EMPLOYEES)}")
        return company.company_id


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Load a demo company into the database")
    parser.add_argument(
        "--database-url",
        type=str,
        help="Database URL (default: $DATABASE_URL)",
    )
    parser.add_argument(
        "--company-name",
        type=str,
        default="Demo Company",
        help="Name of the demo company",
    )
    parser.add_argument(
        "--opening-balance",
        type=int,
        default=500_000,
        help="Initial top-up of the main account, minor units (0 to skip)",
    )
    args = parser.parse_args()

    init_db(args.database_url)
    try:
        seed_demo(args.company_name, args.opening_balance)
    except PayrollError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
