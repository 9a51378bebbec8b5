"""Pytest fixtures for payroll disbursement tests."""

from __future__ import annotations

from collections.abc import Generator, Sequence

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_disbursement.config import Settings
from payroll_disbursement.database import make_engine, make_session_factory, seed_reference_data
from payroll_disbursement.events import DomainEvent, EventEmitter
from payroll_disbursement.models import (
    Account,
    Base,
    Company,
    Employee,
    EmployeeStatus,
    Grade,
    OwnerType,
    TransactionCategory,
    TransactionType,
)
from payroll_disbursement.services import (
    BatchLockRegistry,
    FundingService,
    LedgerService,
    LockingService,
    PayrollBatchService,
)

# In-memory SQLite shared across threads through a StaticPool
TEST_DATABASE_URL = "sqlite:///:memory:"

EXTERNAL_ACCOUNT_ID = "external-funding-source"


def make_test_settings(**overrides) -> Settings:
    values = dict(
        database_url=TEST_DATABASE_URL,
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        top_up_increment=1000,
        min_top_up=1000,
        max_top_up=1_000_000,
        batch_lock_timeout_seconds=1.0,
        external_funding_account_id=EXTERNAL_ACCOUNT_ID,
    )
    values.update(overrides)
    return Settings(**values)


@pytest.fixture
def settings() -> Settings:
    """Deterministic settings, independent of the environment."""
    return make_test_settings()


@pytest.fixture
def engine():
    """Create a fresh in-memory database per test."""
    engine = make_engine(TEST_DATABASE_URL)
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture
def session(session_factory, settings) -> Generator[Session, None, None]:
    """Database session with grades and the external account seeded."""
    with session_factory() as session:
        seed_reference_data(session, settings)
        session.commit()
        yield session
        session.rollback()


@pytest.fixture
def events() -> list[DomainEvent]:
    """Every event the test emitter publishes, in order."""
    return []


@pytest.fixture
def emitter(events) -> EventEmitter:
    emitter = EventEmitter()
    emitter.on_all(events.append)
    return emitter


@pytest.fixture
def ledger(session) -> LedgerService:
    return LedgerService(session)


@pytest.fixture
def lock_registry() -> BatchLockRegistry:
    """Private lock registry so tests never share locks."""
    return BatchLockRegistry()


@pytest.fixture
def batch_service(session, ledger, emitter, settings, lock_registry) -> PayrollBatchService:
    return PayrollBatchService(
        session,
        ledger=ledger,
        emitter=emitter,
        settings=settings,
        locking=LockingService(session, registry=lock_registry, timeout=1.0),
    )


@pytest.fixture
def funding_service(session, ledger, batch_service, emitter, settings) -> FundingService:
    return FundingService(
        session,
        ledger=ledger,
        batches=batch_service,
        emitter=emitter,
        settings=settings,
    )


class DataFactory:
    """Builds companies, accounts and employees for tests.

    Opening balances are posted as ledger top-ups from the external
    account, so balances always agree with the transaction history.
    """

    def __init__(self, session: Session):
        self.session = session
        self._codes = 0

    def grade(self, rank: int) -> Grade:
        return self.session.scalars(select(Grade).where(Grade.rank == rank)).one()

    def account(
        self,
        *,
        company: Company | None = None,
        owner_type: OwnerType = OwnerType.COMPANY,
        balance: int = 0,
        overdraft: int = 0,
        name: str = "Test account",
    ) -> Account:
        account = Account(
            owner_type=owner_type.value,
            company_id=company.company_id if company else None,
            account_name=name,
            current_balance=0,
            overdraft_limit=overdraft,
        )
        self.session.add(account)
        self.session.flush()
        if balance:
            self.fund(account, balance)
        self.session.commit()
        return account

    def fund(self, account: Account, amount: int) -> None:
        LedgerService(self.session).transfer(
            debit_account_id=EXTERNAL_ACCOUNT_ID,
            credit_account_id=account.account_id,
            amount=amount,
            transaction_type=TransactionType.TOP_UP,
            category=TransactionCategory.SYSTEM,
            metadata={"description": "Opening balance"},
        )
        self.session.commit()

    def company(self, name: str = "Acme Ltd", *, balance: int = 0, overdraft: int = 0) -> Company:
        company = Company(name=name)
        self.session.add(company)
        self.session.flush()
        main = self.account(
            company=company,
            balance=balance,
            overdraft=overdraft,
            name=f"{name} main account",
        )
        main.owner_id = company.company_id
        company.main_account_id = main.account_id
        self.session.commit()
        return company

    def employee(
        self,
        company: Company,
        rank: int,
        *,
        code: str | None = None,
        name: str | None = None,
        status: EmployeeStatus = EmployeeStatus.ACTIVE,
    ) -> Employee:
        self._codes += 1
        code = code or f"E{self._codes:04d}"
        account = self.account(company=company, owner_type=OwnerType.EMPLOYEE, name=name or code)
        employee = Employee(
            company_id=company.company_id,
            grade_id=self.grade(rank).grade_id,
            account_id=account.account_id,
            code=code,
            name=name or f"Employee {code}",
            status=status.value,
        )
        self.session.add(employee)
        self.session.flush()
        account.owner_id = employee.employee_id
        self.session.commit()
        return employee

    def staff(self, company: Company, ranks: Sequence[int]) -> list[Employee]:
        return [self.employee(company, rank) for rank in ranks]


@pytest.fixture
def factory(session) -> DataFactory:
    return DataFactory(session)
