"""Role scope resolver.

Turns an explicit actor context into one predicate that decides which
employees, accounts, payroll items and ledger transactions the actor may
see. The same visible-ID sets drive both the in-memory predicate and the
SQL restriction helpers, so list views, transaction views and balance
lookups can never filter differently.

Visibility rules:
- ADMIN sees everything; a company filter narrows the view as a convenience.
- EMPLOYER sees the entities of their own company.
- EMPLOYEE sees themselves plus every employee of the same company with a
  numerically higher grade rank (their downstream). Without a grade rank
  they see only themselves.

An account is visible when its owning employee is visible, or, for
ADMIN/EMPLOYER scopes, when it belongs to a visible company. A transaction
is visible when either of its accounts is visible.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, TypeVar

from sqlalchemy import Select, or_

from payroll_disbursement.errors import ScopeDenied
from payroll_disbursement.models import (
    Account,
    Employee,
    LedgerTransaction,
    PayrollBatch,
    PayrollItem,
)

T = TypeVar("T")


class Role(str, Enum):
    """Financial actor roles."""

    ADMIN = "ADMIN"
    EMPLOYER = "EMPLOYER"
    EMPLOYEE = "EMPLOYEE"


@dataclass(frozen=True)
class Actor:
    """Caller context passed explicitly into every scoped read."""

    role: Role
    actor_id: str
    grade_rank: int | None = None
    company_id: str | None = None


@dataclass(frozen=True)
class EmployeeRef:
    """Position of one employee in the hierarchy snapshot."""

    employee_id: str
    company_id: str
    grade_rank: int
    account_id: str


@dataclass(frozen=True)
class HierarchySnapshot:
    """Employees and company-owned accounts at one point in time."""

    employees: tuple[EmployeeRef, ...] = ()
    # account_id -> company_id for accounts owned by a company
    company_accounts: Mapping[str, str] = field(default_factory=dict)

    def employee(self, employee_id: str) -> EmployeeRef | None:
        for ref in self.employees:
            if ref.employee_id == employee_id:
                return ref
        return None

    def employees_of(self, company_id: str) -> list[EmployeeRef]:
        return [ref for ref in self.employees if ref.company_id == company_id]

    def accounts_of(self, company_id: str) -> set[str]:
        return {acct for acct, owner in self.company_accounts.items() if owner == company_id}


@dataclass(frozen=True)
class Scope:
    """Visibility predicate for one actor.

    ``unrestricted`` scopes admit everything; otherwise an entity is
    visible only if its IDs fall into the visible sets.
    """

    actor: Actor
    unrestricted: bool = False
    company_ids: frozenset[str] = frozenset()
    employee_ids: frozenset[str] = frozenset()
    account_ids: frozenset[str] = frozenset()

    # ----- predicates -----

    def allows_company(self, company_id: str | None) -> bool:
        return self.unrestricted or (company_id is not None and company_id in self.company_ids)

    def allows_employee(self, employee: Employee | EmployeeRef) -> bool:
        return self.unrestricted or employee.employee_id in self.employee_ids

    def allows_account(self, account: Account | str) -> bool:
        account_id = account if isinstance(account, str) else account.account_id
        return self.unrestricted or account_id in self.account_ids

    def allows_transaction(self, txn: LedgerTransaction) -> bool:
        return (
            self.unrestricted
            or txn.debit_account_id in self.account_ids
            or txn.credit_account_id in self.account_ids
        )

    def allows_item(self, item: PayrollItem) -> bool:
        return self.unrestricted or item.employee_id in self.employee_ids

    def allows_batch(self, batch: PayrollBatch) -> bool:
        return self.allows_company(batch.company_id)

    def __call__(self, entity: Any) -> bool:
        """Dispatch to the predicate matching the entity's type."""
        if isinstance(entity, (Employee, EmployeeRef)):
            return self.allows_employee(entity)
        if isinstance(entity, Account):
            return self.allows_account(entity)
        if isinstance(entity, LedgerTransaction):
            return self.allows_transaction(entity)
        if isinstance(entity, PayrollItem):
            return self.allows_item(entity)
        if isinstance(entity, PayrollBatch):
            return self.allows_batch(entity)
        raise TypeError(f"Cannot scope entity of type {type(entity).__name__}")

    def filter(self, entities: Iterable[T]) -> list[T]:
        """Keep only the visible entities."""
        return [e for e in entities if self(e)]

    def require(self, entity: Any) -> None:
        """Raise ScopeDenied unless the entity is visible."""
        if not self(entity):
            raise ScopeDenied(f"{Role(self.actor.role).value} actor cannot access this {type(entity).__name__}")

    # ----- SQL restriction -----

    def restrict_employees(self, stmt: Select) -> Select:
        if self.unrestricted:
            return stmt
        return stmt.where(Employee.employee_id.in_(sorted(self.employee_ids)))

    def restrict_accounts(self, stmt: Select) -> Select:
        if self.unrestricted:
            return stmt
        return stmt.where(Account.account_id.in_(sorted(self.account_ids)))

    def restrict_transactions(self, stmt: Select) -> Select:
        if self.unrestricted:
            return stmt
        return stmt.where(
            or_(
                LedgerTransaction.debit_account_id.in_(sorted(self.account_ids)),
                LedgerTransaction.credit_account_id.in_(sorted(self.account_ids)),
            )
        )

    def restrict_batches(self, stmt: Select) -> Select:
        if self.unrestricted:
            return stmt
        return stmt.where(PayrollBatch.company_id.in_(sorted(self.company_ids)))


def _company_scope(actor: Actor, snapshot: HierarchySnapshot, company_id: str) -> Scope:
    refs = snapshot.employees_of(company_id)
    return Scope(
        actor=actor,
        company_ids=frozenset({company_id}),
        employee_ids=frozenset(ref.employee_id for ref in refs),
        account_ids=frozenset({ref.account_id for ref in refs} | snapshot.accounts_of(company_id)),
    )


def _employee_scope(actor: Actor, snapshot: HierarchySnapshot) -> Scope:
    me = snapshot.employee(actor.actor_id)
    if me is None:
        return Scope(actor=actor, employee_ids=frozenset({actor.actor_id}))

    company_id = actor.company_id or me.company_id
    visible = [me]
    if actor.grade_rank is not None:
        visible.extend(
            ref
            for ref in snapshot.employees_of(company_id)
            if ref.grade_rank > actor.grade_rank and ref.employee_id != me.employee_id
        )

    return Scope(
        actor=actor,
        company_ids=frozenset({company_id}),
        employee_ids=frozenset(ref.employee_id for ref in visible),
        account_ids=frozenset(ref.account_id for ref in visible),
    )


def resolve_scope(
    actor: Actor,
    snapshot: HierarchySnapshot,
    *,
    company_filter: str | None = None,
) -> Scope:
    """Resolve the visibility scope of an actor.

    Args:
        actor: Role, ID and, for employees, grade rank and company
        snapshot: Employee hierarchy to resolve against
        company_filter: Optional company narrowing

    Returns:
        Scope usable as a predicate and as a SQL restriction

    Raises:
        ScopeDenied: an EMPLOYER actor without a company
    """
    role = Role(actor.role)

    if role == Role.ADMIN:
        if company_filter is None:
            return Scope(actor=actor, unrestricted=True)
        return _company_scope(actor, snapshot, company_filter)

    if role == Role.EMPLOYER:
        if not actor.company_id:
            raise ScopeDenied("Employer actor requires a company")
        scope = _company_scope(actor, snapshot, actor.company_id)
    else:
        scope = _employee_scope(actor, snapshot)

    if company_filter is not None and company_filter not in scope.company_ids:
        return Scope(actor=actor)
    return scope


def can_manage_company(actor: Actor, company_id: str) -> bool:
    """Only an admin or the company's own employer may move company money."""
    role = Role(actor.role)
    if role == Role.ADMIN:
        return True
    return role == Role.EMPLOYER and actor.company_id == company_id


def require_manage_company(actor: Actor, company_id: str) -> None:
    """Raise ScopeDenied unless the actor may manage the company."""
    if not can_manage_company(actor, company_id):
        raise ScopeDenied(f"{Role(actor.role).value} actor cannot manage company {company_id}")
