"""Payroll disbursement services."""

from payroll_disbursement.services import funding_gate
from payroll_disbursement.services.employee_directory import EmployeeDirectory, SqlEmployeeDirectory
from payroll_disbursement.services.funding_gate import GateOutcome, GateResult
from payroll_disbursement.services.funding_service import FundingService, TopUpResult
from payroll_disbursement.services.ledger_service import (
    AccountSummary,
    LedgerService,
    TransactionFilter,
    TransactionPage,
)
from payroll_disbursement.services.locking_service import BatchLockRegistry, LockingService, batch_locks
from payroll_disbursement.services.payroll_batch_service import (
    ItemOutcome,
    PayrollBatchService,
    ProcessResult,
)
from payroll_disbursement.services.role_scope import (
    Actor,
    EmployeeRef,
    HierarchySnapshot,
    Role,
    Scope,
    can_manage_company,
    require_manage_company,
    resolve_scope,
)
from payroll_disbursement.services.state_machine import (
    BatchStateMachine,
    BatchStatus,
    InvalidTransitionError,
    ItemStatus,
)

__all__ = [
    "AccountSummary",
    "Actor",
    "BatchLockRegistry",
    "BatchStateMachine",
    "BatchStatus",
    "EmployeeDirectory",
    "EmployeeRef",
    "FundingService",
    "GateOutcome",
    "GateResult",
    "HierarchySnapshot",
    "InvalidTransitionError",
    "ItemOutcome",
    "ItemStatus",
    "LedgerService",
    "LockingService",
    "PayrollBatchService",
    "ProcessResult",
    "Role",
    "Scope",
    "SqlEmployeeDirectory",
    "TopUpResult",
    "TransactionFilter",
    "TransactionPage",
    "batch_locks",
    "can_manage_company",
    "funding_gate",
    "require_manage_company",
    "resolve_scope",
]
