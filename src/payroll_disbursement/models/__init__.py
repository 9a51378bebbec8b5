"""ORM models for the payroll disbursement engine."""

from payroll_disbursement.models.base import Base, TimestampMixin, new_id, utcnow
from payroll_disbursement.models.company import Account, Company, OwnerType
from payroll_disbursement.models.employee import Employee, EmployeeStatus, Grade
from payroll_disbursement.models.ledger import (
    LedgerTransaction,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
)
from payroll_disbursement.models.payroll import PayrollBatch, PayrollItem

__all__ = [
    "Account",
    "Base",
    "Company",
    "Employee",
    "EmployeeStatus",
    "Grade",
    "LedgerTransaction",
    "OwnerType",
    "PayrollBatch",
    "PayrollItem",
    "TimestampMixin",
    "TransactionCategory",
    "TransactionStatus",
    "TransactionType",
    "new_id",
    "utcnow",
]
