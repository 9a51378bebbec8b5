"""Domain errors raised by the disbursement core.

Every error carries a stable ``code`` and the HTTP status the API layer
answers with, so callers never have to sniff exception messages.
"""

from __future__ import annotations


class PayrollError(Exception):
    """Base class for all payroll disbursement errors."""

    code = "PAYROLL_ERROR"
    http_status = 400

    def __init__(self, message: str | None = None):
        super().__init__(message or self.code)

    def to_dict(self) -> dict[str, str]:
        """Serializable error body."""
        return {"detail": str(self), "code": self.code}


class InvalidGrade(PayrollError):
    """Raised when a grade rank falls outside 1..6."""

    code = "INVALID_GRADE"
    http_status = 422

    def __init__(self, grade_rank: object):
        self.grade_rank = grade_rank
        super().__init__(f"Grade rank must be between 1 and 6, got {grade_rank!r}")


class InvalidAmount(PayrollError):
    """Raised for non-positive or out-of-range money amounts."""

    code = "INVALID_AMOUNT"
    http_status = 422

    def __init__(self, amount: object, reason: str | None = None):
        self.amount = amount
        self.reason = reason
        msg = f"Invalid amount {amount!r}"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class InsufficientFunds(PayrollError):
    """Raised when a transfer would exceed balance plus overdraft."""

    code = "INSUFFICIENT_FUNDS"
    http_status = 409

    def __init__(self, account_id: str, requested: int, available: int):
        self.account_id = account_id
        self.requested = requested
        self.available = available
        super().__init__(
            f"Account {account_id} cannot cover {requested}: {available} available"
        )


class InvalidTransfer(PayrollError):
    """Raised for structurally invalid transfers (e.g. self-transfer)."""

    code = "INVALID_TRANSFER"
    http_status = 422


class AccountNotFound(PayrollError):
    """Raised when an account ID does not exist."""

    code = "ACCOUNT_NOT_FOUND"
    http_status = 404

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(f"Account {account_id} not found")


class TransactionNotFound(PayrollError):
    """Raised when a ledger transaction ID does not exist."""

    code = "TRANSACTION_NOT_FOUND"
    http_status = 404

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Transaction {transaction_id} not found")


class ReversalNotAllowed(PayrollError):
    """Raised when a transaction is already reversed or is itself a reversal."""

    code = "REVERSAL_NOT_ALLOWED"
    http_status = 409

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Transaction {transaction_id} cannot be reversed: {reason}")


class ExecutedAmountExceeded(PayrollError):
    """Raised when paying an item would push executed_amount past the batch total."""

    code = "EXECUTED_AMOUNT_EXCEEDED"
    http_status = 409

    def __init__(self, batch_id: str, item_id: str):
        self.batch_id = batch_id
        self.item_id = item_id
        super().__init__(f"Disbursing item {item_id} would exceed the total of batch {batch_id}")


class BatchAlreadyInProgress(PayrollError):
    """Raised when a company already has a PENDING or PROCESSING batch."""

    code = "BATCH_ALREADY_IN_PROGRESS"
    http_status = 409

    def __init__(self, company_id: str, batch_id: str):
        self.company_id = company_id
        self.batch_id = batch_id
        super().__init__(
            f"Company {company_id} already has batch {batch_id} in progress"
        )


class BatchNotFound(PayrollError):
    """Raised when a payroll batch ID does not exist."""

    code = "BATCH_NOT_FOUND"
    http_status = 404

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Payroll batch {batch_id} not found")


class ItemNotFound(PayrollError):
    """Raised when a payroll item ID does not exist."""

    code = "ITEM_NOT_FOUND"
    http_status = 404

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Payroll item {item_id} not found")


class CompanyNotFound(PayrollError):
    """Raised when a company ID does not exist."""

    code = "COMPANY_NOT_FOUND"
    http_status = 404

    def __init__(self, company_id: str):
        self.company_id = company_id
        super().__init__(f"Company {company_id} not found")


class BatchLocked(PayrollError):
    """Raised when another caller holds the batch's processing lock."""

    code = "BATCH_LOCKED"
    http_status = 409

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Payroll batch {batch_id} is being processed by another caller")


class ScopeDenied(PayrollError):
    """Raised when the actor's role does not cover the requested entity."""

    code = "SCOPE_DENIED"
    http_status = 403


class InvalidPayrollMonth(PayrollError):
    """Raised when a payroll month is not in YYYY-MM form."""

    code = "INVALID_PAYROLL_MONTH"
    http_status = 422

    def __init__(self, payroll_month: object):
        self.payroll_month = payroll_month
        super().__init__(f"Payroll month must be YYYY-MM, got {payroll_month!r}")
