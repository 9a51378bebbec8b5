"""Pydantic schemas for API request/response models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from payroll_disbursement.services.funding_gate import GateResult
from payroll_disbursement.services.payroll_batch_service import ProcessResult


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None


# ============================================================================
# Payroll batch schemas
# ============================================================================


class BatchCreate(BaseModel):
    """Schema for creating a payroll batch."""

    base_salary: int
    payroll_month: str = Field(examples=["2026-10"])
    funding_account_id: str | None = None


class BatchResponse(BaseModel):
    """Schema for payroll batch response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_batch_id: str
    company_id: str
    funding_account_id: str
    payroll_month: str
    base_salary: int
    status: str
    total_amount: int
    executed_amount: int
    remaining_amount: int
    employee_count: int
    created_at: datetime
    processed_at: datetime | None = None
    completed_at: datetime | None = None


class ItemResponse(BaseModel):
    """Schema for payroll item response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_item_id: str
    employee_id: str
    account_id: str
    position: int
    grade_rank: int
    basic_salary: int
    hra: int
    medical: int
    gross_salary: int
    net_amount: int
    status: str
    attempt_count: int
    failure_reason: str | None = None
    transaction_id: str | None = None
    paid_at: datetime | None = None


class BatchDetailResponse(BatchResponse):
    """Batch with the items visible to the caller."""

    items: list[ItemResponse] = []


class BatchListResponse(BaseModel):
    """Schema for listing batches."""

    items: list[BatchResponse]
    total: int


class ItemOutcomeResponse(BaseModel):
    """Status of one item after a disbursement pass."""

    model_config = ConfigDict(from_attributes=True)

    payroll_item_id: str
    employee_id: str
    net_amount: int
    status: str
    failure_reason: str | None = None
    transaction_id: str | None = None


class ProcessResponse(BaseModel):
    """Schema for a disbursement pass result."""

    model_config = ConfigDict(from_attributes=True)

    payroll_batch_id: str
    status: str
    success_count: int
    failed_count: int
    processed_amount: int
    failed_amount: int
    executed_amount: int
    total_amount: int
    items: list[ItemOutcomeResponse]

    @classmethod
    def from_result(cls, result: ProcessResult) -> "ProcessResponse":
        return cls.model_validate(result)


# ============================================================================
# Funding schemas
# ============================================================================


class GateResponse(BaseModel):
    """Schema for funding gate evaluation."""

    outcome: str
    passed: bool
    remaining_amount: int
    balance: int
    shortfall: int
    suggested_top_up: int

    @classmethod
    def from_result(cls, result: GateResult) -> "GateResponse":
        return cls(passed=result.passed, **result.to_dict())


class TopUpRequest(BaseModel):
    """Schema for a top-up request."""

    amount: int
    description: str | None = None


class TopUpResponse(BaseModel):
    """Schema for a top-up result."""

    transaction_id: str
    account_id: str
    amount: int
    new_balance: int
    gate: GateResponse | None = None
    process_result: ProcessResponse | None = None


# ============================================================================
# Salary preview schemas
# ============================================================================


class SalaryLineResponse(BaseModel):
    """One employee's salary composition."""

    employee_id: str
    grade_rank: int
    basic: int
    hra: int
    medical: int
    gross: int


class SalaryPreviewResponse(BaseModel):
    """Salary sheet for a company at a given base salary."""

    company_id: str
    base_salary: int
    employee_count: int
    total_amount: int
    by_grade: dict[int, int]
    lines: list[SalaryLineResponse]


# ============================================================================
# Account and ledger schemas
# ============================================================================


class BalanceResponse(BaseModel):
    """Schema for account balance."""

    account_id: str
    balance: int
    available_funds: int


class AccountSummaryResponse(BaseModel):
    """Schema for account movement totals."""

    model_config = ConfigDict(from_attributes=True)

    account_id: str
    balance: int
    total_credited: int
    total_debited: int
    transaction_count: int


class TransactionResponse(BaseModel):
    """Schema for a ledger transaction."""

    model_config = ConfigDict(from_attributes=True)

    transaction_id: str
    debit_account_id: str
    credit_account_id: str
    amount: int
    transaction_type: str
    category: str
    payroll_batch_id: str | None = None
    payroll_item_id: str | None = None
    reverses_transaction_id: str | None = None
    transaction_status: str
    description: str | None = None
    debit_balance_after: int
    credit_balance_after: int
    processed_at: datetime


class TransactionListResponse(BaseModel):
    """Schema for listing transactions."""

    items: list[TransactionResponse]
    total: int
    page: int
    size: int | None
    total_pages: int


class ReverseRequest(BaseModel):
    """Schema for reversing a transaction."""

    reason: str = Field(min_length=1)


# ============================================================================
# Employee schemas
# ============================================================================


class EmployeeResponse(BaseModel):
    """Schema for employee response."""

    model_config = ConfigDict(from_attributes=True)

    employee_id: str
    company_id: str
    account_id: str
    code: str
    name: str
    status: str
    grade_rank: int


class EmployeeListResponse(BaseModel):
    """Schema for listing employees."""

    items: list[EmployeeResponse]
    total: int
