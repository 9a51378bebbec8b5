"""Payroll batch API endpoints."""

from typing import Annotated

from fastapi import APIRouter, HTTPException, Path, Query, status

from payroll_disbursement.api.dependencies import (
    ActorScope,
    AppSettings,
    CurrentActor,
    DbSession,
    Emitter,
    batch_service,
    funding_service,
)
from payroll_disbursement.api.schemas import (
    BatchCreate,
    BatchDetailResponse,
    BatchListResponse,
    BatchResponse,
    ErrorResponse,
    GateResponse,
    ItemResponse,
    ProcessResponse,
    SalaryLineResponse,
    SalaryPreviewResponse,
    TopUpRequest,
    TopUpResponse,
)
from payroll_disbursement.calculators.salary import compute_salary_sheet
from payroll_disbursement.errors import ScopeDenied
from payroll_disbursement.services import SqlEmployeeDirectory, require_manage_company

router = APIRouter(tags=["payroll-batches"])


# ============================================================================
# Company batches
# ============================================================================


@router.post(
    "/companies/{company_id}/payroll-batches",
    response_model=BatchResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def create_batch(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    settings: AppSettings,
    company_id: Annotated[str, Path()],
    payload: BatchCreate,
) -> BatchResponse:
    """Create a payroll batch for the company's active employees."""
    require_manage_company(actor, company_id)
    batch = batch_service(db, emitter, settings).create_batch(
        company_id=company_id,
        base_salary=payload.base_salary,
        payroll_month=payload.payroll_month,
        funding_account_id=payload.funding_account_id,
    )
    return BatchResponse.model_validate(batch)


@router.get(
    "/companies/{company_id}/payroll-batches/last",
    response_model=BatchResponse,
    responses={404: {"model": ErrorResponse}},
)
def get_last_batch(
    db: DbSession,
    scope: ActorScope,
    emitter: Emitter,
    settings: AppSettings,
    company_id: Annotated[str, Path()],
) -> BatchResponse:
    """Most recent batch of a company."""
    if not scope.allows_company(company_id):
        raise ScopeDenied(f"Cannot view batches of company {company_id}")
    batch = batch_service(db, emitter, settings).get_last_batch(company_id)
    if batch is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No payroll batch for company",
        )
    return BatchResponse.model_validate(batch)


@router.get(
    "/companies/{company_id}/payroll-batches",
    response_model=BatchListResponse,
)
def list_batches(
    db: DbSession,
    scope: ActorScope,
    emitter: Emitter,
    settings: AppSettings,
    company_id: Annotated[str, Path()],
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> BatchListResponse:
    """List a company's batches, newest first."""
    if not scope.allows_company(company_id):
        raise ScopeDenied(f"Cannot view batches of company {company_id}")
    batches = batch_service(db, emitter, settings).list_batches(company_id, status_filter)
    return BatchListResponse(
        items=[BatchResponse.model_validate(b) for b in batches],
        total=len(batches),
    )


# ============================================================================
# Single batch
# ============================================================================


@router.get(
    "/payroll-batches/{batch_id}",
    response_model=BatchDetailResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_batch(
    db: DbSession,
    scope: ActorScope,
    emitter: Emitter,
    settings: AppSettings,
    batch_id: Annotated[str, Path()],
) -> BatchDetailResponse:
    """Get a batch with the items visible to the caller."""
    service = batch_service(db, emitter, settings)
    batch = service.get_batch(batch_id)
    scope.require(batch)
    response = BatchDetailResponse.model_validate(batch)
    response.items = [
        ItemResponse.model_validate(item)
        for item in scope.filter(service.list_items(batch_id))
    ]
    return response


@router.post(
    "/payroll-batches/{batch_id}/process",
    response_model=ProcessResponse,
    responses={403: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def process_batch(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    settings: AppSettings,
    batch_id: Annotated[str, Path()],
) -> ProcessResponse:
    """Run a disbursement pass; also resumes a degraded batch."""
    service = batch_service(db, emitter, settings)
    require_manage_company(actor, service.get_batch(batch_id).company_id)
    return ProcessResponse.from_result(service.process(batch_id))


@router.get(
    "/payroll-batches/{batch_id}/funding-gate",
    response_model=GateResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_funding_gate(
    db: DbSession,
    scope: ActorScope,
    emitter: Emitter,
    settings: AppSettings,
    batch_id: Annotated[str, Path()],
) -> GateResponse:
    """Compare the batch's remaining obligation with its funding balance."""
    service = batch_service(db, emitter, settings)
    batch = service.get_batch(batch_id)
    scope.require(batch)
    return GateResponse.from_result(service.evaluate_gate(batch_id))


@router.post(
    "/payroll-batches/{batch_id}/top-up",
    response_model=TopUpResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def top_up_batch(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    settings: AppSettings,
    batch_id: Annotated[str, Path()],
    payload: TopUpRequest,
) -> TopUpResponse:
    """Top up the batch's funding account, then resume it if the gate passes."""
    funding = funding_service(db, emitter, settings)
    batch = funding.batches.get_batch(batch_id)
    require_manage_company(actor, batch.company_id)

    result = funding.top_up_and_resume(batch_id=batch_id, amount=payload.amount)
    return TopUpResponse(
        transaction_id=result.transaction.transaction_id,
        account_id=result.transaction.credit_account_id,
        amount=result.transaction.amount,
        new_balance=result.new_balance,
        gate=GateResponse.from_result(result.gate) if result.gate else None,
        process_result=(
            ProcessResponse.from_result(result.process_result) if result.process_result else None
        ),
    )


# ============================================================================
# Salary preview
# ============================================================================


@router.get(
    "/salary-preview",
    response_model=SalaryPreviewResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def salary_preview(
    db: DbSession,
    scope: ActorScope,
    company_id: Annotated[str, Query()],
    base_salary: Annotated[int, Query()],
) -> SalaryPreviewResponse:
    """Salary sheet of the company's active employees visible to the caller."""
    if not scope.allows_company(company_id):
        raise ScopeDenied(f"Cannot view salaries of company {company_id}")
    employees = scope.filter(SqlEmployeeDirectory(db).list_active_employees(company_id))
    sheet = compute_salary_sheet(
        ((ref.employee_id, ref.grade_rank) for ref in employees),
        base_salary,
    )
    return SalaryPreviewResponse(
        company_id=company_id,
        base_salary=base_salary,
        employee_count=sheet.employee_count,
        total_amount=sheet.total,
        by_grade=sheet.by_grade(),
        lines=[
            SalaryLineResponse(
                employee_id=line.employee_id,
                grade_rank=line.grade_rank,
                basic=line.breakdown.basic,
                hra=line.breakdown.hra,
                medical=line.breakdown.medical,
                gross=line.breakdown.gross,
            )
            for line in sheet.lines
        ],
    )
