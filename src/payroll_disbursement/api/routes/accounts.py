"""Account balance and top-up endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path

from payroll_disbursement.api.dependencies import (
    ActorScope,
    AppSettings,
    CurrentActor,
    DbSession,
    Emitter,
    funding_service,
)
from payroll_disbursement.api.schemas import (
    AccountSummaryResponse,
    BalanceResponse,
    ErrorResponse,
    TopUpRequest,
    TopUpResponse,
)
from payroll_disbursement.errors import AccountNotFound, ScopeDenied
from payroll_disbursement.models import Account
from payroll_disbursement.services import LedgerService, Role, require_manage_company

router = APIRouter(prefix="/accounts", tags=["accounts"])


def _require_visible(scope, account_id: str) -> None:
    if not scope.allows_account(account_id):
        raise ScopeDenied(f"Cannot view account {account_id}")


@router.post(
    "/{account_id}/top-up",
    response_model=TopUpResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
def top_up_account(
    db: DbSession,
    actor: CurrentActor,
    emitter: Emitter,
    settings: AppSettings,
    account_id: Annotated[str, Path()],
    payload: TopUpRequest,
) -> TopUpResponse:
    """Credit an account from the external funding source."""
    account = db.get(Account, account_id)
    if account is None:
        raise AccountNotFound(account_id)
    if account.company_id is None:
        if actor.role != Role.ADMIN:
            raise ScopeDenied(f"Only an admin may top up account {account_id}")
    else:
        require_manage_company(actor, account.company_id)

    result = funding_service(db, emitter, settings).top_up(
        account_id=account_id,
        amount=payload.amount,
        description=payload.description,
    )
    return TopUpResponse(
        transaction_id=result.transaction.transaction_id,
        account_id=account_id,
        amount=result.transaction.amount,
        new_balance=result.new_balance,
    )


@router.get(
    "/{account_id}/balance",
    response_model=BalanceResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_balance(
    db: DbSession,
    scope: ActorScope,
    account_id: Annotated[str, Path()],
) -> BalanceResponse:
    """Current balance of an account visible to the caller."""
    _require_visible(scope, account_id)
    ledger = LedgerService(db)
    return BalanceResponse(
        account_id=account_id,
        balance=ledger.balance_of(account_id),
        available_funds=ledger.available_funds(account_id),
    )


@router.get(
    "/{account_id}/summary",
    response_model=AccountSummaryResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)
def get_summary(
    db: DbSession,
    scope: ActorScope,
    account_id: Annotated[str, Path()],
) -> AccountSummaryResponse:
    """Movement totals of an account visible to the caller."""
    _require_visible(scope, account_id)
    return AccountSummaryResponse.model_validate(LedgerService(db).summarize(account_id))
