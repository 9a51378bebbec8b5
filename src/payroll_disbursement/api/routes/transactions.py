"""Ledger transaction endpoints."""

import logging
from datetime import datetime
from typing import Annotated, Literal

from fastapi import APIRouter, Path, Query, status

from payroll_disbursement.api.dependencies import ActorScope, CurrentActor, DbSession
from payroll_disbursement.api.schemas import (
    ErrorResponse,
    ReverseRequest,
    TransactionListResponse,
    TransactionResponse,
)
from payroll_disbursement.errors import ScopeDenied
from payroll_disbursement.services import LedgerService, Role, TransactionFilter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get(
    "",
    response_model=TransactionListResponse,
)
def list_transactions(
    db: DbSession,
    scope: ActorScope,
    account_id: str | None = None,
    debit_account_id: str | None = None,
    credit_account_id: str | None = None,
    payroll_batch_id: str | None = None,
    payroll_item_id: str | None = None,
    transaction_type: Annotated[str | None, Query(alias="type")] = None,
    category: str | None = None,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
    from_date: datetime | None = None,
    to_date: datetime | None = None,
    direction: Literal["asc", "desc"] = "desc",
    page: Annotated[int, Query(ge=0)] = 0,
    size: Annotated[int, Query(ge=1, le=200)] = 20,
) -> TransactionListResponse:
    """List the transactions visible to the caller, newest first by default."""
    ledger = LedgerService(db, restrict=scope.restrict_transactions)
    result = ledger.query(
        TransactionFilter(
            account_id=account_id,
            debit_account_id=debit_account_id,
            credit_account_id=credit_account_id,
            payroll_batch_id=payroll_batch_id,
            payroll_item_id=payroll_item_id,
            transaction_type=transaction_type.upper() if transaction_type else None,
            category=category.upper() if category else None,
            status=status_filter.upper() if status_filter else None,
            from_date=from_date,
            to_date=to_date,
            descending=direction == "desc",
            page=page,
            size=size,
        )
    )
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(t) for t in result.items],
        total=result.total,
        page=result.page,
        size=result.size,
        total_pages=result.total_pages,
    )


@router.post(
    "/{transaction_id}/reverse",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def reverse_transaction(
    db: DbSession,
    actor: CurrentActor,
    transaction_id: Annotated[str, Path()],
    payload: ReverseRequest,
) -> TransactionResponse:
    """Post an offsetting transaction. Admin only."""
    if actor.role != Role.ADMIN:
        raise ScopeDenied("Only an admin may reverse transactions")
    reversal = LedgerService(db).reverse(transaction_id=transaction_id, reason=payload.reason)
    db.commit()
    logger.info("Transaction %s reversed by %s as %s", transaction_id, actor.actor_id, reversal.transaction_id)
    return TransactionResponse.model_validate(reversal)
