"""Funding account top-ups and the top-up-then-resume protocol."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from payroll_disbursement.config import Settings, get_settings
from payroll_disbursement.errors import InvalidAmount
from payroll_disbursement.events import AccountToppedUp, EventEmitter, EventMetadata
from payroll_disbursement.models import (
    Account,
    LedgerTransaction,
    TransactionCategory,
    TransactionType,
)
from payroll_disbursement.services.funding_gate import GateResult
from payroll_disbursement.services.ledger_service import LedgerService
from payroll_disbursement.services.payroll_batch_service import PayrollBatchService, ProcessResult
from payroll_disbursement.services.state_machine import BatchStatus

logger = logging.getLogger(__name__)


@dataclass
class TopUpResult:
    """Outcome of a top-up, and of the resume it may have triggered."""

    transaction: LedgerTransaction
    new_balance: int
    gate: GateResult | None = None
    process_result: ProcessResult | None = None

    @property
    def resumed(self) -> bool:
        return self.process_result is not None


class FundingService:
    """Credits funding accounts from the external funding source."""

    def __init__(
        self,
        session: Session,
        *,
        ledger: LedgerService | None = None,
        batches: PayrollBatchService | None = None,
        emitter: EventEmitter | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.ledger = ledger or LedgerService(session)
        self.emitter = emitter or EventEmitter()
        self.batches = batches or PayrollBatchService(
            session,
            ledger=self.ledger,
            emitter=self.emitter,
            settings=self.settings,
        )

    def top_up(
        self,
        *,
        account_id: str,
        amount: int,
        description: str | None = None,
    ) -> TopUpResult:
        """Credit an account from the external funding source.

        Raises:
            InvalidAmount: amount not a positive integer within the
                configured top-up limits
            AccountNotFound: unknown account
        """
        self._validate_amount(amount)

        source = self.ledger.get_or_create_external_account(
            self.settings.external_funding_account_id
        )
        try:
            txn = self.ledger.transfer(
                debit_account_id=source.account_id,
                credit_account_id=account_id,
                amount=amount,
                transaction_type=TransactionType.TOP_UP,
                category=TransactionCategory.SYSTEM,
                metadata={"description": description or "Account top-up"},
            )
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        logger.info("Topped up account %s by %d, balance %d", account_id, amount, txn.credit_balance_after)
        self.emitter.emit(
            AccountToppedUp(
                metadata=EventMetadata.create(self._company_of(account_id)),
                account_id=account_id,
                amount=amount,
                new_balance=txn.credit_balance_after,
                transaction_id=txn.transaction_id,
            )
        )
        return TopUpResult(transaction=txn, new_balance=txn.credit_balance_after)

    def top_up_and_resume(self, *, batch_id: str, amount: int) -> TopUpResult:
        """Top up a batch's funding account, re-check the gate and resume.

        The amount must cover the current shortfall (or the maximum top-up
        when the shortfall exceeds it). After the credit the gate is
        evaluated again; when it passes the batch is processed.
        """
        batch = self.batches.get_batch(batch_id)
        before = self.batches.evaluate_gate(batch_id)
        required = min(before.shortfall, self.settings.max_top_up)
        if amount < required:
            raise InvalidAmount(amount, f"top-up must cover the shortfall of {before.shortfall}")

        result = self.top_up(
            account_id=batch.funding_account_id,
            amount=amount,
            description=f"Top-up for payroll {batch.payroll_month}",
        )

        result.gate = self.batches.evaluate_gate(batch_id)
        batch = self.batches.get_batch(batch_id)
        if result.gate.passed and batch.status != BatchStatus.COMPLETED:
            result.process_result = self.batches.process(batch_id)
        else:
            logger.info(
                "Batch %s not resumed after top-up: gate %s, status %s",
                batch_id,
                result.gate.outcome.value,
                batch.status,
            )
        return result

    def _validate_amount(self, amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount, "top-up must be a positive integer")
        if amount < self.settings.min_top_up:
            raise InvalidAmount(amount, f"minimum top-up is {self.settings.min_top_up}")
        if amount > self.settings.max_top_up:
            raise InvalidAmount(amount, f"maximum top-up is {self.settings.max_top_up}")

    def _company_of(self, account_id: str) -> str | None:
        account = self.session.get(Account, account_id)
        return account.company_id if account is not None else None
