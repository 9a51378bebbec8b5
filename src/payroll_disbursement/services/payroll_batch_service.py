"""Payroll batch engine.

Creates payroll batches from a snapshot of a company's active employees
and disburses them employee-by-employee through the ledger.

Disbursement rules:
- At most one PENDING/PROCESSING batch per company.
- Items are paid in position order; a failed transfer marks only that
  item FAILED and the pass continues.
- Once the funding account has nothing left, the remaining items are
  marked FAILED without further transfer attempts.
- Each item's transfer, status change and executed_amount increment are
  committed together, so an interrupted pass leaves a consistent batch.
- PAID items are never paid again; calling ``process`` on a degraded batch
  retries only the unpaid items, which makes it the resume operation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from payroll_disbursement.calculators.salary import compute_salary
from payroll_disbursement.config import Settings, get_settings
from payroll_disbursement.errors import (
    AccountNotFound,
    BatchAlreadyInProgress,
    BatchNotFound,
    CompanyNotFound,
    ExecutedAmountExceeded,
    InvalidAmount,
    InvalidPayrollMonth,
    ItemNotFound,
    PayrollError,
)
from payroll_disbursement.events import (
    BatchCreated,
    BatchProcessed,
    EventEmitter,
    EventMetadata,
    FundingShortfallDetected,
    PayrollItemFailed,
    PayrollItemPaid,
)
from payroll_disbursement.models import (
    Account,
    Company,
    PayrollBatch,
    PayrollItem,
    TransactionCategory,
    TransactionType,
    utcnow,
)
from payroll_disbursement.services import funding_gate
from payroll_disbursement.services.employee_directory import EmployeeDirectory, SqlEmployeeDirectory
from payroll_disbursement.services.funding_gate import GateResult
from payroll_disbursement.services.ledger_service import LedgerService
from payroll_disbursement.services.locking_service import LockingService, batch_locks
from payroll_disbursement.services.state_machine import BatchStateMachine, BatchStatus, ItemStatus

logger = logging.getLogger(__name__)

PAYROLL_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")

REASON_INSUFFICIENT = "insufficient_funds"
REASON_EXHAUSTED = "funding_account_exhausted"


@dataclass(frozen=True)
class ItemOutcome:
    """Status of one item after a pass."""

    payroll_item_id: str
    employee_id: str
    net_amount: int
    status: str
    failure_reason: str | None = None
    transaction_id: str | None = None


@dataclass
class ProcessResult:
    """Outcome of one disbursement pass.

    Counts and amounts cover this pass only; ``items`` reports the status
    of every item in the batch so callers can see exactly who is unpaid.
    """

    payroll_batch_id: str
    status: str
    success_count: int = 0
    failed_count: int = 0
    processed_amount: int = 0
    failed_amount: int = 0
    executed_amount: int = 0
    total_amount: int = 0
    items: list[ItemOutcome] = field(default_factory=list)

    @property
    def unpaid_items(self) -> list[ItemOutcome]:
        return [i for i in self.items if i.status != ItemStatus.PAID]


class PayrollBatchService:
    """Creates and disburses payroll batches."""

    def __init__(
        self,
        session: Session,
        *,
        directory: EmployeeDirectory | None = None,
        ledger: LedgerService | None = None,
        emitter: EventEmitter | None = None,
        locking: LockingService | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.directory = directory or SqlEmployeeDirectory(session)
        self.ledger = ledger or LedgerService(session)
        self.emitter = emitter or EventEmitter()
        self.locking = locking or LockingService(
            session,
            registry=batch_locks,
            timeout=self.settings.batch_lock_timeout_seconds,
        )

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_batch(
        self,
        *,
        company_id: str,
        base_salary: int,
        payroll_month: str,
        funding_account_id: str | None = None,
    ) -> PayrollBatch:
        """Create a batch with one PENDING item per active employee.

        Args:
            company_id: Company to pay
            base_salary: Basic salary of the base grade (rank 6)
            payroll_month: Month covered, YYYY-MM
            funding_account_id: Account to debit; defaults to the
                company's main account

        Returns:
            The new batch (COMPLETED at once when there are no employees)

        Raises:
            BatchAlreadyInProgress: the company has a PENDING/PROCESSING batch
            InvalidAmount: negative base salary
            InvalidGrade: an employee's grade rank is outside 1..6
        """
        if isinstance(base_salary, bool) or not isinstance(base_salary, int) or base_salary < 0:
            raise InvalidAmount(base_salary, "base salary must be a non-negative integer")
        if not isinstance(payroll_month, str) or not PAYROLL_MONTH_RE.match(payroll_month):
            raise InvalidPayrollMonth(payroll_month)

        company = self.session.get(Company, company_id)
        if company is None:
            raise CompanyNotFound(company_id)
        funding_account_id = funding_account_id or company.main_account_id
        if funding_account_id is None or self.session.get(Account, funding_account_id) is None:
            raise AccountNotFound(str(funding_account_id))

        with self.locking.registry.hold(f"company:{company_id}", self.locking.timeout):
            self.locking.lock_company_row(company_id)
            existing = self.find_in_progress(company_id)
            if existing is not None:
                raise BatchAlreadyInProgress(company_id, existing.payroll_batch_id)

            employees = self.directory.list_active_employees(company_id)
            # Compute everything before writing so a bad grade leaves no rows
            salaries = [compute_salary(emp.grade_rank, base_salary) for emp in employees]

            batch = PayrollBatch(
                company_id=company_id,
                funding_account_id=funding_account_id,
                payroll_month=payroll_month,
                base_salary=base_salary,
                status=BatchStatus.PENDING.value,
                total_amount=sum(s.gross for s in salaries),
                executed_amount=0,
                employee_count=len(employees),
            )
            self.session.add(batch)
            try:
                self.session.flush()
            except IntegrityError as e:
                # Another worker created a batch after our check
                self.session.rollback()
                existing = self.find_in_progress(company_id)
                if existing is None:
                    raise
                raise BatchAlreadyInProgress(company_id, existing.payroll_batch_id) from e

            for position, (emp, salary) in enumerate(zip(employees, salaries)):
                self.session.add(
                    PayrollItem(
                        payroll_batch_id=batch.payroll_batch_id,
                        employee_id=emp.employee_id,
                        account_id=emp.account_id,
                        position=position,
                        grade_rank=emp.grade_rank,
                        basic_salary=salary.basic,
                        hra=salary.hra,
                        medical=salary.medical,
                        gross_salary=salary.gross,
                        net_amount=salary.net,
                        status=ItemStatus.PENDING.value,
                    )
                )

            if not employees:
                BatchStateMachine.transition(batch, BatchStatus.PROCESSING)
                BatchStateMachine.transition(batch, BatchStatus.COMPLETED)
                batch.processed_at = batch.completed_at = utcnow()

            try:
                self.session.commit()
            except Exception:
                self.session.rollback()
                raise

        logger.info(
            "Created payroll batch %s for company %s (%s): %d employees, total %d",
            batch.payroll_batch_id,
            company_id,
            payroll_month,
            batch.employee_count,
            batch.total_amount,
        )
        self.emitter.emit(
            BatchCreated(
                metadata=EventMetadata.create(company_id),
                payroll_batch_id=batch.payroll_batch_id,
                payroll_month=payroll_month,
                employee_count=batch.employee_count,
                total_amount=batch.total_amount,
            )
        )
        return batch

    # ------------------------------------------------------------------
    # Disbursement
    # ------------------------------------------------------------------

    def process(self, batch_id: str) -> ProcessResult:
        """Run one disbursement pass over the batch's unpaid items.

        Per-item transfer failures are recorded on the item, never raised.

        Raises:
            BatchNotFound: unknown batch
            BatchLocked: another pass holds the batch
            BatchAlreadyInProgress: resuming a degraded batch while another
                batch of the same company is PENDING/PROCESSING
        """
        with self.locking.batch_lock(batch_id) as batch:
            if batch.status == BatchStatus.COMPLETED:
                return self._result(batch)

            if BatchStateMachine.is_resumable(batch.status):
                other = self.find_in_progress(batch.company_id, exclude=batch_id)
                if other is not None:
                    raise BatchAlreadyInProgress(batch.company_id, other.payroll_batch_id)

            BatchStateMachine.transition(batch, BatchStatus.PROCESSING)
            batch.processed_at = utcnow()
            self.session.commit()

            result = ProcessResult(payroll_batch_id=batch_id, status=batch.status)
            item_ids = self.session.scalars(
                select(PayrollItem.payroll_item_id)
                .where(
                    PayrollItem.payroll_batch_id == batch_id,
                    PayrollItem.status.in_([ItemStatus.PENDING.value, ItemStatus.FAILED.value]),
                )
                .order_by(PayrollItem.position)
            ).all()

            exhausted = False
            for item_id in item_ids:
                batch = self.locking.lock_batch_row(batch_id)
                item = self.get_item(item_id)

                if item.net_amount > 0 and not exhausted:
                    exhausted = self.ledger.available_funds(batch.funding_account_id) <= 0

                if exhausted and item.net_amount > 0:
                    self._fail_item(batch, item, REASON_EXHAUSTED, attempted=False)
                    result.failed_count += 1
                    result.failed_amount += item.net_amount
                    continue

                if self._disburse_item(batch, item):
                    result.success_count += 1
                    result.processed_amount += item.net_amount
                else:
                    result.failed_count += 1
                    result.failed_amount += item.net_amount

            batch = self.locking.lock_batch_row(batch_id)
            counts = self._item_counts(batch_id)
            outcome = BatchStateMachine.outcome_for(
                paid=counts.get(ItemStatus.PAID.value, 0),
                failed=counts.get(ItemStatus.FAILED.value, 0),
                pending=counts.get(ItemStatus.PENDING.value, 0),
            )
            BatchStateMachine.transition(batch, outcome)
            if outcome == BatchStatus.COMPLETED:
                batch.completed_at = utcnow()
            self.session.commit()

        final = self._result(batch, result)
        logger.info(
            "Processed payroll batch %s: %s, %d paid (%d), %d failed (%d), executed %d/%d",
            batch_id,
            final.status,
            final.success_count,
            final.processed_amount,
            final.failed_count,
            final.failed_amount,
            final.executed_amount,
            final.total_amount,
        )
        self.emitter.emit(
            BatchProcessed(
                metadata=EventMetadata.create(batch.company_id),
                payroll_batch_id=batch_id,
                status=final.status,
                success_count=final.success_count,
                failed_count=final.failed_count,
                processed_amount=final.processed_amount,
                executed_amount=final.executed_amount,
                total_amount=final.total_amount,
            )
        )
        return final

    def _disburse_item(self, batch: PayrollBatch, item: PayrollItem) -> bool:
        """Pay one item. Returns False when the item ended up FAILED."""
        transaction_id: str | None = None

        if item.net_amount > 0:
            available = self.ledger.available_funds(batch.funding_account_id)
            if item.net_amount > available:
                self._fail_item(batch, item, REASON_INSUFFICIENT, attempted=False)
                return False
            try:
                txn = self.ledger.transfer(
                    debit_account_id=batch.funding_account_id,
                    credit_account_id=item.account_id,
                    amount=item.net_amount,
                    transaction_type=TransactionType.SALARY_DISBURSEMENT,
                    category=TransactionCategory.PAYROLL,
                    metadata={
                        "payroll_batch_id": batch.payroll_batch_id,
                        "payroll_item_id": item.payroll_item_id,
                        "description": f"Salary {batch.payroll_month}",
                    },
                )
            except PayrollError as e:
                self.session.rollback()
                batch = self.locking.lock_batch_row(batch.payroll_batch_id)
                item = self.get_item(item.payroll_item_id)
                reason = REASON_INSUFFICIENT if e.code == "INSUFFICIENT_FUNDS" else e.code.lower()
                self._fail_item(batch, item, reason, attempted=True)
                return False
            transaction_id = txn.transaction_id

        if batch.executed_amount + item.net_amount > batch.total_amount:
            self.session.rollback()
            raise ExecutedAmountExceeded(batch.payroll_batch_id, item.payroll_item_id)

        item.status = ItemStatus.PAID.value
        item.attempt_count += 1
        item.failure_reason = None
        item.transaction_id = transaction_id
        item.paid_at = utcnow()
        batch.executed_amount += item.net_amount
        try:
            self.session.commit()
        except Exception:
            self.session.rollback()
            raise

        self.emitter.emit(
            PayrollItemPaid(
                metadata=EventMetadata.create(batch.company_id),
                payroll_batch_id=batch.payroll_batch_id,
                payroll_item_id=item.payroll_item_id,
                employee_id=item.employee_id,
                amount=item.net_amount,
                transaction_id=transaction_id,
            )
        )
        return True

    def _fail_item(
        self,
        batch: PayrollBatch,
        item: PayrollItem,
        reason: str,
        *,
        attempted: bool,
    ) -> None:
        item.status = ItemStatus.FAILED.value
        item.failure_reason = reason
        if attempted:
            item.attempt_count += 1
        self.session.commit()

        logger.info(
            "Payroll item %s (employee %s, %d) failed: %s",
            item.payroll_item_id,
            item.employee_id,
            item.net_amount,
            reason,
        )
        self.emitter.emit(
            PayrollItemFailed(
                metadata=EventMetadata.create(batch.company_id),
                payroll_batch_id=batch.payroll_batch_id,
                payroll_item_id=item.payroll_item_id,
                employee_id=item.employee_id,
                amount=item.net_amount,
                reason=reason,
            )
        )

    # ------------------------------------------------------------------
    # Funding gate
    # ------------------------------------------------------------------

    def evaluate_gate(self, batch_id: str) -> GateResult:
        """Compare the batch's remaining obligation with its funding balance."""
        batch = self.get_batch(batch_id)
        balance = self.ledger.balance_of(batch.funding_account_id)
        result = funding_gate.evaluate(
            batch.total_amount,
            batch.executed_amount,
            balance,
            increment=self.settings.top_up_increment,
            min_top_up=self.settings.min_top_up,
            max_top_up=self.settings.max_top_up,
        )
        if not result.passed:
            logger.info(
                "Funding gate for batch %s: shortfall %d (remaining %d, balance %d)",
                batch_id,
                result.shortfall,
                result.remaining_amount,
                balance,
            )
            self.emitter.emit(
                FundingShortfallDetected(
                    metadata=EventMetadata.create(batch.company_id),
                    payroll_batch_id=batch_id,
                    funding_account_id=batch.funding_account_id,
                    remaining_amount=result.remaining_amount,
                    balance=balance,
                    shortfall=result.shortfall,
                    suggested_top_up=result.suggested_top_up,
                )
            )
        return result

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_batch(self, batch_id: str) -> PayrollBatch:
        batch = self.session.get(PayrollBatch, batch_id)
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    def get_item(self, item_id: str) -> PayrollItem:
        item = self.session.get(PayrollItem, item_id)
        if item is None:
            raise ItemNotFound(item_id)
        return item

    def get_last_batch(self, company_id: str) -> PayrollBatch | None:
        """Most recently created batch of a company, whatever its status."""
        return self.session.scalars(
            select(PayrollBatch)
            .where(PayrollBatch.company_id == company_id)
            .order_by(PayrollBatch.created_at.desc(), PayrollBatch.payroll_batch_id.desc())
            .limit(1)
        ).first()

    def list_batches(self, company_id: str, status: str | None = None) -> list[PayrollBatch]:
        stmt = select(PayrollBatch).where(PayrollBatch.company_id == company_id)
        if status:
            stmt = stmt.where(PayrollBatch.status == status)
        return list(self.session.scalars(stmt.order_by(PayrollBatch.created_at.desc())).all())

    def list_items(self, batch_id: str, status: str | None = None) -> list[PayrollItem]:
        self.get_batch(batch_id)
        stmt = select(PayrollItem).where(PayrollItem.payroll_batch_id == batch_id)
        if status:
            stmt = stmt.where(PayrollItem.status == status)
        return list(self.session.scalars(stmt.order_by(PayrollItem.position)).all())

    def find_in_progress(self, company_id: str, exclude: str | None = None) -> PayrollBatch | None:
        """The company's PENDING/PROCESSING batch, if any."""
        stmt = select(PayrollBatch).where(
            PayrollBatch.company_id == company_id,
            PayrollBatch.status.in_([s.value for s in BatchStateMachine.IN_PROGRESS]),
        )
        if exclude is not None:
            stmt = stmt.where(PayrollBatch.payroll_batch_id != exclude)
        return self.session.scalars(stmt.limit(1)).first()

    def _item_counts(self, batch_id: str) -> dict[str, int]:
        rows = self.session.execute(
            select(PayrollItem.status, func.count())
            .where(PayrollItem.payroll_batch_id == batch_id)
            .group_by(PayrollItem.status)
        ).all()
        return {status: count for status, count in rows}

    def _result(self, batch: PayrollBatch, result: ProcessResult | None = None) -> ProcessResult:
        result = result or ProcessResult(payroll_batch_id=batch.payroll_batch_id, status=batch.status)
        result.status = batch.status
        result.executed_amount = batch.executed_amount
        result.total_amount = batch.total_amount
        result.items = [
            ItemOutcome(
                payroll_item_id=item.payroll_item_id,
                employee_id=item.employee_id,
                net_amount=item.net_amount,
                status=item.status,
                failure_reason=item.failure_reason,
                transaction_id=item.transaction_id,
            )
            for item in self.list_items(batch.payroll_batch_id)
        ]
        return result
