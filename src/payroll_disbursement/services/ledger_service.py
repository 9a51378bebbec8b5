"""Ledger Service - append-only record of money movements.

Provides transactional transfers between accounts with:
- Compare-and-decrement debits (no overdraw under concurrency)
- One immutable transaction row per balance change
- Reversal-based corrections (no updates/deletes)
- Filtered, paginated transaction queries
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.orm import Session

from payroll_disbursement.errors import (
    AccountNotFound,
    InsufficientFunds,
    InvalidAmount,
    InvalidTransfer,
    ReversalNotAllowed,
    TransactionNotFound,
)
from payroll_disbursement.models import (
    Account,
    LedgerTransaction,
    OwnerType,
    TransactionCategory,
    TransactionStatus,
    TransactionType,
    utcnow,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransactionFilter:
    """Filters for ledger queries. Unset fields do not filter."""

    account_id: str | None = None  # either side
    debit_account_id: str | None = None
    credit_account_id: str | None = None
    payroll_batch_id: str | None = None
    payroll_item_id: str | None = None
    transaction_type: str | None = None
    category: str | None = None
    status: str | None = None
    from_date: datetime | None = None
    to_date: datetime | None = None
    descending: bool = True
    page: int = 0
    size: int | None = None


@dataclass
class TransactionPage:
    """One page of query results."""

    items: list[LedgerTransaction] = field(default_factory=list)
    total: int = 0
    page: int = 0
    size: int | None = None

    @property
    def total_pages(self) -> int:
        if not self.size:
            return 1
        return max(1, -(-self.total // self.size))


@dataclass(frozen=True)
class AccountSummary:
    """Movement totals for one account."""

    account_id: str
    balance: int
    total_credited: int
    total_debited: int
    transaction_count: int


class LedgerService:
    """Append-only ledger over account balances.

    Notes:
    - Transfers run inside the caller's database transaction; the caller
      commits. A rejected transfer writes nothing.
    - ledger_transaction rows are never updated or deleted.
    - All amounts must be positive (reversals swap debit/credit).
    """

    def __init__(
        self,
        db: Session,
        *,
        clock: Callable[[], datetime] = utcnow,
        restrict: Callable[[Select], Select] | None = None,
    ):
        self.db = db
        self.clock = clock
        self.restrict = restrict

    def transfer(
        self,
        *,
        debit_account_id: str,
        credit_account_id: str,
        amount: int,
        transaction_type: str | TransactionType,
        category: str | TransactionCategory,
        metadata: dict[str, Any] | None = None,
    ) -> LedgerTransaction:
        """Move money from one account to another.

        Args:
            debit_account_id: Account the money leaves
            credit_account_id: Account the money enters
            amount: Positive amount in minor units
            transaction_type: TOP_UP, SALARY_DISBURSEMENT, ...
            category: SYSTEM, PAYROLL, GENERAL
            metadata: Optional links (payroll_batch_id, payroll_item_id,
                reverses_transaction_id) and description

        Returns:
            The appended LedgerTransaction

        Raises:
            InvalidAmount: amount is not a positive integer
            InvalidTransfer: debit and credit are the same account, or an
                unknown transaction type or category
            AccountNotFound: either account does not exist
            InsufficientFunds: amount exceeds balance plus overdraft
        """
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmount(amount, "transfer amount must be a positive integer")
        if debit_account_id == credit_account_id:
            raise InvalidTransfer("Cannot transfer to the same account")
        try:
            type_value = TransactionType(transaction_type).value
            category_value = TransactionCategory(category).value
        except ValueError as e:
            raise InvalidTransfer(str(e)) from e

        debit = self._get_account(debit_account_id)
        credit = self._get_account(credit_account_id)
        meta = metadata or {}

        debit_stmt = (
            update(Account)
            .where(Account.account_id == debit_account_id)
            .values(current_balance=Account.current_balance - amount)
            .returning(Account.current_balance)
            .execution_options(synchronize_session=False)
        )
        if not debit.is_external:
            debit_stmt = debit_stmt.where(
                Account.current_balance + Account.overdraft_limit >= amount
            )

        debit_balance_after = self.db.execute(debit_stmt).scalar_one_or_none()
        if debit_balance_after is None:
            self.db.refresh(debit)
            logger.info(
                "Transfer of %s from %s rejected: %s available",
                amount,
                debit_account_id,
                debit.available_funds,
            )
            raise InsufficientFunds(debit_account_id, amount, debit.available_funds)

        credit_balance_after = self.db.execute(
            update(Account)
            .where(Account.account_id == credit_account_id)
            .values(current_balance=Account.current_balance + amount)
            .returning(Account.current_balance)
            .execution_options(synchronize_session=False)
        ).scalar_one()

        # Identity-map copies are stale after the bulk updates
        self.db.expire(debit)
        self.db.expire(credit)

        txn = LedgerTransaction(
            debit_account_id=debit_account_id,
            credit_account_id=credit_account_id,
            amount=amount,
            transaction_type=type_value,
            category=category_value,
            payroll_batch_id=meta.get("payroll_batch_id"),
            payroll_item_id=meta.get("payroll_item_id"),
            reverses_transaction_id=meta.get("reverses_transaction_id"),
            transaction_status=TransactionStatus.COMPLETED.value,
            description=meta.get("description"),
            debit_balance_after=debit_balance_after,
            credit_balance_after=credit_balance_after,
            processed_at=self.clock(),
        )
        self.db.add(txn)
        self.db.flush()

        logger.debug(
            "Transferred %s from %s to %s (%s)",
            amount,
            debit_account_id,
            credit_account_id,
            txn.transaction_type,
        )
        return txn

    def reverse(
        self,
        *,
        transaction_id: str,
        reason: str,
    ) -> LedgerTransaction:
        """Create an offsetting transaction for an existing one.

        Swaps debit and credit accounts; the original row is untouched.
        The reversal is subject to the same funds check as any transfer.
        A transaction is reversed at most once and reversals are final.
        """
        original = self.db.get(LedgerTransaction, transaction_id)
        if original is None:
            raise TransactionNotFound(transaction_id)
        if original.transaction_type == TransactionType.REVERSAL.value:
            raise ReversalNotAllowed(transaction_id, "reversals cannot be reversed")
        existing = self.db.scalar(
            select(LedgerTransaction.transaction_id).where(
                LedgerTransaction.reverses_transaction_id == transaction_id
            )
        )
        if existing is not None:
            raise ReversalNotAllowed(transaction_id, f"already reversed by {existing}")

        return self.transfer(
            debit_account_id=original.credit_account_id,
            credit_account_id=original.debit_account_id,
            amount=original.amount,
            transaction_type=TransactionType.REVERSAL,
            category=original.category,
            metadata={
                "payroll_batch_id": original.payroll_batch_id,
                "payroll_item_id": original.payroll_item_id,
                "reverses_transaction_id": original.transaction_id,
                "description": reason,
            },
        )

    def balance_of(self, account_id: str) -> int:
        """Current balance of an account."""
        balance = self.db.scalar(
            select(Account.current_balance).where(Account.account_id == account_id)
        )
        if balance is None:
            raise AccountNotFound(account_id)
        return balance

    def available_funds(self, account_id: str) -> int:
        """Balance plus overdraft headroom of an account."""
        row = self.db.execute(
            select(Account.current_balance, Account.overdraft_limit).where(
                Account.account_id == account_id
            )
        ).first()
        if row is None:
            raise AccountNotFound(account_id)
        return row[0] + row[1]

    def query(self, filters: TransactionFilter | None = None) -> TransactionPage:
        """Query transactions, newest first unless filters say otherwise."""
        f = filters or TransactionFilter()
        stmt = select(LedgerTransaction)

        if f.account_id:
            stmt = stmt.where(
                or_(
                    LedgerTransaction.debit_account_id == f.account_id,
                    LedgerTransaction.credit_account_id == f.account_id,
                )
            )
        if f.debit_account_id:
            stmt = stmt.where(LedgerTransaction.debit_account_id == f.debit_account_id)
        if f.credit_account_id:
            stmt = stmt.where(LedgerTransaction.credit_account_id == f.credit_account_id)
        if f.payroll_batch_id:
            stmt = stmt.where(LedgerTransaction.payroll_batch_id == f.payroll_batch_id)
        if f.payroll_item_id:
            stmt = stmt.where(LedgerTransaction.payroll_item_id == f.payroll_item_id)
        if f.transaction_type:
            stmt = stmt.where(LedgerTransaction.transaction_type == f.transaction_type)
        if f.category:
            stmt = stmt.where(LedgerTransaction.category == f.category)
        if f.status:
            stmt = stmt.where(LedgerTransaction.transaction_status == f.status)
        if f.from_date:
            stmt = stmt.where(LedgerTransaction.processed_at >= f.from_date)
        if f.to_date:
            stmt = stmt.where(LedgerTransaction.processed_at <= f.to_date)
        if self.restrict is not None:
            stmt = self.restrict(stmt)

        total = self.db.scalar(select(func.count()).select_from(stmt.subquery())) or 0

        if f.descending:
            stmt = stmt.order_by(
                LedgerTransaction.processed_at.desc(),
                LedgerTransaction.transaction_id.desc(),
            )
        else:
            stmt = stmt.order_by(
                LedgerTransaction.processed_at.asc(),
                LedgerTransaction.transaction_id.asc(),
            )
        if f.size:
            stmt = stmt.offset(f.page * f.size).limit(f.size)

        items = list(self.db.scalars(stmt).all())
        return TransactionPage(items=items, total=total, page=f.page, size=f.size)

    def summarize(self, account_id: str) -> AccountSummary:
        """Movement totals for an account."""
        balance = self.balance_of(account_id)
        credited = self.db.scalar(
            select(func.coalesce(func.sum(LedgerTransaction.amount), 0)).where(
                LedgerTransaction.credit_account_id == account_id
            )
        )
        debited = self.db.scalar(
            select(func.coalesce(func.sum(LedgerTransaction.amount), 0)).where(
                LedgerTransaction.debit_account_id == account_id
            )
        )
        count = self.db.scalar(
            select(func.count()).where(
                or_(
                    LedgerTransaction.debit_account_id == account_id,
                    LedgerTransaction.credit_account_id == account_id,
                )
            )
        )
        return AccountSummary(
            account_id=account_id,
            balance=balance,
            total_credited=int(credited or 0),
            total_debited=int(debited or 0),
            transaction_count=int(count or 0),
        )

    def get_or_create_external_account(self, account_id: str, name: str = "External funding source") -> Account:
        """Get existing or create the external funding source account."""
        account = self.db.get(Account, account_id)
        if account is None:
            account = Account(
                account_id=account_id,
                owner_type=OwnerType.EXTERNAL.value,
                account_name=name,
                current_balance=0,
                overdraft_limit=0,
            )
            self.db.add(account)
            self.db.flush()
        return account

    def _get_account(self, account_id: str) -> Account:
        account = self.db.get(Account, account_id)
        if account is None:
            raise AccountNotFound(account_id)
        return account
