"""Append-only ledger transaction model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from payroll_disbursement.models.base import Base, new_id, utcnow


class TransactionType(str, Enum):
    """Kind of money movement."""

    TOP_UP = "TOP_UP"
    SALARY_DISBURSEMENT = "SALARY_DISBURSEMENT"
    TRANSFER = "TRANSFER"
    ADJUSTMENT = "ADJUSTMENT"
    REVERSAL = "REVERSAL"


class TransactionCategory(str, Enum):
    """Business category of a money movement."""

    SYSTEM = "SYSTEM"
    PAYROLL = "PAYROLL"
    GENERAL = "GENERAL"


class TransactionStatus(str, Enum):
    """Ledger rows are only written once the balance change took effect."""

    COMPLETED = "COMPLETED"


class LedgerTransaction(Base):
    """Immutable record of one balance change between two accounts."""

    __tablename__ = "ledger_transaction"

    transaction_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    debit_account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("account.account_id"),
        nullable=False,
    )
    credit_account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("account.account_id"),
        nullable=False,
    )
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    transaction_type: Mapped[str] = mapped_column(String, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    payroll_batch_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("payroll_batch.payroll_batch_id"),
        nullable=True,
    )
    payroll_item_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("payroll_item.payroll_item_id"),
        nullable=True,
    )
    # At most one reversal per transaction
    reverses_transaction_id: Mapped[str | None] = mapped_column(
        String(36),
        nullable=True,
        unique=True,
    )
    transaction_status: Mapped[str] = mapped_column(
        String,
        nullable=False,
        default=TransactionStatus.COMPLETED.value,
    )
    description: Mapped[str | None] = mapped_column(String, nullable=True)
    debit_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    credit_balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)
    processed_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    __table_args__ = (
        CheckConstraint("amount > 0", name="ledger_transaction_amount_check"),
        CheckConstraint(
            "debit_account_id <> credit_account_id",
            name="ledger_transaction_distinct_accounts_check",
        ),
        Index("ledger_transaction_processed_at_idx", "processed_at"),
        Index("ledger_transaction_debit_idx", "debit_account_id"),
        Index("ledger_transaction_credit_idx", "credit_account_id"),
    )
