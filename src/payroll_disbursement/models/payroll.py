"""Payroll batch and item models."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_disbursement.models.base import Base, TimestampMixin, new_id

if TYPE_CHECKING:
    from payroll_disbursement.models.company import Company
    from payroll_disbursement.models.employee import Employee


class PayrollBatch(Base, TimestampMixin):
    """One payroll run for a company covering one payroll month."""

    __tablename__ = "payroll_batch"

    payroll_batch_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    funding_account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("account.account_id"),
        nullable=False,
    )
    payroll_month: Mapped[str] = mapped_column(String(7), nullable=False)
    base_salary: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    executed_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    employee_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'PROCESSING', 'COMPLETED', 'PARTIALLY_COMPLETED', 'FAILED')",
            name="payroll_batch_status_check",
        ),
        CheckConstraint("base_salary >= 0", name="payroll_batch_base_salary_check"),
        CheckConstraint(
            "executed_amount >= 0 AND executed_amount <= total_amount",
            name="payroll_batch_executed_amount_check",
        ),
        # One PENDING/PROCESSING batch per company, across every worker
        Index(
            "payroll_batch_one_in_progress_idx",
            "company_id",
            unique=True,
            sqlite_where=text("status IN ('PENDING', 'PROCESSING')"),
            postgresql_where=text("status IN ('PENDING', 'PROCESSING')"),
        ),
    )

    # Relationships
    company: Mapped[Company] = relationship()
    items: Mapped[list[PayrollItem]] = relationship(
        back_populates="batch",
        order_by="PayrollItem.position",
    )

    @property
    def remaining_amount(self) -> int:
        """Obligation not yet disbursed."""
        return max(0, self.total_amount - self.executed_amount)


class PayrollItem(Base, TimestampMixin):
    """One employee's obligation within a batch."""

    __tablename__ = "payroll_item"

    payroll_item_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    payroll_batch_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("payroll_batch.payroll_batch_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("employee.employee_id"),
        nullable=False,
    )
    # Snapshot of the destination account at batch creation
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("account.account_id"),
        nullable=False,
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    grade_rank: Mapped[int] = mapped_column(Integer, nullable=False)
    basic_salary: Mapped[int] = mapped_column(BigInteger, nullable=False)
    hra: Mapped[int] = mapped_column(BigInteger, nullable=False)
    medical: Mapped[int] = mapped_column(BigInteger, nullable=False)
    gross_salary: Mapped[int] = mapped_column(BigInteger, nullable=False)
    net_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="PENDING")
    attempt_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failure_reason: Mapped[str | None] = mapped_column(String, nullable=True)
    transaction_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("payroll_batch_id", "employee_id", name="payroll_item_batch_employee_unique"),
        UniqueConstraint("payroll_batch_id", "position", name="payroll_item_batch_position_unique"),
        CheckConstraint("status IN ('PENDING', 'PAID', 'FAILED')", name="payroll_item_status_check"),
        CheckConstraint("net_amount >= 0", name="payroll_item_net_amount_check"),
    )

    # Relationships
    batch: Mapped[PayrollBatch] = relationship(back_populates="items")
    employee: Mapped[Employee] = relationship()
