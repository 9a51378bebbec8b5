"""Company and bank account models."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import BigInteger, CheckConstraint, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_disbursement.models.base import Base, TimestampMixin, new_id

if TYPE_CHECKING:
    from payroll_disbursement.models.employee import Employee


class OwnerType(str, Enum):
    """Who owns an account."""

    COMPANY = "COMPANY"
    EMPLOYEE = "EMPLOYEE"
    EXTERNAL = "EXTERNAL"


class Company(Base, TimestampMixin):
    """Employer whose main account funds payroll."""

    __tablename__ = "company"

    company_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String, nullable=False)
    main_account_id: Mapped[str | None] = mapped_column(String(36), nullable=True)

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="company")


class Account(Base, TimestampMixin):
    """Bank account. Balance changes only through ledger transfers."""

    __tablename__ = "account"

    account_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    owner_type: Mapped[str] = mapped_column(String, nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    company_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=True,
    )
    account_name: Mapped[str] = mapped_column(String, nullable=False, default="")
    current_balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    overdraft_limit: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "owner_type IN ('COMPANY', 'EMPLOYEE', 'EXTERNAL')",
            name="account_owner_type_check",
        ),
        CheckConstraint("overdraft_limit >= 0", name="account_overdraft_check"),
        CheckConstraint(
            "owner_type = 'EXTERNAL' OR current_balance + overdraft_limit >= 0",
            name="account_balance_floor_check",
        ),
    )

    @property
    def is_external(self) -> bool:
        """External accounts are money sources outside the system."""
        return self.owner_type == OwnerType.EXTERNAL

    @property
    def available_funds(self) -> int:
        """Balance plus overdraft headroom."""
        return self.current_balance + self.overdraft_limit
