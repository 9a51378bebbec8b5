"""Grade and employee models."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import CheckConstraint, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from payroll_disbursement.models.base import Base, TimestampMixin, new_id

if TYPE_CHECKING:
    from payroll_disbursement.models.company import Account, Company


class EmployeeStatus(str, Enum):
    """Employee lifecycle status."""

    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class Grade(Base):
    """Grade reference data. Rank 6 is the base grade, rank 1 the most senior."""

    __tablename__ = "grade"

    grade_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    rank: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String, nullable=False)

    __table_args__ = (CheckConstraint("rank BETWEEN 1 AND 6", name="grade_rank_check"),)


class Employee(Base, TimestampMixin):
    """Employee owned by a company."""

    __tablename__ = "employee"

    employee_id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    company_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("company.company_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    grade_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("grade.grade_id"),
        nullable=False,
    )
    account_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("account.account_id"),
        nullable=False,
    )
    code: Mapped[str] = mapped_column(String, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default=EmployeeStatus.ACTIVE.value)

    __table_args__ = (
        UniqueConstraint("company_id", "code", name="employee_company_code_unique"),
        CheckConstraint("status IN ('ACTIVE', 'INACTIVE')", name="employee_status_check"),
    )

    # Relationships
    company: Mapped[Company] = relationship(back_populates="employees")
    grade: Mapped[Grade] = relationship(lazy="joined")
    account: Mapped[Account] = relationship()

    @property
    def grade_rank(self) -> int:
        """Rank of the employee's grade."""
        return self.grade.rank
