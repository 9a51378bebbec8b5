"""Grade salary model.

Maps a grade rank and the base-grade (rank 6) salary to the basic, house
rent (HRA), medical allowance and gross amounts of one employee. Every
component is rounded to whole minor units with ROUND_HALF_UP before the
gross is summed, so the gross always equals the sum of the stored
components.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from functools import lru_cache

from payroll_disbursement.errors import InvalidAmount, InvalidGrade

MIN_GRADE_RANK = 1
BASE_GRADE_RANK = 6
GRADE_STEP = 5000
HRA_RATE = Decimal("0.20")
MEDICAL_RATE = Decimal("0.15")


@dataclass(frozen=True)
class SalaryBreakdown:
    """Salary composition for one grade."""

    grade_rank: int
    basic: int
    hra: int
    medical: int
    gross: int

    @property
    def net(self) -> int:
        """Net pay. No deductions are modelled, so this is the gross."""
        return self.gross


@dataclass(frozen=True)
class SalarySheetLine:
    """One employee's row on a salary sheet."""

    employee_id: str
    grade_rank: int
    breakdown: SalaryBreakdown


@dataclass
class SalarySheet:
    """Salary composition for a set of employees."""

    base_salary: int
    lines: list[SalarySheetLine] = field(default_factory=list)

    @property
    def total(self) -> int:
        """Sum of every line's gross."""
        return sum(line.breakdown.gross for line in self.lines)

    @property
    def employee_count(self) -> int:
        return len(self.lines)

    def by_grade(self) -> dict[int, int]:
        """Headcount per grade rank."""
        counts: dict[int, int] = {}
        for line in self.lines:
            counts[line.grade_rank] = counts.get(line.grade_rank, 0) + 1
        return dict(sorted(counts.items()))


def round_minor(amount: Decimal) -> int:
    """Round to whole minor currency units, halves away from zero."""
    return int(amount.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def validate_grade_rank(grade_rank: int) -> int:
    """Return the rank if it lies in 1..6, else raise InvalidGrade."""
    if isinstance(grade_rank, bool) or not isinstance(grade_rank, int):
        raise InvalidGrade(grade_rank)
    if not MIN_GRADE_RANK <= grade_rank <= BASE_GRADE_RANK:
        raise InvalidGrade(grade_rank)
    return grade_rank


def basic_salary(grade_rank: int, base_salary: int) -> int:
    """Basic salary: the base grade's salary plus one step per grade above it."""
    validate_grade_rank(grade_rank)
    if base_salary < 0:
        raise InvalidAmount(base_salary, "base salary cannot be negative")
    return base_salary + (BASE_GRADE_RANK - grade_rank) * GRADE_STEP


@lru_cache(maxsize=1024, typed=True)
def compute_salary(grade_rank: int, base_salary: int) -> SalaryBreakdown:
    """Compute the salary composition for a grade.

    Args:
        grade_rank: Grade rank in 1..6 (1 is the most senior)
        base_salary: Basic salary of the base grade (rank 6), in minor units

    Returns:
        SalaryBreakdown with basic, hra, medical and gross

    Raises:
        InvalidGrade: rank outside 1..6
        InvalidAmount: negative base salary
    """
    basic = basic_salary(grade_rank, base_salary)
    hra = round_minor(Decimal(basic) * HRA_RATE)
    medical = round_minor(Decimal(basic) * MEDICAL_RATE)
    return SalaryBreakdown(
        grade_rank=grade_rank,
        basic=basic,
        hra=hra,
        medical=medical,
        gross=basic + hra + medical,
    )


def compute_salary_sheet(
    employees: Iterable[tuple[str, int]],
    base_salary: int,
) -> SalarySheet:
    """Compute a salary sheet for (employee_id, grade_rank) pairs."""
    sheet = SalarySheet(base_salary=base_salary)
    for employee_id, grade_rank in employees:
        sheet.lines.append(
            SalarySheetLine(
                employee_id=employee_id,
                grade_rank=grade_rank,
                breakdown=compute_salary(grade_rank, base_salary),
            )
        )
    return sheet
