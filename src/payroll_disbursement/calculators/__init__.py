"""Salary calculators."""

from payroll_disbursement.calculators.salary import (
    SalaryBreakdown,
    SalarySheet,
    SalarySheetLine,
    compute_salary,
    compute_salary_sheet,
)

__all__ = [
    "SalaryBreakdown",
    "SalarySheet",
    "SalarySheetLine",
    "compute_salary",
    "compute_salary_sheet",
]
