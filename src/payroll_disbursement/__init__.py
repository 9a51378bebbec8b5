"""Payroll batch disbursement engine with a role-scoped ledger."""

__version__ = "0.1.0"
