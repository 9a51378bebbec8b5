"""Payroll disbursement command line interface.

Provides operational tools for:
- Database initialization
- Salary previews
- Balance queries
- Funding gate checks
- Batch processing and top-ups
- Metrics emission

Usage:
    python -m payroll_disbursement.cli init-db
    python -m payroll_disbursement.cli salary --grade 3 --base-salary 25000
    python -m payroll_disbursement.cli balance --account-id X
    python -m payroll_disbursement.cli gate --batch-id X
    python -m payroll_disbursement.cli process --batch-id X
    python -m payroll_disbursement.cli top-up --account-id X --amount 50000
    python -m payroll_disbursement.cli metrics --format prometheus
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Callable

from payroll_disbursement.calculators.salary import compute_salary
from payroll_disbursement.config import get_settings
from payroll_disbursement.database import get_session, init_db
from payroll_disbursement.errors import PayrollError
from payroll_disbursement.events import EventEmitter, log_event
from payroll_disbursement.metrics import MetricsCollector
from payroll_disbursement.services import FundingService, LedgerService, PayrollBatchService


def format_amount(amount: int) -> str:
    """Minor units with thousands separators."""
    return f"{amount:,}"


class DisbursementCli:
    """Payroll disbursement command line interface."""

    def __init__(self) -> None:
        self.parser = self._build_parser()
        self.emitter = EventEmitter()
        self.emitter.on_all(log_event)

    def _build_parser(self) -> argparse.ArgumentParser:
        """Build argument parser."""
        parser = argparse.ArgumentParser(
            prog="python -m payroll_disbursement.cli",
            description="Payroll disbursement operational tools",
        )
        parser.add_argument(
            "--database-url",
            type=str,
            help="Database URL (default: $DATABASE_URL)",
        )
        subparsers = parser.add_subparsers(dest="command", help="Commands")

        subparsers.add_parser(
            "init-db",
            help="Create tables and seed grades and the external funding account",
        )

        salary = subparsers.add_parser(
            "salary",
            help="Show the salary composition of a grade",
        )
        salary.add_argument(
            "--grade",
            type=int,
            required=True,
            help="Grade rank, 1 (most senior) to 6",
        )
        salary.add_argument(
            "--base-salary",
            type=int,
            required=True,
            help="Basic salary of grade 6, minor units",
        )

        balance = subparsers.add_parser(
            "balance",
            help="Query account balance and movement totals",
        )
        balance.add_argument(
            "--account-id",
            type=str,
            required=True,
            help="Account to query",
        )

        gate = subparsers.add_parser(
            "gate",
            help="Evaluate the funding gate of a batch",
        )
        gate.add_argument(
            "--batch-id",
            type=str,
            required=True,
            help="Payroll batch to check",
        )

        process = subparsers.add_parser(
            "process",
            help="Run a disbursement pass over a batch",
        )
        process.add_argument(
            "--batch-id",
            type=str,
            required=True,
            help="Payroll batch to process",
        )

        top_up = subparsers.add_parser(
            "top-up",
            help="Credit an account from the external funding source",
        )
        target = top_up.add_mutually_exclusive_group(required=True)
        target.add_argument(
            "--account-id",
            type=str,
            help="Account to credit",
        )
        target.add_argument(
            "--batch-id",
            type=str,
            help="Top up the batch's funding account and resume it",
        )
        top_up.add_argument(
            "--amount",
            type=int,
            required=True,
            help="Amount in minor units",
        )

        metrics = subparsers.add_parser(
            "metrics",
            help="Emit disbursement metrics",
        )
        metrics.add_argument(
            "--format",
            type=str,
            choices=["json", "prometheus"],
            default="json",
            help="Output format",
        )
        metrics.add_argument(
            "--company-id",
            type=str,
            help="Restrict metrics to one company",
        )

        return parser

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parsed = self.parser.parse_args(args)

        if not parsed.command:
            self.parser.print_help()
            return 1

        handlers: dict[str, Callable[[argparse.Namespace], int]] = {
            "init-db": self._cmd_init_db,
            "salary": self._cmd_salary,
            "balance": self._cmd_balance,
            "gate": self._cmd_gate,
            "process": self._cmd_process,
            "top-up": self._cmd_top_up,
            "metrics": self._cmd_metrics,
        }

        handler = handlers.get(parsed.command)
        if handler is None:
            print(f"Unknown command: {parsed.command}", file=sys.stderr)
            return 1

        if parsed.command != "salary":
            init_db(parsed.database_url)
        try:
            return handler(parsed)
        except PayrollError as e:
            print(f"ERROR [{e.code}]: {e}", file=sys.stderr)
            return 2

    def _cmd_init_db(self, args: argparse.Namespace) -> int:
        print("Database initialized.")
        return 0

    def _cmd_salary(self, args: argparse.Namespace) -> int:
        """Print one grade's salary composition."""
        breakdown = compute_salary(args.grade, args.base_salary)
        print(f"Grade {breakdown.grade_rank}")
        print(f"  Basic:   {format_amount(breakdown.basic):>15}")
        print(f"  HRA:     {format_amount(breakdown.hra):>15}")
        print(f"  Medical: {format_amount(breakdown.medical):>15}")
        print(f"  Gross:   {format_amount(breakdown.gross):>15}")
        return 0

    def _cmd_balance(self, args: argparse.Namespace) -> int:
        """Query account balance."""
        with get_session() as session:
            summary = LedgerService(session).summarize(args.account_id)

        print(f"Balance for account: {summary.account_id}")
        print(f"\n  Balance:   {format_amount(summary.balance):>15}")
        print(f"  Credited:  {format_amount(summary.total_credited):>15}")
        print(f"  Debited:   {format_amount(summary.total_debited):>15}")
        print(f"  Transactions: {summary.transaction_count}")
        return 0

    def _cmd_gate(self, args: argparse.Namespace) -> int:
        """Evaluate a batch's funding gate. Exit 1 when short."""
        with get_session() as session:
            result = PayrollBatchService(session, emitter=self.emitter).evaluate_gate(args.batch_id)

        print(json.dumps(result.to_dict(), indent=2))
        return 0 if result.passed else 1

    def _cmd_process(self, args: argparse.Namespace) -> int:
        """Process a batch. Exit 1 unless it ends COMPLETED."""
        with get_session() as session:
            result = PayrollBatchService(session, emitter=self.emitter).process(args.batch_id)

        print(f"Batch {result.payroll_batch_id}: {result.status}")
        print(f"  Paid:     {result.success_count} ({format_amount(result.processed_amount)})")
        print(f"  Failed:   {result.failed_count} ({format_amount(result.failed_amount)})")
        print(f"  Executed: {format_amount(result.executed_amount)} of {format_amount(result.total_amount)}")
        for item in result.unpaid_items:
            print(f"    - {item.employee_id}  {format_amount(item.net_amount)}  {item.failure_reason}")
        return 0 if result.status == "COMPLETED" else 1

    def _cmd_top_up(self, args: argparse.Namespace) -> int:
        """Top up an account, or a batch's funding account and resume."""
        with get_session() as session:
            funding = FundingService(session, emitter=self.emitter)
            if args.batch_id:
                result = funding.top_up_and_resume(batch_id=args.batch_id, amount=args.amount)
            else:
                result = funding.top_up(account_id=args.account_id, amount=args.amount)

        print(f"Top-up {result.transaction.transaction_id}: new balance {format_amount(result.new_balance)}")
        if result.gate is not None:
            print(f"  Gate: {result.gate.outcome.value}")
        if result.process_result is not None:
            print(f"  Resumed: {result.process_result.status}")
        return 0

    def _cmd_metrics(self, args: argparse.Namespace) -> int:
        """Emit metrics."""
        with get_session() as session:
            metrics = MetricsCollector(session, company_id=args.company_id).collect_all()

        if args.format == "json":
            print(metrics.to_json())
        else:
            print(metrics.to_prometheus(), end="")
        return 0


def main(argv: list[str] | None = None) -> int:
    """CLI entry point."""
    logging.basicConfig(
        level=get_settings().log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return DisbursementCli().run(argv)


if __name__ == "__main__":
    sys.exit(main())
