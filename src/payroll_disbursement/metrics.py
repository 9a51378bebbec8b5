"""Disbursement observability metrics.

Metric Categories:
- Batch metrics: batches by status, executed and outstanding amounts
- Item metrics: payroll items by status
- Ledger metrics: transaction counts and volume by type
- Health indicators: accounts below zero, batches stuck in PROCESSING

Usage:
    collector = MetricsCollector(session)
    metrics = collector.collect_all()

    # For Prometheus export
    print(metrics.to_prometheus())

    # For JSON export
    print(metrics.to_json())
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from payroll_disbursement.models import (
    Account,
    LedgerTransaction,
    OwnerType,
    PayrollBatch,
    PayrollItem,
    TransactionType,
    utcnow,
)
from payroll_disbursement.services.state_machine import BatchStatus, ItemStatus


@dataclass
class Counter:
    """A counter metric (monotonically increasing)."""

    name: str
    value: int
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


@dataclass
class Gauge:
    """A gauge metric (can go up or down)."""

    name: str
    value: int | float
    labels: dict[str, str] = field(default_factory=dict)
    help_text: str = ""


Metric = Counter | Gauge


@dataclass
class DisbursementMetrics:
    """Collection of all disbursement metrics."""

    batches_by_status: list[Gauge]
    items_by_status: list[Gauge]
    executed_amount_total: Counter
    outstanding_amount: Gauge
    ledger_transactions_by_type: list[Counter]
    ledger_volume_by_type: list[Counter]
    negative_balances: Gauge
    stuck_batches: Gauge
    collected_at: datetime = field(default_factory=utcnow)

    def metrics(self) -> list[Metric]:
        """Every metric, flattened in declaration order."""
        return [
            *self.batches_by_status,
            *self.items_by_status,
            self.executed_amount_total,
            self.outstanding_amount,
            *self.ledger_transactions_by_type,
            *self.ledger_volume_by_type,
            self.negative_balances,
            self.stuck_batches,
        ]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "collected_at": self.collected_at.isoformat(),
            "metrics": [_metric_to_dict(m) for m in self.metrics()],
        }

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def to_prometheus(self) -> str:
        """Convert to Prometheus text format."""
        lines: list[str] = []
        described: set[str] = set()

        for metric in self.metrics():
            if metric.name not in described:
                described.add(metric.name)
                if metric.help_text:
                    lines.append(f"# HELP {metric.name} {metric.help_text}")
                metric_type = "counter" if isinstance(metric, Counter) else "gauge"
                lines.append(f"# TYPE {metric.name} {metric_type}")

            labels = ""
            if metric.labels:
                label_parts = [f'{k}="{v}"' for k, v in metric.labels.items()]
                labels = "{" + ",".join(label_parts) + "}"
            lines.append(f"{metric.name}{labels} {metric.value}")

        return "\n".join(lines) + "\n"


def _metric_to_dict(metric: Metric) -> dict[str, Any]:
    return {
        "name": metric.name,
        "type": "counter" if isinstance(metric, Counter) else "gauge",
        "value": metric.value,
        "labels": metric.labels,
        "help": metric.help_text,
    }


class MetricsCollector:
    """Collects metrics from the database, optionally for one company."""

    def __init__(self, session: Session, company_id: str | None = None) -> None:
        self._session = session
        self._company_id = company_id

    def collect_all(self) -> DisbursementMetrics:
        """Collect all metrics."""
        return DisbursementMetrics(
            batches_by_status=self._gauge_batches_by_status(),
            items_by_status=self._gauge_items_by_status(),
            executed_amount_total=self._count_executed_amount(),
            outstanding_amount=self._gauge_outstanding_amount(),
            ledger_transactions_by_type=self._count_transactions_by_type(),
            ledger_volume_by_type=self._count_volume_by_type(),
            negative_balances=self._gauge_negative_balances(),
            stuck_batches=self._gauge_stuck_batches(),
        )

    def _batch_filter(self, stmt):
        if self._company_id:
            stmt = stmt.where(PayrollBatch.company_id == self._company_id)
        return stmt

    def _gauge_batches_by_status(self) -> list[Gauge]:
        stmt = self._batch_filter(
            select(PayrollBatch.status, func.count()).group_by(PayrollBatch.status)
        )
        counts = dict(self._session.execute(stmt).all())
        return [
            Gauge(
                name="payroll_batches",
                value=counts.get(status.value, 0),
                labels={"status": status.value},
                help_text="Payroll batches by status",
            )
            for status in BatchStatus
        ]

    def _gauge_items_by_status(self) -> list[Gauge]:
        stmt = self._batch_filter(
            select(PayrollItem.status, func.count())
            .join(PayrollBatch, PayrollItem.payroll_batch_id == PayrollBatch.payroll_batch_id)
            .group_by(PayrollItem.status)
        )
        counts = dict(self._session.execute(stmt).all())
        return [
            Gauge(
                name="payroll_items",
                value=counts.get(status.value, 0),
                labels={"status": status.value},
                help_text="Payroll items by status",
            )
            for status in ItemStatus
        ]

    def _count_executed_amount(self) -> Counter:
        stmt = self._batch_filter(select(func.coalesce(func.sum(PayrollBatch.executed_amount), 0)))
        return Counter(
            name="payroll_executed_amount_total",
            value=int(self._session.scalar(stmt) or 0),
            help_text="Amount disbursed across all batches, minor units",
        )

    def _gauge_outstanding_amount(self) -> Gauge:
        stmt = self._batch_filter(
            select(
                func.coalesce(
                    func.sum(PayrollBatch.total_amount - PayrollBatch.executed_amount), 0
                )
            ).where(PayrollBatch.status != BatchStatus.COMPLETED.value)
        )
        return Gauge(
            name="payroll_outstanding_amount",
            value=int(self._session.scalar(stmt) or 0),
            help_text="Obligation not yet disbursed on open batches, minor units",
        )

    def _ledger_rows(self) -> dict[str, tuple[int, int]]:
        stmt = select(
            LedgerTransaction.transaction_type,
            func.count(),
            func.coalesce(func.sum(LedgerTransaction.amount), 0),
        ).group_by(LedgerTransaction.transaction_type)
        if self._company_id:
            company_accounts = select(Account.account_id).where(
                Account.company_id == self._company_id
            )
            stmt = stmt.where(
                LedgerTransaction.debit_account_id.in_(company_accounts)
                | LedgerTransaction.credit_account_id.in_(company_accounts)
            )
        return {row[0]: (int(row[1]), int(row[2])) for row in self._session.execute(stmt).all()}

    def _count_transactions_by_type(self) -> list[Counter]:
        rows = self._ledger_rows()
        return [
            Counter(
                name="ledger_transactions_total",
                value=rows.get(txn_type.value, (0, 0))[0],
                labels={"type": txn_type.value},
                help_text="Ledger transactions by type",
            )
            for txn_type in TransactionType
        ]

    def _count_volume_by_type(self) -> list[Counter]:
        rows = self._ledger_rows()
        return [
            Counter(
                name="ledger_volume_total",
                value=rows.get(txn_type.value, (0, 0))[1],
                labels={"type": txn_type.value},
                help_text="Ledger volume by type, minor units",
            )
            for txn_type in TransactionType
        ]

    def _gauge_negative_balances(self) -> Gauge:
        stmt = select(func.count()).where(
            Account.owner_type != OwnerType.EXTERNAL.value,
            Account.current_balance < 0,
        )
        if self._company_id:
            stmt = stmt.where(Account.company_id == self._company_id)
        return Gauge(
            name="accounts_negative_balance",
            value=int(self._session.scalar(stmt) or 0),
            help_text="Non-external accounts drawing on their overdraft",
        )

    def _gauge_stuck_batches(self) -> Gauge:
        stmt = self._batch_filter(
            select(func.count()).where(PayrollBatch.status == BatchStatus.PROCESSING.value)
        )
        return Gauge(
            name="payroll_batches_processing",
            value=int(self._session.scalar(stmt) or 0),
            help_text="Batches currently in PROCESSING",
        )
