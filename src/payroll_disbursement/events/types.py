"""Domain event types for payroll disbursement.

All events are immutable, carry metadata for tracing and serialize to
plain dictionaries for logging or persistence by handlers.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from payroll_disbursement.models.base import utcnow


class EventCategory(str, Enum):
    """Event categories for routing and filtering."""

    PAYROLL = "payroll"
    FUNDING = "funding"
    LEDGER = "ledger"


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: str
    timestamp: datetime
    company_id: str | None
    actor_id: str | None = None
    source_service: str = "payroll_disbursement"

    @classmethod
    def create(cls, company_id: str | None, actor_id: str | None = None) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=str(uuid4()),
            timestamp=utcnow(),
            company_id=company_id,
            actor_id=actor_id,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__

    @property
    def category(self) -> EventCategory:
        """Event category for filtering."""
        raise NotImplementedError("Subclasses must define category")

    def to_dict(self) -> dict[str, Any]:
        """Serialize event to dictionary."""
        data = _serialize(asdict(self))
        data["event_type"] = self.event_type
        return data

    def to_json(self) -> str:
        """Serialize event to JSON string."""
        return json.dumps(self.to_dict(), default=str)


def _serialize(obj: Any) -> Any:
    if isinstance(obj, dict):
        return {k: _serialize(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_serialize(v) for v in obj]
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, Enum):
        return obj.value
    return obj


# =============================================================================
# Payroll Events
# =============================================================================


@dataclass(frozen=True)
class BatchCreated(DomainEvent):
    """A payroll batch and its items were created."""

    payroll_batch_id: str
    payroll_month: str
    employee_count: int
    total_amount: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollItemPaid(DomainEvent):
    """One employee's salary was disbursed."""

    payroll_batch_id: str
    payroll_item_id: str
    employee_id: str
    amount: int
    transaction_id: str | None

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class PayrollItemFailed(DomainEvent):
    """One employee's salary could not be disbursed."""

    payroll_batch_id: str
    payroll_item_id: str
    employee_id: str
    amount: int
    reason: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


@dataclass(frozen=True)
class BatchProcessed(DomainEvent):
    """A disbursement pass over a batch finished."""

    payroll_batch_id: str
    status: str
    success_count: int
    failed_count: int
    processed_amount: int
    executed_amount: int
    total_amount: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.PAYROLL


# =============================================================================
# Funding Events
# =============================================================================


@dataclass(frozen=True)
class FundingShortfallDetected(DomainEvent):
    """The funding gate found the account short of the remaining obligation."""

    payroll_batch_id: str
    funding_account_id: str
    remaining_amount: int
    balance: int
    shortfall: int
    suggested_top_up: int

    @property
    def category(self) -> EventCategory:
        return EventCategory.FUNDING


@dataclass(frozen=True)
class AccountToppedUp(DomainEvent):
    """An account was credited from the external funding source."""

    account_id: str
    amount: int
    new_balance: int
    transaction_id: str

    @property
    def category(self) -> EventCategory:
        return EventCategory.LEDGER
