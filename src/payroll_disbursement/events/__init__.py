"""Domain events for payroll disbursement."""

from payroll_disbursement.events.emitter import EventEmitter, log_event
from payroll_disbursement.events.types import (
    AccountToppedUp,
    BatchCreated,
    BatchProcessed,
    DomainEvent,
    EventCategory,
    EventMetadata,
    FundingShortfallDetected,
    PayrollItemFailed,
    PayrollItemPaid,
)

__all__ = [
    "AccountToppedUp",
    "BatchCreated",
    "BatchProcessed",
    "DomainEvent",
    "EventCategory",
    "EventEmitter",
    "EventMetadata",
    "FundingShortfallDetected",
    "PayrollItemFailed",
    "PayrollItemPaid",
    "log_event",
]
