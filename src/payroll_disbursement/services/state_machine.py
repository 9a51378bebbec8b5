"""Payroll batch state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from payroll_disbursement.errors import PayrollError

if TYPE_CHECKING:
    from payroll_disbursement.models import PayrollBatch


class BatchStatus(str, Enum):
    """Payroll batch status values."""

    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    PARTIALLY_COMPLETED = "PARTIALLY_COMPLETED"
    FAILED = "FAILED"


class ItemStatus(str, Enum):
    """Payroll item status values."""

    PENDING = "PENDING"
    PAID = "PAID"
    FAILED = "FAILED"


class InvalidTransitionError(PayrollError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"
    http_status = 409

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = from_status
        self.to_status = to_status
        self.reason = reason
        msg = f"Invalid transition from '{from_status}' to '{to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class BatchStateMachine:
    """State machine for payroll batch status transitions.

    Allowed transitions:
    - PENDING → PROCESSING
    - PROCESSING → PROCESSING (re-entry after an interrupted pass)
    - PROCESSING → COMPLETED | PARTIALLY_COMPLETED | FAILED
    - PARTIALLY_COMPLETED → PROCESSING (resume after top-up)
    - FAILED → PROCESSING (resume after top-up)
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        BatchStatus.PENDING: [BatchStatus.PROCESSING],
        BatchStatus.PROCESSING: [
            BatchStatus.PROCESSING,
            BatchStatus.COMPLETED,
            BatchStatus.PARTIALLY_COMPLETED,
            BatchStatus.FAILED,
        ],
        BatchStatus.PARTIALLY_COMPLETED: [BatchStatus.PROCESSING],
        BatchStatus.FAILED: [BatchStatus.PROCESSING],
        BatchStatus.COMPLETED: [],  # Final
    }

    # A company may hold at most one batch in these statuses
    IN_PROGRESS = {BatchStatus.PENDING, BatchStatus.PROCESSING}

    TERMINAL = {
        BatchStatus.COMPLETED,
        BatchStatus.PARTIALLY_COMPLETED,
        BatchStatus.FAILED,
    }

    # Terminal statuses that still have unpaid items
    RESUMABLE = {BatchStatus.PARTIALLY_COMPLETED, BatchStatus.FAILED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def transition(cls, batch: PayrollBatch, to_status: str) -> None:
        """Validate and apply a transition to a batch."""
        target = BatchStatus(to_status).value
        cls.validate_transition(batch.status, target)
        batch.status = target

    @classmethod
    def is_in_progress(cls, status: str) -> bool:
        """Check if the status blocks creation of another batch."""
        return status in cls.IN_PROGRESS

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if a pass has closed the batch."""
        return status in cls.TERMINAL

    @classmethod
    def is_resumable(cls, status: str) -> bool:
        """Check if a closed batch still has items to retry."""
        return status in cls.RESUMABLE

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def outcome_for(cls, paid: int, failed: int, pending: int = 0) -> BatchStatus:
        """Terminal status implied by the item counts after a pass.

        All items paid (including a batch with no items) is COMPLETED,
        a mix is PARTIALLY_COMPLETED and nothing paid is FAILED.
        """
        unpaid = failed + pending
        if unpaid == 0:
            return BatchStatus.COMPLETED
        if paid > 0:
            return BatchStatus.PARTIALLY_COMPLETED
        return BatchStatus.FAILED
