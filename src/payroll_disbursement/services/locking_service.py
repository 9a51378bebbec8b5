"""Per-batch processing locks.

A disbursement pass must never interleave with another pass over the same
batch. Within a process this is a registry of ``threading.Lock`` objects
keyed by batch ID; across processes the batch row is additionally locked
with ``SELECT ... FOR UPDATE`` on databases that support it. Batch creation
locks the company row the same way.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

from sqlalchemy import select
from sqlalchemy.orm import Session

from payroll_disbursement.errors import BatchLocked, BatchNotFound, CompanyNotFound
from payroll_disbursement.models import Company, PayrollBatch

logger = logging.getLogger(__name__)


class BatchLockRegistry:
    """Process-local locks, one per batch."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def _lock_for(self, batch_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(batch_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[batch_id] = lock
            return lock

    def is_locked(self, batch_id: str) -> bool:
        """Whether some caller currently holds the batch's lock."""
        return self._lock_for(batch_id).locked()

    @contextmanager
    def hold(self, batch_id: str, timeout: float) -> Generator[None, None, None]:
        """Hold the batch's lock, waiting at most ``timeout`` seconds."""
        lock = self._lock_for(batch_id)
        if not lock.acquire(timeout=timeout):
            logger.warning("Timed out waiting for lock on batch %s", batch_id)
            raise BatchLocked(batch_id)
        try:
            yield
        finally:
            lock.release()


# Shared by every service instance in the process
batch_locks = BatchLockRegistry()


class LockingService:
    """Serializes disbursement passes per batch."""

    def __init__(
        self,
        session: Session,
        *,
        registry: BatchLockRegistry | None = None,
        timeout: float = 30.0,
    ):
        self.session = session
        self.registry = registry or batch_locks
        self.timeout = timeout

    @contextmanager
    def batch_lock(self, batch_id: str) -> Generator[PayrollBatch, None, None]:
        """Lock a batch for one disbursement pass and yield it."""
        with self.registry.hold(batch_id, self.timeout):
            batch = self.lock_batch_row(batch_id)
            yield batch

    def lock_batch_row(self, batch_id: str) -> PayrollBatch:
        """Load the batch with a row lock where the backend supports one."""
        stmt = select(PayrollBatch).where(PayrollBatch.payroll_batch_id == batch_id)
        if self.session.get_bind().dialect.name != "sqlite":
            stmt = stmt.with_for_update()
        batch = self.session.scalars(stmt.execution_options(populate_existing=True)).first()
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch

    def lock_company_row(self, company_id: str) -> Company:
        """Load the company with a row lock so batch creation is serialized."""
        stmt = select(Company).where(Company.company_id == company_id)
        if self.session.get_bind().dialect.name != "sqlite":
            stmt = stmt.with_for_update()
        company = self.session.scalars(stmt).first()
        if company is None:
            raise CompanyNotFound(company_id)
        return company
