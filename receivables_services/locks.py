"""
Per-customer mutual exclusion for ledger mutations.

Two layers, always taken in the same order:

1. ``CustomerLockRegistry.hold(...)`` -- an in-process ``threading.Lock``
   per customer id, serializing writers inside one process.
2. ``lock_customer_rows(session, ...)`` -- ``SELECT ... FOR UPDATE`` on the
   customer rows, serializing writers across processes on PostgreSQL.
   SQLite ignores the clause; the file-level write lock covers it there.

When a mutation touches two customers (a receipt or invoice moved between
them) both ids are locked in sorted order so two such moves cannot
deadlock.  Reads take no locks.
"""

from __future__ import annotations

import threading
from collections.abc import Generator, Iterable
from contextlib import contextmanager
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from receivables_kernel.exceptions import CustomerNotFoundError
from receivables_kernel.logging_config import get_logger
from receivables_kernel.models.customer import CustomerModel

logger = get_logger("services.locks")


def _ordered(customer_ids: Iterable[UUID | None]) -> list[UUID]:
    return sorted({cid for cid in customer_ids if cid is not None}, key=str)


class CustomerLockRegistry:
    """
    ``threading.Lock`` per customer id, alive only while someone needs it.

    Guarantees:
        - Every ``hold`` of the same id that overlaps in time uses the same
          lock object.
        - A lock is dropped from the registry when its last holder or
          waiter leaves, so the registry never outgrows the set of
          customers currently being mutated.
        - ``hold`` acquires in ascending ``str(id)`` order and releases in
          reverse, whatever order the ids were passed in.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        # customer id -> [lock, number of holders and waiters]
        self._entries: dict[UUID, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)

    def is_held(self, customer_id: UUID) -> bool:
        with self._guard:
            entry = self._entries.get(customer_id)
            return entry is not None and entry[0].locked()

    def _checkout(self, customer_id: UUID) -> threading.Lock:
        with self._guard:
            entry = self._entries.setdefault(customer_id, [threading.Lock(), 0])
            entry[1] += 1
            return entry[0]

    def _checkin(self, customer_id: UUID) -> None:
        with self._guard:
            entry = self._entries[customer_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[customer_id]

    @contextmanager
    def hold(self, *customer_ids: UUID | None) -> Generator[list[UUID], None, None]:
        """Hold the locks of every distinct non-None id for the block."""
        ordered = _ordered(customer_ids)
        acquired: list[tuple[UUID, threading.Lock]] = []
        try:
            for cid in ordered:
                lock = self._checkout(cid)
                try:
                    lock.acquire()
                except BaseException:
                    self._checkin(cid)
                    raise
                acquired.append((cid, lock))
            logger.debug("customer_locks_acquired", extra={
                "customer_ids": [str(c) for c in ordered],
            })
            yield ordered
        finally:
            for cid, lock in reversed(acquired):
                lock.release()
                self._checkin(cid)


_default_registry = CustomerLockRegistry()


def default_lock_registry() -> CustomerLockRegistry:
    """Process-wide registry shared by services that are not given one."""
    return _default_registry


def lock_customer_rows(session: Session, *customer_ids: UUID | None) -> dict[UUID, CustomerModel]:
    """
    ``SELECT ... FOR UPDATE`` the customer rows in sorted id order.

    Raises:
        CustomerNotFoundError: if any id has no row.
    """
    rows: dict[UUID, CustomerModel] = {}
    for cid in _ordered(customer_ids):
        row = session.execute(
            select(CustomerModel)
            .where(CustomerModel.id == cid)
            .with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise CustomerNotFoundError(str(cid))
        rows[cid] = row
    return rows
