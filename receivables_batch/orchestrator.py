"""
BatchOrchestrator -- DI container for the batch processing system.

Contract:
    Wires a TaskRegistry with the receivables tasks, creates BatchExecutor
    instances, and optionally a BatchScheduler.  Single place where batch
    dependencies are composed.

Invariants enforced:
    - Every executor and task shares the same Clock, policy and lock registry.
    - receivables_services imports this module lazily; nothing here
      imports receivables_services at module load.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable
from uuid import UUID

from sqlalchemy.orm import Session

from receivables_batch.services.executor import BatchExecutor
from receivables_batch.services.scheduler import BatchScheduler
from receivables_batch.tasks.base import TaskRegistry
from receivables_batch.tasks.payment_score_task import PaymentScoreTask
from receivables_config.schema import EnginePolicy
from receivables_kernel.db.base import SYSTEM_ACTOR_ID
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.logging_config import get_logger

if TYPE_CHECKING:
    from receivables_services.locks import CustomerLockRegistry

logger = get_logger("batch.orchestrator")


def default_task_registry(
    policy: EnginePolicy | None = None,
    clock: Clock | None = None,
    lock_registry: CustomerLockRegistry | None = None,
) -> TaskRegistry:
    """A TaskRegistry pre-loaded with every receivables task."""
    registry = TaskRegistry()
    registry.register(PaymentScoreTask(policy=policy, clock=clock, lock_registry=lock_registry))
    return registry


class BatchOrchestrator:
    """DI container for the batch processing system.

    Non-goals:
        - Does NOT start the scheduler automatically -- caller decides.
        - Does NOT manage session lifecycle -- caller controls commits.
    """

    def __init__(
        self,
        policy: EnginePolicy | None = None,
        clock: Clock | None = None,
        lock_registry: CustomerLockRegistry | None = None,
        task_registry: TaskRegistry | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> None:
        self._clock = clock or SystemClock()
        self._task_registry = task_registry if task_registry is not None else (
            default_task_registry(policy=policy, clock=self._clock, lock_registry=lock_registry)
        )
        self._actor_id = actor_id

    def create_executor(self, session: Session) -> BatchExecutor:
        """A BatchExecutor bound to ``session``."""
        return BatchExecutor(
            session=session,
            task_registry=self._task_registry,
            clock=self._clock,
        )

    def create_scheduler(
        self,
        session_factory: Callable[[], Session],
        tick_interval_seconds: int = 60,
    ) -> BatchScheduler:
        """A BatchScheduler that opens a fresh session per tick.

        Args:
            session_factory: Callable returning new sessions for each tick.
            tick_interval_seconds: Polling interval (default 60s).
        """
        logger.info("batch_scheduler_created", extra={
            "tasks": list(self._task_registry.list_tasks()),
            "tick_interval": tick_interval_seconds,
        })
        return BatchScheduler(
            session_factory=session_factory,
            executor_factory=self.create_executor,
            clock=self._clock,
            actor_id=self._actor_id,
            tick_interval_seconds=tick_interval_seconds,
        )

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def actor_id(self) -> UUID:
        return self._actor_id
