"""
Tests for receivables_batch.orchestrator.

Validates BatchOrchestrator DI container: create_executor, create_scheduler,
property accessors, and default task registry wiring.
"""

from uuid import uuid4

from receivables_batch.orchestrator import BatchOrchestrator, default_task_registry
from receivables_batch.services.executor import BatchExecutor
from receivables_batch.services.scheduler import BatchScheduler
from receivables_batch.tasks.base import TaskRegistry
from receivables_batch.tasks.payment_score_task import (
    PAYMENT_SCORE_TASK_TYPE,
    PaymentScoreTask,
)
from receivables_kernel.db.base import SYSTEM_ACTOR_ID
from receivables_kernel.domain.clock import SystemClock


class TestDefaultTaskRegistry:
    def test_contains_payment_score_task(self):
        registry = default_task_registry()
        assert PAYMENT_SCORE_TASK_TYPE in registry
        assert isinstance(registry.get(PAYMENT_SCORE_TASK_TYPE), PaymentScoreTask)

    def test_only_receivables_tasks(self):
        assert default_task_registry().list_tasks() == (PAYMENT_SCORE_TASK_TYPE,)


class TestBatchOrchestrator:
    def test_defaults(self):
        orchestrator = BatchOrchestrator()
        assert isinstance(orchestrator.clock, SystemClock)
        assert orchestrator.actor_id == SYSTEM_ACTOR_ID
        assert PAYMENT_SCORE_TASK_TYPE in orchestrator.task_registry

    def test_properties(self, clock):
        actor = uuid4()
        orchestrator = BatchOrchestrator(clock=clock, actor_id=actor)
        assert orchestrator.clock is clock
        assert orchestrator.actor_id == actor

    def test_custom_registry_used(self, clock):
        registry = TaskRegistry()
        orchestrator = BatchOrchestrator(clock=clock, task_registry=registry)
        assert orchestrator.task_registry is registry
        assert len(orchestrator.task_registry) == 0

    def test_create_executor(self, session, clock):
        executor = BatchOrchestrator(clock=clock).create_executor(session)
        assert isinstance(executor, BatchExecutor)

    def test_executors_share_registry(self, session, clock):
        orchestrator = BatchOrchestrator(clock=clock)
        first = orchestrator.create_executor(session)
        second = orchestrator.create_executor(session)
        assert first._task_registry is second._task_registry is orchestrator.task_registry

    def test_create_scheduler(self, session_factory, clock, captured_logs):
        scheduler = BatchOrchestrator(clock=clock).create_scheduler(
            session_factory, tick_interval_seconds=5,
        )

        assert isinstance(scheduler, BatchScheduler)
        assert not scheduler.is_running
        created = [r for r in captured_logs() if r["message"] == "batch_scheduler_created"]
        assert created[0]["tasks"] == [PAYMENT_SCORE_TASK_TYPE]
        assert created[0]["tick_interval"] == 5
