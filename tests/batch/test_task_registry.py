"""
Tests for receivables_batch.tasks.base.

Validates the BatchTask Protocol, BatchItemInput/BatchTaskResult DTOs and
TaskRegistry registration, lookup and listing.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime
from typing import Any

import pytest
from sqlalchemy.orm import Session

from receivables_batch.domain.types import BatchItemStatus
from receivables_batch.tasks.base import (
    BatchItemInput,
    BatchTask,
    BatchTaskResult,
    TaskRegistry,
)
from receivables_batch.tasks.payment_score_task import (
    PAYMENT_SCORE_TASK_TYPE,
    PaymentScoreTask,
)
from receivables_kernel.exceptions import TaskNotRegisteredError


class FakeReminderTask:
    """Minimal BatchTask implementation."""

    @property
    def task_type(self) -> str:
        return "receivables.overdue_reminders"

    @property
    def description(self) -> str:
        return "Overdue reminder sweep"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        return (
            BatchItemInput(item_index=0, item_key="cust-001"),
            BatchItemInput(item_index=1, item_key="cust-002"),
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        return BatchTaskResult(status=BatchItemStatus.SUCCEEDED)


class FakeStatementTask(FakeReminderTask):
    @property
    def task_type(self) -> str:
        return "receivables.statements"


class NotATask:
    task_type = "nope"


class TestDtos:
    def test_item_input_defaults(self):
        item = BatchItemInput(item_index=3, item_key="cust-003")
        assert item.payload == {}

    def test_item_input_frozen(self):
        item = BatchItemInput(item_index=0, item_key="k")
        with pytest.raises(FrozenInstanceError):
            item.item_key = "other"  # type: ignore[misc]

    def test_task_result_defaults(self):
        result = BatchTaskResult(status=BatchItemStatus.FAILED)
        assert result.result_data is None
        assert result.error_code is None
        assert result.error_message is None


class TestProtocol:
    def test_fake_task_satisfies_protocol(self):
        assert isinstance(FakeReminderTask(), BatchTask)

    def test_payment_score_task_satisfies_protocol(self):
        assert isinstance(PaymentScoreTask(), BatchTask)

    def test_incomplete_object_rejected(self):
        assert not isinstance(NotATask(), BatchTask)


class TestTaskRegistry:
    def test_register_and_get(self):
        registry = TaskRegistry()
        task = FakeReminderTask()
        registry.register(task)
        assert registry.get("receivables.overdue_reminders") is task

    def test_duplicate_registration_rejected(self):
        registry = TaskRegistry()
        registry.register(FakeReminderTask())
        with pytest.raises(ValueError, match="already registered"):
            registry.register(FakeReminderTask())

    def test_unknown_task_type(self):
        registry = TaskRegistry()
        with pytest.raises(TaskNotRegisteredError) as exc_info:
            registry.get("receivables.unknown")
        assert exc_info.value.code == "TASK_NOT_REGISTERED"

    def test_list_tasks_sorted(self):
        registry = TaskRegistry()
        registry.register(FakeStatementTask())
        registry.register(FakeReminderTask())
        registry.register(PaymentScoreTask())
        assert registry.list_tasks() == (
            "receivables.overdue_reminders",
            PAYMENT_SCORE_TASK_TYPE,
            "receivables.statements",
        )

    def test_len_and_contains(self):
        registry = TaskRegistry()
        assert len(registry) == 0
        registry.register(FakeReminderTask())
        assert len(registry) == 1
        assert "receivables.overdue_reminders" in registry
        assert "receivables.statements" not in registry
