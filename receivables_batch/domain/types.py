"""
receivables_batch.domain.types -- Pure frozen dataclasses for the batch system.

ZERO I/O.  Frozen dataclasses with enum status fields and tuples for
immutable collections.

Invariants enforced:
    - Idempotency: BatchJob carries an idempotency_key that is unique.
    - Resumability: BatchJob carries ``last_item_key``, the key of the last
      item processed, so a cancelled job continues where it stopped.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class BatchJobStatus(str, Enum):
    """Job-level lifecycle status."""

    PENDING = "pending"  # Created, not yet started
    RUNNING = "running"
    COMPLETED = "completed"  # Every item succeeded
    FAILED = "failed"  # No item succeeded
    CANCELLED = "cancelled"  # Stopped at a cancellation request; resumable
    PARTIALLY_COMPLETED = "partially_completed"  # Some items failed or were skipped


RESUMABLE_STATUSES = frozenset({BatchJobStatus.CANCELLED, BatchJobStatus.FAILED})


class BatchItemStatus(str, Enum):
    """Per-item outcome within a batch job."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"  # Item data unusable; logged and passed over


class ScheduleFrequency(str, Enum):
    """Recurrence frequency for scheduled batch jobs."""

    ONCE = "once"  # Fire once, no recurrence
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    ON_DEMAND = "on_demand"  # Manual trigger only


# =============================================================================
# Job DTOs
# =============================================================================


@dataclass(frozen=True)
class BatchJob:
    """Immutable snapshot of a batch job."""

    job_id: UUID
    job_name: str  # Human-readable label (e.g., "Nightly payment scores")
    task_type: str  # Registered task key (e.g., "receivables.payment_scores")
    status: BatchJobStatus
    idempotency_key: str
    parameters: dict[str, Any] = field(default_factory=dict)
    total_items: int = 0
    succeeded_items: int = 0
    failed_items: int = 0
    skipped_items: int = 0
    last_item_key: str | None = None  # checkpoint
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    created_by: UUID | None = None
    error_summary: str | None = None
    seq: int | None = None

    @property
    def processed_items(self) -> int:
        return self.succeeded_items + self.failed_items + self.skipped_items


@dataclass(frozen=True)
class BatchItemResult:
    """Immutable result of processing a single batch item in its SAVEPOINT."""

    item_index: int  # 0-indexed position in the batch
    item_key: str  # Business identifier (e.g., customer_id)
    status: BatchItemStatus
    error_code: str | None = None
    error_message: str | None = None
    result_data: dict[str, Any] | None = None


@dataclass(frozen=True)
class BatchRunResult:
    """
    Result of one execution (or resumption) of a batch job.

    Counters are cumulative over every run of the job.
    """

    job_id: UUID
    status: BatchJobStatus
    total_items: int
    succeeded: int
    failed: int
    skipped: int
    item_results: tuple[BatchItemResult, ...] = ()
    last_item_key: str | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed + self.skipped

    @property
    def was_cancelled(self) -> bool:
        return self.status == BatchJobStatus.CANCELLED


# =============================================================================
# Schedule DTOs
# =============================================================================


@dataclass(frozen=True)
class JobSchedule:
    """Immutable snapshot of a recurring job schedule."""

    schedule_id: UUID
    job_name: str
    task_type: str
    frequency: ScheduleFrequency
    parameters: dict[str, Any] = field(default_factory=dict)
    next_run_at: datetime | None = None
    last_run_at: datetime | None = None
    last_run_status: BatchJobStatus | None = None
    is_active: bool = True
