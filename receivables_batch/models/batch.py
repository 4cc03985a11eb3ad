"""
Persistence for batch jobs, their checkpoint and recurring schedules.

A job row is the checkpoint.  Each item outcome bumps one counter and
moves ``last_item_key`` forward in the same flush that writes the item
row, so a job that stops for any reason (cancellation, crash, process
exit) resumes with exactly the items whose key sorts after the
checkpoint.  Item rows are unique per (job, item key): an item is
recorded once per job no matter how many runs it takes.

Architecture: receivables_batch/models.  Imports the kernel DB base and
the pure batch domain types.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Sequence, TypeVar
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from receivables_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    JobSchedule,
    ScheduleFrequency,
)
from receivables_kernel.db.base import TrackedBase, UUIDString

_Keyed = TypeVar("_Keyed")


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite returns naive datetimes; every stored timestamp is UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class BatchJobModel(TrackedBase):
    """One batch job and its resume checkpoint."""

    __tablename__ = "batch_jobs"

    __table_args__ = (
        Index("ix_batch_jobs_task_status", "task_type", "status"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    task_type: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=BatchJobStatus.PENDING.value,
    )
    idempotency_key: Mapped[str] = mapped_column(
        String(200), nullable=False, unique=True,
    )
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    # Checkpoint
    total_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    succeeded_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    skipped_items: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_item_key: Mapped[str | None] = mapped_column(String(200), nullable=True)

    started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    error_summary: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def processed_items(self) -> int:
        return self.succeeded_items + self.failed_items + self.skipped_items

    def after_checkpoint(self, items: Sequence[_Keyed]) -> list[_Keyed]:
        """The items whose ``item_key`` sorts after the checkpoint."""
        checkpoint = self.last_item_key
        return [i for i in items if checkpoint is None or i.item_key > checkpoint]

    def record(self, outcome: BatchItemResult) -> BatchItemModel:
        """Advance the checkpoint past ``outcome`` and return its item row."""
        match outcome.status:
            case BatchItemStatus.SUCCEEDED:
                self.succeeded_items += 1
            case BatchItemStatus.SKIPPED:
                self.skipped_items += 1
            case _:
                self.failed_items += 1
        self.last_item_key = outcome.item_key
        return BatchItemModel(
            job_id=self.id,
            item_index=outcome.item_index,
            item_key=outcome.item_key,
            status=outcome.status.value,
            error_code=outcome.error_code,
            error_message=outcome.error_message,
            result_data=outcome.result_data,
        )

    def settle(self) -> BatchJobStatus:
        """Final status once every pending item has been recorded."""
        if self.failed_items == 0 and self.skipped_items == 0:
            return BatchJobStatus.COMPLETED
        if self.succeeded_items == 0 and self.skipped_items == 0:
            return BatchJobStatus.FAILED
        return BatchJobStatus.PARTIALLY_COMPLETED

    def to_dto(self) -> BatchJob:
        return BatchJob(
            job_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            status=BatchJobStatus(self.status),
            idempotency_key=self.idempotency_key,
            parameters=self.parameters or {},
            total_items=self.total_items,
            succeeded_items=self.succeeded_items,
            failed_items=self.failed_items,
            skipped_items=self.skipped_items,
            last_item_key=self.last_item_key,
            created_at=_as_utc(self.created_at),
            started_at=_as_utc(self.started_at),
            completed_at=_as_utc(self.completed_at),
            created_by=self.created_by_id,
            error_summary=self.error_summary,
            seq=self.seq,
        )


class BatchItemModel(TrackedBase):
    """Recorded outcome of one item, written together with the checkpoint."""

    __tablename__ = "batch_items"

    __table_args__ = (
        UniqueConstraint("job_id", "item_key", name="uq_batch_items_job_key"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("batch_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    item_index: Mapped[int] = mapped_column(Integer, nullable=False)
    item_key: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(100), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    result_data: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    def to_dto(self) -> BatchItemResult:
        return BatchItemResult(
            item_index=self.item_index,
            item_key=self.item_key,
            status=BatchItemStatus(self.status),
            error_code=self.error_code,
            error_message=self.error_message,
            result_data=self.result_data,
        )


class JobScheduleModel(TrackedBase):
    """Recurring job schedule."""

    __tablename__ = "job_schedules"

    __table_args__ = (
        Index("ix_job_schedules_active", "is_active"),
    )

    job_name: Mapped[str] = mapped_column(String(200), nullable=False)
    task_type: Mapped[str] = mapped_column(String(200), nullable=False)
    frequency: Mapped[str] = mapped_column(String(50), nullable=False)
    parameters: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_run_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    last_run_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def to_dto(self) -> JobSchedule:
        return JobSchedule(
            schedule_id=self.id,
            job_name=self.job_name,
            task_type=self.task_type,
            frequency=ScheduleFrequency(self.frequency),
            parameters=self.parameters or {},
            next_run_at=_as_utc(self.next_run_at),
            last_run_at=_as_utc(self.last_run_at),
            last_run_status=(
                BatchJobStatus(self.last_run_status) if self.last_run_status else None
            ),
            is_active=self.is_active,
        )
