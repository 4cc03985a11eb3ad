"""
BatchExecutor -- SAVEPOINT-per-item batch execution with cooperative
cancellation and checkpoint/resume.

Contract:
    Orchestrates batch job lifecycle: submit (with idempotency), execute
    (SAVEPOINT per item), cancel, resume, query.

Architecture: receivables_batch/services.  Imports from receivables_batch.domain,
    receivables_batch.models, receivables_batch.tasks, and kernel services.

Invariants enforced:
    - SAVEPOINT isolation per item: one failure doesn't abort the batch.
    - Idempotency via UNIQUE idempotency_key.
    - All timestamps from the injected Clock.
    - One RUNNING job per task type; job row locked FOR UPDATE.
    - Cancellation is checked between items only.  The checkpoint
      ``last_item_key`` is the key of the last item whose outcome was
      recorded; resuming processes items with a greater key.
"""

from __future__ import annotations

import threading
import time
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from receivables_batch.domain.types import (
    RESUMABLE_STATUSES,
    BatchItemResult,
    BatchItemStatus,
    BatchJob,
    BatchJobStatus,
    BatchRunResult,
)
from receivables_batch.models.batch import BatchItemModel, BatchJobModel
from receivables_batch.tasks.base import BatchItemInput, BatchTask, TaskRegistry
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.exceptions import (
    BatchAlreadyRunningError,
    BatchIdempotencyError,
    BatchJobNotFoundError,
    BatchNotResumableError,
    TaskNotRegisteredError,
)
from receivables_kernel.logging_config import LogContext, get_logger
from receivables_kernel.services.sequence_service import SequenceService

logger = get_logger("batch.executor")


class BatchExecutor:
    """Batch execution engine with SAVEPOINT-per-item isolation.

    Contract:
        - ``submit_job()`` creates a PENDING job (idempotency check).
        - ``execute_job()`` runs the batch with per-item SAVEPOINTs.
        - ``resume_job()`` continues a CANCELLED or FAILED job after its
          checkpoint.
        - ``cancel_job()`` marks a PENDING/RUNNING job as CANCELLED.
        - ``get_job()`` / ``get_job_items()`` for queries.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT manage background threads -- that is the scheduler's job.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._sequence = sequence_service or SequenceService(session)

    # -------------------------------------------------------------------------
    # Submit
    # -------------------------------------------------------------------------

    def submit_job(
        self,
        job_name: str,
        task_type: str,
        idempotency_key: str,
        actor_id: UUID,
        parameters: dict[str, Any] | None = None,
    ) -> BatchJob:
        """Create a new PENDING batch job.

        Raises:
            TaskNotRegisteredError: If task_type is not in the registry.
            BatchIdempotencyError: If idempotency_key is already used.
        """
        if task_type not in self._task_registry:
            raise TaskNotRegisteredError(task_type)

        existing = self._session.execute(
            select(BatchJobModel).where(
                BatchJobModel.idempotency_key == idempotency_key,
            )
        ).scalar_one_or_none()

        if existing is not None:
            raise BatchIdempotencyError(idempotency_key, str(existing.id))

        seq = self._sequence.next_value(SequenceService.BATCH_JOB)

        model = BatchJobModel(
            id=uuid4(),
            job_name=job_name,
            task_type=task_type,
            status=BatchJobStatus.PENDING.value,
            idempotency_key=idempotency_key,
            parameters=parameters or None,
            seq=seq,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        logger.info(
            "batch_job_submitted",
            extra={
                "job_id": str(model.id),
                "job_name": job_name,
                "task_type": task_type,
                "idempotency_key": idempotency_key,
                "seq": seq,
            },
        )

        return model.to_dto()

    # -------------------------------------------------------------------------
    # Execute / resume
    # -------------------------------------------------------------------------

    def execute_job(
        self,
        job_id: UUID,
        actor_id: UUID,
        cancel_event: threading.Event | None = None,
    ) -> BatchRunResult:
        """Execute a PENDING batch job.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
            BatchAlreadyRunningError: If the job, or another job of the same
                task type, is RUNNING, or the job has already run.
            TaskNotRegisteredError: If task_type is not registered.
        """
        job_model = self._lock_job(job_id)
        if job_model.status != BatchJobStatus.PENDING.value:
            raise BatchAlreadyRunningError(job_model.job_name, str(job_id))
        return self._run(job_model, actor_id, cancel_event)

    def resume_job(
        self,
        job_id: UUID,
        actor_id: UUID,
        cancel_event: threading.Event | None = None,
    ) -> BatchRunResult:
        """Continue a CANCELLED or FAILED job with the items after its checkpoint.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
            BatchNotResumableError: If the job is in any other status.
        """
        job_model = self._lock_job(job_id)
        if BatchJobStatus(job_model.status) not in RESUMABLE_STATUSES:
            raise BatchNotResumableError(str(job_id), job_model.status)

        logger.info("batch_job_resumed", extra={
            "job_id": str(job_id),
            "checkpoint": job_model.last_item_key,
            "processed_before": (
                job_model.processed_items
            ),
        })
        return self._run(job_model, actor_id, cancel_event)

    def _lock_job(self, job_id: UUID) -> BatchJobModel:
        job_model = self._session.execute(
            select(BatchJobModel)
            .where(BatchJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()

        if job_model is None:
            raise BatchJobNotFoundError(str(job_id))

        if job_model.status == BatchJobStatus.RUNNING.value:
            raise BatchAlreadyRunningError(job_model.job_name, str(job_id))

        running = self._session.execute(
            select(BatchJobModel.id).where(
                BatchJobModel.task_type == job_model.task_type,
                BatchJobModel.status == BatchJobStatus.RUNNING.value,
                BatchJobModel.id != job_id,
            )
        ).scalars().first()
        if running is not None:
            raise BatchAlreadyRunningError(job_model.job_name, str(running))

        return job_model

    def _run(
        self,
        job_model: BatchJobModel,
        actor_id: UUID,
        cancel_event: threading.Event | None,
    ) -> BatchRunResult:
        start_time = time.monotonic()
        job_id = job_model.id
        task = self._task_registry.get(job_model.task_type)

        now = self._clock.now()
        job_model.status = BatchJobStatus.RUNNING.value
        job_model.started_at = job_model.started_at or now
        job_model.completed_at = None
        self._session.flush()

        with LogContext.bind(job_id=str(job_id)):
            try:
                items = task.prepare_items(
                    parameters=job_model.parameters or {},
                    session=self._session,
                    as_of=now,
                )
            except Exception as exc:
                logger.exception("batch_prepare_failed", extra={"job_id": str(job_id)})
                return self._fail_job(job_model, f"prepare_items failed: {exc}", start_time)

            job_model.total_items = len(items)
            checkpoint = job_model.last_item_key
            pending = job_model.after_checkpoint(items)
            self._session.flush()

            logger.info("batch_job_started", extra={
                "job_id": str(job_id),
                "task_type": job_model.task_type,
                "total_items": len(items),
                "pending_items": len(pending),
                "checkpoint": checkpoint,
            })

            item_results: list[BatchItemResult] = []
            for batch_item in pending:
                if cancel_event is not None and cancel_event.is_set():
                    return self._cancel_run(job_model, item_results, start_time)

                item_result = self._execute_item(task, job_model, batch_item, now)
                item_results.append(item_result)

                item_model = job_model.record(item_result)
                item_model.created_at = self._clock.now()
                item_model.created_by_id = actor_id
                self._session.add(item_model)
                self._session.flush()

            return self._complete_job(job_model, item_results, start_time)

    def _execute_item(
        self,
        task: BatchTask,
        job_model: BatchJobModel,
        batch_item: BatchItemInput,
        as_of: Any,
    ) -> BatchItemResult:
        """Run one item in its own SAVEPOINT."""
        savepoint = self._session.begin_nested()
        try:
            result = task.execute_item(
                item=batch_item,
                parameters=job_model.parameters or {},
                session=self._session,
                as_of=as_of,
            )
            if result.status == BatchItemStatus.SUCCEEDED:
                savepoint.commit()
            else:
                savepoint.rollback()
                logger.warning("batch_item_not_applied", extra={
                    "job_id": str(job_model.id),
                    "item_key": batch_item.item_key,
                    "status": result.status.value,
                    "error_code": result.error_code,
                    "error_message": result.error_message,
                })
            return BatchItemResult(
                item_index=batch_item.item_index,
                item_key=batch_item.item_key,
                status=result.status,
                error_code=result.error_code,
                error_message=result.error_message,
                result_data=result.result_data,
            )
        except Exception as exc:
            savepoint.rollback()
            logger.exception("batch_item_failed", extra={
                "job_id": str(job_model.id),
                "item_key": batch_item.item_key,
            })
            return BatchItemResult(
                item_index=batch_item.item_index,
                item_key=batch_item.item_key,
                status=BatchItemStatus.FAILED,
                error_code=getattr(exc, "code", "UNHANDLED_EXCEPTION"),
                error_message=str(exc),
            )

    # -------------------------------------------------------------------------
    # Cancel
    # -------------------------------------------------------------------------

    def cancel_job(
        self,
        job_id: UUID,
        reason: str,
        actor_id: UUID,
    ) -> BatchJob:
        """Cancel a PENDING or RUNNING job.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
            BatchNotResumableError: If the job has already finished.
        """
        job_model = self._session.execute(
            select(BatchJobModel)
            .where(BatchJobModel.id == job_id)
            .with_for_update()
        ).scalar_one_or_none()

        if job_model is None:
            raise BatchJobNotFoundError(str(job_id))

        if job_model.status not in (
            BatchJobStatus.PENDING.value,
            BatchJobStatus.RUNNING.value,
        ):
            raise BatchNotResumableError(str(job_id), job_model.status)

        job_model.status = BatchJobStatus.CANCELLED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = f"Cancelled: {reason}"
        self._session.flush()

        logger.info("batch_job_cancelled", extra={
            "job_id": str(job_id),
            "reason": reason,
            "actor_id": str(actor_id),
        })
        return job_model.to_dto()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get_job(self, job_id: UUID) -> BatchJob:
        """Get a batch job by ID.

        Raises:
            BatchJobNotFoundError: If job_id does not exist.
        """
        model = self._session.get(BatchJobModel, job_id)
        if model is None:
            raise BatchJobNotFoundError(str(job_id))
        return model.to_dto()

    def get_job_items(self, job_id: UUID) -> tuple[BatchItemResult, ...]:
        """Get all item results for a batch job."""
        models = self._session.execute(
            select(BatchItemModel)
            .where(BatchItemModel.job_id == job_id)
            .order_by(BatchItemModel.item_index)
        ).scalars().all()

        return tuple(m.to_dto() for m in models)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _result(
        self,
        job_model: BatchJobModel,
        item_results: list[BatchItemResult],
        start_time: float,
    ) -> BatchRunResult:
        return BatchRunResult(
            job_id=job_model.id,
            status=BatchJobStatus(job_model.status),
            total_items=job_model.total_items,
            succeeded=job_model.succeeded_items,
            failed=job_model.failed_items,
            skipped=job_model.skipped_items,
            item_results=tuple(item_results),
            last_item_key=job_model.last_item_key,
            started_at=job_model.started_at,
            completed_at=job_model.completed_at,
            duration_ms=int((time.monotonic() - start_time) * 1000),
        )

    def _complete_job(
        self,
        job_model: BatchJobModel,
        item_results: list[BatchItemResult],
        start_time: float,
    ) -> BatchRunResult:
        job_model.status = job_model.settle().value
        failed = job_model.failed_items
        job_model.completed_at = self._clock.now()
        job_model.error_summary = f"{failed} item(s) failed" if failed else None
        self._session.flush()

        logger.info("batch_job_completed", extra={
            "job_id": str(job_model.id),
            "status": job_model.status,
            "succeeded": job_model.succeeded_items,
            "failed": failed,
            "skipped": job_model.skipped_items,
        })
        return self._result(job_model, item_results, start_time)

    def _cancel_run(
        self,
        job_model: BatchJobModel,
        item_results: list[BatchItemResult],
        start_time: float,
    ) -> BatchRunResult:
        job_model.status = BatchJobStatus.CANCELLED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = "Cancelled at checkpoint"
        self._session.flush()

        logger.warning("batch_job_interrupted", extra={
            "job_id": str(job_model.id),
            "checkpoint": job_model.last_item_key,
            "processed_this_run": len(item_results),
        })
        return self._result(job_model, item_results, start_time)

    def _fail_job(
        self,
        job_model: BatchJobModel,
        error_summary: str,
        start_time: float,
    ) -> BatchRunResult:
        """Mark job as FAILED and return result."""
        job_model.status = BatchJobStatus.FAILED.value
        job_model.completed_at = self._clock.now()
        job_model.error_summary = error_summary
        self._session.flush()
        return self._result(job_model, [], start_time)
