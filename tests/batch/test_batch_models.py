"""
Tests for receivables_batch.models.

The job row carries the resume checkpoint: recording an item outcome
moves ``last_item_key`` and one counter, and a resumed run only sees the
items after the checkpoint.  Item rows are unique per (job, item key).
"""

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError

from receivables_batch.domain.types import (
    BatchItemResult,
    BatchItemStatus,
    BatchJobStatus,
    ScheduleFrequency,
)
from receivables_batch.models.batch import BatchItemModel, BatchJobModel, JobScheduleModel
from receivables_batch.orchestrator import BatchOrchestrator
from receivables_batch.tasks.base import BatchItemInput
from receivables_batch.tasks.payment_score_task import PAYMENT_SCORE_TASK_TYPE


def _job(**overrides) -> BatchJobModel:
    defaults = dict(
        id=uuid4(),
        job_name="Nightly payment scores",
        task_type=PAYMENT_SCORE_TASK_TYPE,
        status=BatchJobStatus.RUNNING.value,
        idempotency_key="job-001",
        seq=1,
        total_items=0,
        succeeded_items=0,
        failed_items=0,
        skipped_items=0,
    )
    defaults.update(overrides)
    return BatchJobModel(**defaults)


def _outcome(key: str, status=BatchItemStatus.SUCCEEDED, index: int = 0) -> BatchItemResult:
    return BatchItemResult(item_index=index, item_key=key, status=status)


def _inputs(*keys: str) -> list[BatchItemInput]:
    return [BatchItemInput(item_index=i, item_key=k) for i, k in enumerate(keys)]


class TestCheckpoint:
    def test_fresh_job_has_everything_pending(self):
        items = _inputs("a", "b", "c")
        assert _job().after_checkpoint(items) == items

    def test_record_moves_checkpoint(self):
        job = _job()

        row = job.record(_outcome("b", index=1))

        assert job.last_item_key == "b"
        assert job.succeeded_items == 1
        assert job.processed_items == 1
        assert row.job_id == job.id
        assert row.item_key == "b"
        assert row.item_index == 1
        assert row.status == "succeeded"

    def test_only_items_after_checkpoint_are_pending(self):
        job = _job()
        job.record(_outcome("b"))

        pending = job.after_checkpoint(_inputs("a", "b", "c", "d"))

        assert [i.item_key for i in pending] == ["c", "d"]

    def test_each_status_has_its_counter(self):
        job = _job()
        job.record(_outcome("a"))
        job.record(_outcome("b", BatchItemStatus.SKIPPED))
        job.record(_outcome("c", BatchItemStatus.FAILED))

        assert (job.succeeded_items, job.skipped_items, job.failed_items) == (1, 1, 1)
        assert job.last_item_key == "c"

    def test_error_details_copied_to_row(self):
        row = _job().record(BatchItemResult(
            item_index=0,
            item_key="a",
            status=BatchItemStatus.SKIPPED,
            error_code="MALFORMED_PAYMENT_HISTORY",
            error_message="tranche of zero",
        ))
        assert row.error_code == "MALFORMED_PAYMENT_HISTORY"
        assert row.to_dto().status == BatchItemStatus.SKIPPED


class TestSettle:
    @pytest.mark.parametrize("succeeded,failed,skipped,expected", [
        (3, 0, 0, BatchJobStatus.COMPLETED),
        (0, 0, 0, BatchJobStatus.COMPLETED),
        (0, 2, 0, BatchJobStatus.FAILED),
        (1, 1, 0, BatchJobStatus.PARTIALLY_COMPLETED),
        (0, 0, 1, BatchJobStatus.PARTIALLY_COMPLETED),
    ])
    def test_final_status(self, succeeded, failed, skipped, expected):
        job = _job(succeeded_items=succeeded, failed_items=failed, skipped_items=skipped)
        assert job.settle() == expected


class TestPersistence:
    def test_item_key_recorded_once_per_job(self, session):
        executor = BatchOrchestrator().create_executor(session)
        dto = executor.submit_job(
            job_name="Nightly payment scores",
            task_type=PAYMENT_SCORE_TASK_TYPE,
            idempotency_key="persist-001",
            actor_id=uuid4(),
        )
        job = session.get(BatchJobModel, dto.job_id)
        session.add(job.record(_outcome("cust-1")))
        session.flush()

        with pytest.raises(IntegrityError):
            with session.begin_nested():
                session.add(BatchItemModel(
                    job_id=job.id, item_index=0, item_key="cust-1", status="failed",
                ))
                session.flush()

    def test_new_job_dto(self, session, clock):
        executor = BatchOrchestrator(clock=clock).create_executor(session)
        dto = executor.submit_job(
            job_name="Nightly payment scores",
            task_type=PAYMENT_SCORE_TASK_TYPE,
            idempotency_key="persist-002",
            actor_id=uuid4(),
        )

        assert dto.parameters == {}
        assert dto.processed_items == 0
        assert dto.last_item_key is None
        assert dto.created_at == clock.now()

    def test_schedule_dto(self, session):
        model = JobScheduleModel(
            id=uuid4(),
            job_name="Weekly",
            task_type=PAYMENT_SCORE_TASK_TYPE,
            frequency=ScheduleFrequency.WEEKLY.value,
            is_active=True,
            last_run_status=BatchJobStatus.FAILED.value,
        )
        session.add(model)
        session.flush()

        schedule = model.to_dto()

        assert schedule.frequency == ScheduleFrequency.WEEKLY
        assert schedule.last_run_status == BatchJobStatus.FAILED
        assert schedule.parameters == {}
