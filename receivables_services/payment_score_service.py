"""
PaymentScoreService -- persistence shell around PaymentBehaviorClassifier.

Responsibility:
    Builds a customer's payment history from the allocation tranches,
    scores it with the pure classifier, and replaces the customer's
    PaymentScoreRecord.  Also drives the full recalculation as a batch job
    with checkpoint and resume.

Architecture position:
    Services -- imperative shell.  Consumes receivables_engines.payment_behavior,
    receivables_config (policy) and receivables_batch (executor).

Invariants enforced:
    - One PaymentScoreModel row per customer, stamped with the policy
      checksum that produced it.
    - ``recalculate_customer`` holds the customer lock while scoring;
      ``refresh_customer`` expects the caller to hold it already (the
      ledger service calls it from inside its own lock).
    - Recalculating unchanged data yields identical records apart from
      ``last_calculated_at``.

Failure modes:
    - MalformedPaymentHistoryError from the classifier.
    - RecalculationInterruptedError when ``recalculate_all`` is cancelled;
      the work done so far is committed first.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from receivables_config import EnginePolicy, get_active_policy
from receivables_engines.payment_behavior import PaymentBehaviorClassifier
from receivables_kernel.db.base import SYSTEM_ACTOR_ID
from receivables_kernel.domain.clock import Clock, SystemClock
from receivables_kernel.domain.dtos import PaymentEvent, PaymentScoreRecord
from receivables_kernel.domain.values import Money
from receivables_kernel.exceptions import RecalculationInterruptedError
from receivables_kernel.logging_config import LogContext, get_logger
from receivables_kernel.models.allocation import AllocationModel
from receivables_kernel.models.invoice import InvoiceModel
from receivables_kernel.models.payment_score import PaymentScoreModel
from receivables_services.locks import CustomerLockRegistry, default_lock_registry

logger = get_logger("services.payment_score")


@dataclass(frozen=True)
class RecalculationSummary:
    """Counters of one ``recalculate_all`` job, cumulative across resumes."""

    job_id: UUID
    status: str
    processed: int
    succeeded: int
    skipped: int
    failed: int


class PaymentScoreService:
    """
    Compute and persist payment behaviour scores.

    Contract:
        ``refresh_customer`` and ``recalculate_customer`` flush only.
        ``recalculate_all`` owns its transaction and commits.
    """

    def __init__(
        self,
        session: Session,
        policy: EnginePolicy | None = None,
        clock: Clock | None = None,
        lock_registry: CustomerLockRegistry | None = None,
        classifier: PaymentBehaviorClassifier | None = None,
    ):
        self._session = session
        self._policy = policy or get_active_policy()
        self._clock = clock or SystemClock()
        self._locks = lock_registry or default_lock_registry()
        self._classifier = classifier or PaymentBehaviorClassifier(
            scoring=self._policy.scoring,
            thresholds=self._policy.thresholds,
        )

    def payment_history(self, customer_id: UUID) -> list[PaymentEvent]:
        """One event per allocation tranche, in replay order."""
        rows = self._session.execute(
            select(AllocationModel, InvoiceModel.due_date)
            .join(InvoiceModel, InvoiceModel.id == AllocationModel.invoice_id)
            .where(AllocationModel.customer_id == customer_id)
            .order_by(AllocationModel.sequence)
        ).all()
        return [
            PaymentEvent(
                invoice_id=allocation.invoice_id,
                receipt_id=allocation.receipt_id,
                due_date=due_date,
                payment_date=allocation.payment_date,
                amount=Money(allocation.allocated_amount),
            )
            for allocation, due_date in rows
        ]

    def refresh_customer(self, customer_id: UUID) -> PaymentScoreRecord:
        """Score ``customer_id`` and replace its record.  Caller holds the lock."""
        now = self._clock.now()
        record = self._classifier.classify(
            customer_id,
            self.payment_history(customer_id),
            as_of=now.date(),
            calculated_at=now,
        )

        model = self._session.execute(
            select(PaymentScoreModel)
            .where(PaymentScoreModel.customer_id == customer_id)
            .with_for_update()
        ).scalar_one_or_none()
        if model is None:
            model = PaymentScoreModel(customer_id=customer_id)
            self._session.add(model)
        model.apply_dto(record, policy_checksum=self._policy.checksum or None)
        self._session.flush()
        return record

    def recalculate_customer(self, customer_id: UUID) -> PaymentScoreRecord:
        """Score one customer under its lock."""
        with self._locks.hold(customer_id):
            return self.refresh_customer(customer_id)

    def get_score(self, customer_id: UUID) -> PaymentScoreRecord | None:
        model = self._session.execute(
            select(PaymentScoreModel).where(PaymentScoreModel.customer_id == customer_id)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def all_scores(self) -> list[PaymentScoreRecord]:
        models = self._session.execute(select(PaymentScoreModel)).scalars().all()
        return sorted((m.to_dto() for m in models), key=lambda r: str(r.customer_id))

    def recalculate_all(
        self,
        cancel_event: threading.Event | None = None,
        resume_job_id: UUID | None = None,
        actor_id: UUID = SYSTEM_ACTOR_ID,
    ) -> RecalculationSummary:
        """
        Rescore every customer as one batch job, committing at the end.

        Args:
            cancel_event: Checked between customers.  When set the job is
                checkpointed, committed and RecalculationInterruptedError
                is raised.
            resume_job_id: A previously interrupted job to continue after
                its checkpoint.
        """
        from receivables_batch.orchestrator import BatchOrchestrator
        from receivables_batch.tasks.payment_score_task import PAYMENT_SCORE_TASK_TYPE

        orchestrator = BatchOrchestrator(
            policy=self._policy, clock=self._clock, lock_registry=self._locks,
        )
        executor = orchestrator.create_executor(self._session)

        if resume_job_id is None:
            job = executor.submit_job(
                job_name="Payment score recalculation",
                task_type=PAYMENT_SCORE_TASK_TYPE,
                idempotency_key=f"payment-scores:{self._clock.now().isoformat()}:{uuid4()}",
                actor_id=actor_id,
            )
            job_id = job.job_id
            with LogContext.bind(job_id=str(job_id)):
                result = executor.execute_job(job_id, actor_id, cancel_event=cancel_event)
        else:
            job_id = resume_job_id
            with LogContext.bind(job_id=str(job_id)):
                result = executor.resume_job(job_id, actor_id, cancel_event=cancel_event)

        self._session.commit()

        if result.was_cancelled:
            raise RecalculationInterruptedError(
                str(job_id), result.processed, result.last_item_key,
            )

        summary = RecalculationSummary(
            job_id=job_id,
            status=result.status.value,
            processed=result.processed,
            succeeded=result.succeeded,
            skipped=result.skipped,
            failed=result.failed,
        )
        logger.info("payment_scores_recalculated", extra={
            "job_id": str(job_id),
            "status": summary.status,
            "processed": summary.processed,
            "succeeded": summary.succeeded,
            "skipped": summary.skipped,
            "failed": summary.failed,
        })
        return summary
