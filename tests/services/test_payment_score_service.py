"""
Tests for PaymentScoreService.

Covers:
- Scores kept current by ledger mutations
- Payment history built from allocation tranches
- Full recalculation as a batch job
- Interruption at a checkpoint and resumption
- Customers with unusable history skipped, not fatal
"""

import threading
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID, uuid4

import pytest
from sqlalchemy import select

from receivables_batch.domain.types import BatchItemStatus, BatchJobStatus
from receivables_batch.orchestrator import BatchOrchestrator
from receivables_kernel.domain.dtos import PaymentClassification
from receivables_kernel.exceptions import (
    BatchJobNotFoundError,
    RecalculationInterruptedError,
)
from receivables_kernel.models.allocation import AllocationModel
from receivables_kernel.models.payment_score import PaymentScoreModel

DAY0 = date(2024, 1, 1)


def day(n):
    return DAY0 + timedelta(days=n)


class _CancelAfter(threading.Event):
    """An event that reports set once ``checks`` is_set() calls have passed."""

    def __init__(self, checks):
        super().__init__()
        self._remaining = checks

    def is_set(self):
        if self._remaining <= 0:
            return True
        self._remaining -= 1
        return False


@pytest.fixture
def eight_of_ten_customer(make_customer, make_invoice, make_receipt):
    """Ten invoices: eight paid on the due date, two paid twelve days late."""
    customer = make_customer("Reliable Co")
    for n in range(10):
        invoice = make_invoice(customer, amount="1000", invoice_date=day(10 * n))
        paid_on = day(10 * n) if n < 8 else day(10 * n + 12)
        make_receipt(customer, "1000", paid_on, invoice=invoice)
    return customer


class TestScoreRefresh:
    def test_ledger_keeps_score_current(self, score_service, eight_of_ten_customer):
        record = score_service.get_score(eight_of_ten_customer.customer_id)
        assert record.total_payments == 10
        assert record.on_time_count == 8
        assert record.on_time_rate == Decimal("80")
        assert record.classification == PaymentClassification.STAR
        assert 0 <= record.payment_score <= 100

    def test_history_follows_replay_order(self, score_service, eight_of_ten_customer):
        history = score_service.payment_history(eight_of_ten_customer.customer_id)
        assert len(history) == 10
        assert [e.payment_date for e in history] == sorted(e.payment_date for e in history)
        assert sum(1 for e in history if e.payment_date > e.due_date) == 2

    def test_unscored_customer(self, score_service, make_customer):
        customer = make_customer()
        assert score_service.get_score(customer.customer_id) is None

    def test_customer_without_payments(self, score_service, make_customer, make_invoice):
        customer = make_customer()
        make_invoice(customer)
        record = score_service.get_score(customer.customer_id)
        assert record.total_payments == 0
        assert record.payment_score is None
        assert record.classification is None

    def test_recalculate_is_stable(self, score_service, eight_of_ten_customer):
        before = score_service.get_score(eight_of_ten_customer.customer_id)
        after = score_service.recalculate_customer(eight_of_ten_customer.customer_id)
        assert after.payment_score == before.payment_score
        assert after.on_time_rate == before.on_time_rate

    def test_code_built_policy_stores_no_checksum(
        self, session, score_service, eight_of_ten_customer,
    ):
        model = session.execute(
            select(PaymentScoreModel)
            .where(PaymentScoreModel.customer_id == eight_of_ten_customer.customer_id)
        ).scalar_one()
        assert model.policy_checksum is None

    def test_all_scores_sorted(self, score_service, make_customer, make_invoice):
        for name in ("A", "B", "C"):
            make_invoice(make_customer(name))
        ids = [str(r.customer_id) for r in score_service.all_scores()]
        assert ids == sorted(ids)
        assert len(ids) == 3


class TestRecalculateAll:
    def test_every_customer_processed(self, score_service, make_customer, make_invoice):
        for name in ("A", "B", "C"):
            make_invoice(make_customer(name))

        summary = score_service.recalculate_all()

        assert summary.status == BatchJobStatus.COMPLETED.value
        assert summary.processed == 3
        assert summary.succeeded == 3
        assert summary.skipped == 0
        assert summary.failed == 0

    def test_no_customers(self, score_service):
        summary = score_service.recalculate_all()
        assert summary.processed == 0
        assert summary.status == BatchJobStatus.COMPLETED.value

    def test_interrupt_then_resume(self, session, policy, clock, lock_registry,
                                   score_service, make_customer, make_invoice):
        for name in ("A", "B", "C", "D"):
            make_invoice(make_customer(name))

        with pytest.raises(RecalculationInterruptedError) as exc_info:
            score_service.recalculate_all(cancel_event=_CancelAfter(2))
        interrupted = exc_info.value
        assert interrupted.processed == 2
        assert interrupted.last_item_key is not None
        assert interrupted.code == "RECALCULATION_INTERRUPTED"

        executor = BatchOrchestrator(
            policy=policy, clock=clock, lock_registry=lock_registry,
        ).create_executor(session)
        job = executor.get_job(UUID(interrupted.job_id))
        assert job.status == BatchJobStatus.CANCELLED
        assert job.last_item_key == interrupted.last_item_key

        summary = score_service.recalculate_all(resume_job_id=UUID(interrupted.job_id))

        assert summary.status == BatchJobStatus.COMPLETED.value
        assert summary.processed == 4
        items = executor.get_job_items(UUID(interrupted.job_id))
        keys = [i.item_key for i in items]
        assert keys == sorted(keys)
        assert len(set(keys)) == 4

    def test_cancel_before_first_item(self, score_service, make_customer, make_invoice):
        make_invoice(make_customer())
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(RecalculationInterruptedError) as exc_info:
            score_service.recalculate_all(cancel_event=cancel)
        assert exc_info.value.processed == 0
        assert exc_info.value.last_item_key is None

    def test_malformed_history_is_skipped(
        self, session, score_service, make_customer, make_invoice, make_receipt,
    ):
        healthy = make_customer("Healthy")
        make_invoice(healthy)
        broken = make_customer("Broken")
        invoice = make_invoice(broken)
        make_receipt(broken, "500", day(3), invoice=invoice)
        tranche = session.execute(
            select(AllocationModel).where(AllocationModel.customer_id == broken.customer_id)
        ).scalar_one()
        tranche.allocated_amount = Decimal("0")
        session.flush()

        summary = score_service.recalculate_all()

        assert summary.status == BatchJobStatus.PARTIALLY_COMPLETED.value
        assert summary.succeeded == 1
        assert summary.skipped == 1
        executor = BatchOrchestrator().create_executor(session)
        skipped = [
            i for i in executor.get_job_items(summary.job_id)
            if i.status == BatchItemStatus.SKIPPED
        ]
        assert skipped[0].item_key == str(broken.customer_id)
        assert skipped[0].error_code == "MALFORMED_PAYMENT_HISTORY"

    def test_unknown_resume_job(self, score_service):
        with pytest.raises(BatchJobNotFoundError):
            score_service.recalculate_all(resume_job_id=uuid4())
