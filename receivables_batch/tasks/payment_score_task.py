"""
Payment-score recalculation batch task.

One item per customer, keyed and ordered by ``str(customer_id)`` so the
executor checkpoint is a plain string comparison.  Each item recomputes
the customer's PaymentScoreRecord under the customer lock; a customer
whose history cannot be scored is reported SKIPPED and the run continues.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from receivables_batch.domain.types import BatchItemStatus
from receivables_batch.tasks.base import BatchItemInput, BatchTaskResult
from receivables_config.schema import EnginePolicy
from receivables_kernel.domain.clock import Clock
from receivables_kernel.exceptions import MalformedPaymentHistoryError
from receivables_kernel.logging_config import get_logger
from receivables_kernel.models.customer import CustomerModel

if TYPE_CHECKING:
    from receivables_services.locks import CustomerLockRegistry

logger = get_logger("batch.tasks.payment_score")

PAYMENT_SCORE_TASK_TYPE = "receivables.payment_score_recalculation"


class PaymentScoreTask:
    """Recompute payment behaviour scores, one customer per item."""

    def __init__(
        self,
        policy: EnginePolicy | None = None,
        clock: Clock | None = None,
        lock_registry: CustomerLockRegistry | None = None,
    ):
        self._policy = policy
        self._clock = clock
        self._lock_registry = lock_registry

    @property
    def task_type(self) -> str:
        return PAYMENT_SCORE_TASK_TYPE

    @property
    def description(self) -> str:
        return "Recalculate customer payment behaviour scores"

    def prepare_items(
        self,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> tuple[BatchItemInput, ...]:
        customer_ids = sorted(
            session.execute(select(CustomerModel.id)).scalars().all(),
            key=str,
        )
        return tuple(
            BatchItemInput(
                item_index=idx,
                item_key=str(cid),
                payload={"customer_id": str(cid)},
            )
            for idx, cid in enumerate(customer_ids)
        )

    def execute_item(
        self,
        item: BatchItemInput,
        parameters: dict[str, Any],
        session: Session,
        as_of: datetime,
    ) -> BatchTaskResult:
        from receivables_services.payment_score_service import PaymentScoreService

        service = PaymentScoreService(
            session,
            policy=self._policy,
            clock=self._clock,
            lock_registry=self._lock_registry,
        )
        customer_id = UUID(item.payload["customer_id"])
        try:
            record = service.recalculate_customer(customer_id)
        except MalformedPaymentHistoryError as exc:
            logger.warning("payment_score_skipped_malformed_history", extra={
                "customer_id": str(customer_id),
                "reason": exc.reason,
            })
            return BatchTaskResult(
                status=BatchItemStatus.SKIPPED,
                error_code=exc.code,
                error_message=str(exc),
            )

        return BatchTaskResult(
            status=BatchItemStatus.SUCCEEDED,
            result_data={
                "payment_score": record.payment_score,
                "classification": (
                    record.classification.value if record.classification else None
                ),
                "total_payments": record.total_payments,
            },
        )
