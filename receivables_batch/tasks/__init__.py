"""
receivables_batch.tasks -- Task protocol, registry, and task implementations.

base.py imports nothing from services; task modules import the services
they drive lazily inside ``execute_item``.
"""

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

__all__ = [
    "PAYMENT_SCORE_TASK_TYPE",
    "BatchItemInput",
    "BatchTask",
    "BatchTaskResult",
    "PaymentScoreTask",
    "TaskRegistry",
]
