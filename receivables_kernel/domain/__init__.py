"""
Pure domain layer.

Value objects, DTOs and date arithmetic with NO dependencies on the ORM,
the database, the clock (except the Clock abstraction itself) or I/O.
"""

from receivables_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from receivables_kernel.domain.dates import days_between, days_overdue, derive_due_date
from receivables_kernel.domain.dtos import (
    Allocation,
    CustomerCategory,
    CustomerCreditProfile,
    InterestAnchor,
    Invoice,
    InvoiceStatus,
    PaymentClassification,
    PaymentEvent,
    PaymentScoreRecord,
    Receipt,
    allocation_id,
)
from receivables_kernel.domain.values import Money, daily_rate, percentage, sum_money

__all__ = [
    "Allocation",
    "Clock",
    "CustomerCategory",
    "CustomerCreditProfile",
    "DeterministicClock",
    "InterestAnchor",
    "Invoice",
    "InvoiceStatus",
    "Money",
    "PaymentClassification",
    "PaymentEvent",
    "PaymentScoreRecord",
    "Receipt",
    "SystemClock",
    "allocation_id",
    "daily_rate",
    "days_between",
    "days_overdue",
    "derive_due_date",
    "percentage",
    "sum_money",
]
