"""
Module: receivables_engines.aging
Responsibility:
    Classify invoices by collection status (upcoming, due today, in grace,
    overdue, paid on time, paid late) for the status-card dashboard, and
    place outstanding balances into aging buckets measured from due date.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes allocation tranches and balances produced by
    receivables_engines.allocation.

Invariants enforced:
    - Purity: ``as_of`` is always a parameter, never read from a clock.
    - A paid invoice's completion date is the payment date of its last
      tranche; zero-amount invoices complete on their invoice date.
    - Every outstanding balance lands in exactly one bucket of a
      well-formed bucket sequence.

Failure modes:
    - ValueError when an age does not fall into any configured bucket.

Usage:
    from receivables_engines.aging import AgingCalculator, InvoiceStatusClassifier

    cards = InvoiceStatusClassifier(grace_days=7).status_cards(
        invoices, allocations, as_of=date(2024, 3, 1),
    )
    report = AgingCalculator().build_report(invoices, balances, as_of=date(2024, 3, 1))
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from uuid import UUID

from receivables_engines.allocation import InvoiceBalance
from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dtos import Allocation, Invoice, InvoiceStatus
from receivables_kernel.domain.values import Money, sum_money
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.aging")


class InvoiceStatusCard(str, Enum):
    UPCOMING = "upcoming"
    DUE_TODAY = "due_today"
    IN_GRACE = "in_grace"
    OVERDUE = "overdue"
    PAID_ON_TIME = "paid_on_time"
    PAID_LATE = "paid_late"


@dataclass(frozen=True)
class StatusCardTotals:
    count: int
    total_amount: Money


@dataclass(frozen=True)
class InvoiceStatusResult:
    invoice_id: UUID
    card: InvoiceStatusCard
    settlement: InvoiceStatus
    completion_date: date | None


class InvoiceStatusClassifier:
    """
    Assign each invoice to one status card.

    Fully paid invoices are judged on whether they were completed within
    ``due_date + grace_days``; open ones on where ``as_of`` falls relative
    to the due date and grace window.
    """

    def __init__(self, grace_days: int = 7):
        if grace_days < 0:
            raise ValueError("grace_days cannot be negative")
        self._grace_days = grace_days

    def classify(
        self,
        invoice: Invoice,
        allocations: Iterable[Allocation],
        as_of: date,
    ) -> InvoiceStatusResult:
        own = [a for a in allocations if a.invoice_id == invoice.id]
        allocated = sum_money(a.allocated_amount for a in own)
        grace_end = invoice.due_date + timedelta(days=self._grace_days)

        if allocated >= invoice.amount:
            completion = max((a.payment_date for a in own), default=invoice.invoice_date)
            card = (
                InvoiceStatusCard.PAID_ON_TIME if completion <= grace_end
                else InvoiceStatusCard.PAID_LATE
            )
            return InvoiceStatusResult(invoice.id, card, InvoiceStatus.PAID, completion)

        if as_of == invoice.due_date:
            card = InvoiceStatusCard.DUE_TODAY
        elif as_of < invoice.due_date:
            card = InvoiceStatusCard.UPCOMING
        elif as_of <= grace_end:
            card = InvoiceStatusCard.IN_GRACE
        else:
            card = InvoiceStatusCard.OVERDUE
        settlement = InvoiceStatus.PARTIAL if allocated.is_positive else InvoiceStatus.UNPAID
        return InvoiceStatusResult(invoice.id, card, settlement, None)

    @traced_engine("status_cards", "1.0", fingerprint_fields=("as_of",))
    def status_cards(
        self,
        invoices: Sequence[Invoice],
        allocations: Sequence[Allocation],
        as_of: date,
    ) -> dict[InvoiceStatusCard, StatusCardTotals]:
        """Count and total invoice amount per card."""
        by_invoice: dict[UUID, list[Allocation]] = {}
        for a in allocations:
            by_invoice.setdefault(a.invoice_id, []).append(a)

        counts = {card: 0 for card in InvoiceStatusCard}
        totals = {card: Money.zero() for card in InvoiceStatusCard}
        for invoice in invoices:
            result = self.classify(invoice, by_invoice.get(invoice.id, ()), as_of)
            counts[result.card] += 1
            totals[result.card] = totals[result.card] + invoice.amount

        return {
            card: StatusCardTotals(count=counts[card], total_amount=totals[card])
            for card in InvoiceStatusCard
        }


@dataclass(frozen=True)
class AgeBucket:
    """
    A contiguous range of days past due.

    Guarantees:
        - min_days >= 0 and max_days >= min_days when bounded.
    """

    name: str
    min_days: int
    max_days: int | None  # None = unbounded (e.g., Over 90)

    def __post_init__(self) -> None:
        if self.min_days < 0:
            raise ValueError("min_days cannot be negative")
        if self.max_days is not None and self.max_days < self.min_days:
            raise ValueError("max_days cannot be less than min_days")

    def contains(self, age_days: int) -> bool:
        if age_days < self.min_days:
            return False
        return self.max_days is None or age_days <= self.max_days


STANDARD_BUCKETS: tuple[AgeBucket, ...] = (
    AgeBucket("Current", 0, 0),
    AgeBucket("1-30", 1, 30),
    AgeBucket("31-60", 31, 60),
    AgeBucket("61-90", 61, 90),
    AgeBucket("Over 90", 91, None),
)


@dataclass(frozen=True)
class AgedInvoice:
    invoice_id: UUID
    invoice_number: str
    customer_id: UUID
    due_date: date
    remaining: Money
    age_days: int
    bucket: AgeBucket


@dataclass(frozen=True)
class AgingReport:
    """Outstanding balances by bucket as of a date."""

    as_of_date: date
    buckets: tuple[AgeBucket, ...]
    items: tuple[AgedInvoice, ...]

    def total_amount(self) -> Money:
        return sum_money(i.remaining for i in self.items)

    def total_by_bucket(self) -> dict[str, Money]:
        result = {b.name: Money.zero() for b in self.buckets}
        for item in self.items:
            result[item.bucket.name] = result[item.bucket.name] + item.remaining
        return result

    def total_by_customer(self) -> dict[UUID, dict[str, Money]]:
        result: dict[UUID, dict[str, Money]] = {}
        for item in self.items:
            row = result.setdefault(item.customer_id, {b.name: Money.zero() for b in self.buckets})
            row[item.bucket.name] = row[item.bucket.name] + item.remaining
        return result

    def overdue_amount(self) -> Money:
        return sum_money(i.remaining for i in self.items if i.age_days > 0)


class AgingCalculator:
    """
    Age outstanding invoice balances.

    Contract:
        Pure functions; all dates passed as parameters.
    Non-goals:
        - Paid invoices are excluded; they have nothing outstanding.
    """

    def __init__(self, buckets: Sequence[AgeBucket] = STANDARD_BUCKETS):
        self._buckets = tuple(buckets)

    def classify(self, age_days: int) -> AgeBucket:
        """Bucket for ``age_days``; not-yet-due (negative) ages are Current."""
        effective = max(0, age_days)
        for bucket in self._buckets:
            if bucket.contains(effective):
                return bucket
        raise ValueError(f"No aging bucket contains age {age_days}")

    @traced_engine("aging", "1.0", fingerprint_fields=("as_of",))
    def build_report(
        self,
        invoices: Iterable[Invoice],
        balances: Mapping[UUID, InvoiceBalance],
        as_of: date,
    ) -> AgingReport:
        items: list[AgedInvoice] = []
        for invoice in invoices:
            balance = balances.get(invoice.id)
            if balance is None or not balance.remaining.is_positive:
                continue
            age = (as_of - invoice.due_date).days
            items.append(AgedInvoice(
                invoice_id=invoice.id,
                invoice_number=invoice.invoice_number,
                customer_id=invoice.customer_id,
                due_date=invoice.due_date,
                remaining=balance.remaining,
                age_days=age,
                bucket=self.classify(age),
            ))

        items.sort(key=lambda i: (i.due_date, i.invoice_number))
        logger.info("aging_report_built", extra={
            "as_of_date": as_of.isoformat(),
            "item_count": len(items),
        })
        return AgingReport(as_of_date=as_of, buckets=self._buckets, items=tuple(items))
