"""
Customer category recommendation.

Pure functions with deterministic behavior. No I/O.

Each invoice is given a delay: for a paid invoice, days from due date to
the payment that completed it; for an open invoice already past due, days
from due date to ``as_of``.  Invoices not yet due carry no evidence and are
skipped.  The grace period is subtracted to give the adjusted delay, and
each invoice falls into Alpha/Beta/Gamma/Delta by that figure.  The
customer's recommended category is the band of the mean adjusted delay.

A customer with no evidence keeps their current category and
``will_change`` is False.

Usage:
    from receivables_engines.categorization import CategoryRules, recommend_category

    rec = recommend_category(profile, invoices, allocations, as_of, CategoryRules())
    rec.recommended   # CustomerCategory.BETA
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from uuid import UUID

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dtos import (
    Allocation,
    CustomerCategory,
    CustomerCreditProfile,
    Invoice,
)
from receivables_kernel.domain.values import quantize_amount, sum_money
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.categorization")


@dataclass(frozen=True)
class CategoryRules:
    """Grace period and the inclusive upper delay bound of each category."""

    grace_days: int = 7
    alpha_max_days: int = 5
    beta_max_days: int = 20
    gamma_max_days: int = 40

    def __post_init__(self) -> None:
        if self.grace_days < 0:
            raise ValueError("grace_days cannot be negative")
        if not (0 <= self.alpha_max_days < self.beta_max_days < self.gamma_max_days):
            raise ValueError(
                "Category bounds must satisfy 0 <= alpha < beta < gamma: "
                f"{self.alpha_max_days}/{self.beta_max_days}/{self.gamma_max_days}"
            )

    def category_for(self, adjusted_delay: Decimal | int) -> CustomerCategory:
        if adjusted_delay <= self.alpha_max_days:
            return CustomerCategory.ALPHA
        if adjusted_delay <= self.beta_max_days:
            return CustomerCategory.BETA
        if adjusted_delay <= self.gamma_max_days:
            return CustomerCategory.GAMMA
        return CustomerCategory.DELTA


@dataclass(frozen=True)
class InvoiceDelay:
    invoice_id: UUID
    invoice_number: str
    due_date: date
    completion_date: date | None  # None while still open
    delay_days: int
    adjusted_delay: int
    category: CustomerCategory


@dataclass(frozen=True)
class CategoryRecommendation:
    customer_id: UUID
    current: CustomerCategory | None
    recommended: CustomerCategory | None
    mean_adjusted_delay: Decimal | None
    invoices: tuple[InvoiceDelay, ...] = ()
    breakdown: dict[CustomerCategory, int] = field(default_factory=dict)

    @property
    def will_change(self) -> bool:
        return self.recommended is not None and self.recommended != self.current


def invoice_delays(
    invoices: Iterable[Invoice],
    allocations: Sequence[Allocation],
    as_of: date,
    rules: CategoryRules,
) -> list[InvoiceDelay]:
    """Delay evidence per invoice, skipping open invoices not yet past due."""
    by_invoice: dict[UUID, list[Allocation]] = {}
    for a in allocations:
        by_invoice.setdefault(a.invoice_id, []).append(a)

    delays: list[InvoiceDelay] = []
    for invoice in invoices:
        own = by_invoice.get(invoice.id, [])
        paid = sum_money(a.allocated_amount for a in own)
        if paid >= invoice.amount:
            completion = max((a.payment_date for a in own), default=invoice.invoice_date)
            delay = max(0, (completion - invoice.due_date).days)
        elif as_of > invoice.due_date:
            completion = None
            delay = (as_of - invoice.due_date).days
        else:
            continue
        adjusted = max(0, delay - rules.grace_days)
        delays.append(InvoiceDelay(
            invoice_id=invoice.id,
            invoice_number=invoice.invoice_number,
            due_date=invoice.due_date,
            completion_date=completion,
            delay_days=delay,
            adjusted_delay=adjusted,
            category=rules.category_for(adjusted),
        ))
    return delays


@traced_engine("categorization", "1.0", fingerprint_fields=("profile", "as_of", "rules"))
def recommend_category(
    profile: CustomerCreditProfile,
    invoices: Sequence[Invoice],
    allocations: Sequence[Allocation],
    as_of: date,
    rules: CategoryRules = CategoryRules(),
) -> CategoryRecommendation:
    """Recommend a collections category for ``profile`` from its invoice history."""
    delays = invoice_delays(invoices, allocations, as_of, rules)
    breakdown = {c: 0 for c in CustomerCategory}
    for d in delays:
        breakdown[d.category] += 1

    if not delays:
        return CategoryRecommendation(
            customer_id=profile.customer_id,
            current=profile.category,
            recommended=profile.category,
            mean_adjusted_delay=None,
            invoices=(),
            breakdown=breakdown,
        )

    mean = quantize_amount(
        Decimal(sum(d.adjusted_delay for d in delays)) / Decimal(len(delays))
    )
    recommended = rules.category_for(mean)
    if recommended != profile.category:
        logger.info("category_change_recommended", extra={
            "customer_id": str(profile.customer_id),
            "current": profile.category.value if profile.category else None,
            "recommended": recommended.value,
            "mean_adjusted_delay": str(mean),
        })

    return CategoryRecommendation(
        customer_id=profile.customer_id,
        current=profile.category,
        recommended=recommended,
        mean_adjusted_delay=mean,
        invoices=tuple(delays),
        breakdown=breakdown,
    )
