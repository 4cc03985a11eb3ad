"""
Module: receivables_engines.interest
Responsibility:
    Accrue simple overdue interest on each payment tranche of an invoice,
    on the still-unpaid balance as of a date, and on a customer's opening
    balance, and combine those terms under a configurable policy.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Interest is computed on read from allocation tranches; nothing here is
    persisted.

Invariants enforced:
    - interest = allocated × (annual_rate / 100 / 365) × days_overdue,
      carried at full Decimal precision and quantized once per tranche.
    - days_overdue = max(0, payment_date − anchor_date); payments on or
      before the anchor accrue nothing.
    - Monotonic: for fixed allocations, more days or a higher rate never
      yields less interest.
    - No tranches, an absent rate or a zero rate all give zero interest.

Failure modes:
    - None raised: malformed inputs are prevented upstream by DTO types.

Audit relevance:
    Every tranche carries its days and interest so the invoice detail view
    can show exactly how the total was reached.

Usage:
    from receivables_engines.interest import InterestCalculator

    breakdown = InterestCalculator().compute_interest(
        invoice, allocations, rate=Decimal("18"), as_of=date(2024, 3, 31),
    )
    breakdown.total_interest
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dates import days_between, days_overdue
from receivables_kernel.domain.dtos import (
    Allocation,
    CustomerCreditProfile,
    InterestAnchor,
    Invoice,
)
from receivables_kernel.domain.values import Money, daily_rate, sum_money
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.interest")

# Payment timing labels shown beside each tranche (days from due date).
ON_TIME_MAX_DAYS = 30
DELAYED_MAX_DAYS = 60


class InterestCombination(str, Enum):
    """How opening-balance interest joins invoice interest."""

    SUM = "sum"  # terms are added
    COMPOUND = "compound"  # opening-balance term accrues on balance + invoice interest


class PaymentTiming(str, Enum):
    EARLY = "early"
    ON_TIME = "on_time"
    DELAYED = "delayed"
    OVERDUE = "overdue"


def payment_timing(days_from_due: int) -> PaymentTiming:
    """Label a payment by its signed distance from the due date."""
    if days_from_due < 0:
        return PaymentTiming.EARLY
    if days_from_due <= ON_TIME_MAX_DAYS:
        return PaymentTiming.ON_TIME
    if days_from_due <= DELAYED_MAX_DAYS:
        return PaymentTiming.DELAYED
    return PaymentTiming.OVERDUE


@dataclass(frozen=True)
class InterestPolicy:
    """Interest configuration supplied by receivables_config."""

    combination: InterestCombination = InterestCombination.SUM
    default_anchor: InterestAnchor = InterestAnchor.DUE_DATE
    include_unpaid_interest_in_profit: bool = False


@dataclass(frozen=True)
class TrancheInterest:
    """Interest on one allocation tranche."""

    allocation_id: UUID
    receipt_id: UUID
    payment_date: date
    allocated_amount: Money
    days_from_due: int
    days_overdue: int
    interest: Money
    timing: PaymentTiming


@dataclass(frozen=True)
class OpeningBalanceAccrual:
    """Interest accrued on a customer's opening balance up to ``as_of``."""

    principal: Money
    annual_rate_pct: Decimal
    accrual_from: date | None
    as_of: date
    days: int
    interest: Money


@dataclass(frozen=True)
class InterestBreakdown:
    """
    Per-invoice interest view.

    Guarantees:
        - ``tranche_interest == Σ per_tranche.interest``.
        - ``total_interest`` is ``tranche_interest`` combined with
          ``opening_balance_interest`` under the requested policy.
        - ``unpaid_interest`` is reported separately and never included in
          ``total_interest``.
    """

    invoice_id: UUID
    annual_rate_pct: Decimal
    anchor: InterestAnchor
    anchor_date: date
    per_tranche: tuple[TrancheInterest, ...]
    tranche_interest: Money
    opening_balance_interest: Money
    total_interest: Money
    unpaid_balance: Money
    unpaid_days: int
    unpaid_interest: Money
    as_of: date | None = None

    @property
    def projected_total_interest(self) -> Money:
        """Settled interest plus what the unpaid balance has accrued so far."""
        return self.total_interest + self.unpaid_interest


@dataclass(frozen=True)
class CustomerInterestSummary:
    """Customer-level interest across all invoices plus the opening balance."""

    customer_id: UUID
    invoice_interest: Money
    opening_balance_interest: Money
    total_interest: Money
    unpaid_interest: Money
    combination: InterestCombination


def resolve_rate(invoice: Invoice, profile: CustomerCreditProfile | None) -> Decimal:
    """Invoice rate when set, else the customer's rate, else zero."""
    if invoice.interest_rate is not None:
        return invoice.interest_rate
    if profile is not None and profile.interest_rate is not None:
        return profile.interest_rate
    return Decimal("0")


def resolve_anchor(
    invoice: Invoice,
    profile: CustomerCreditProfile | None,
    default: InterestAnchor = InterestAnchor.DUE_DATE,
) -> InterestAnchor:
    if invoice.interest_anchor is not None:
        return invoice.interest_anchor
    if profile is not None and profile.interest_anchor is not None:
        return profile.interest_anchor
    return default


def anchor_date_for(invoice: Invoice, anchor: InterestAnchor) -> date:
    if anchor is InterestAnchor.INVOICE_DATE:
        return invoice.invoice_date
    return invoice.due_date


def accrue(principal: Money, annual_rate_pct: Decimal | None, days: int) -> Money:
    """Simple interest on ``principal`` for ``days``; quantized once."""
    if days <= 0 or not annual_rate_pct or principal.is_zero:
        return Money.zero()
    return Money(principal.amount * daily_rate(annual_rate_pct) * Decimal(days))


def _combine(
    tranche_total: Money,
    accrual: OpeningBalanceAccrual | None,
    combination: InterestCombination,
) -> tuple[Money, Money]:
    """Return (opening_balance_term, total) under ``combination``."""
    if accrual is None:
        return Money.zero(), tranche_total
    match combination:
        case InterestCombination.SUM:
            ob_term = accrual.interest
        case InterestCombination.COMPOUND:
            ob_term = accrue(
                accrual.principal + tranche_total, accrual.annual_rate_pct, accrual.days,
            )
        case _:
            raise ValueError(f"Unknown interest combination: {combination}")
    return ob_term, tranche_total + ob_term


class InterestCalculator:
    """
    Overdue interest per tranche, per invoice and per customer.

    Contract:
        Pure functions; callers resolve the rate and anchor (see
        ``resolve_rate`` / ``resolve_anchor``) and pass ``as_of`` explicitly.
    Non-goals:
        - No compounding across periods; interest is simple and linear.
        - Does not store results.
    """

    @traced_engine(
        "interest", "1.0",
        fingerprint_fields=("invoice", "allocations", "rate", "anchor", "as_of", "combination"),
    )
    def compute_interest(
        self,
        invoice: Invoice,
        allocations: Sequence[Allocation],
        rate: Decimal | None,
        anchor: InterestAnchor = InterestAnchor.DUE_DATE,
        as_of: date | None = None,
        opening_balance: OpeningBalanceAccrual | None = None,
        combination: InterestCombination = InterestCombination.SUM,
    ) -> InterestBreakdown:
        """
        Interest breakdown for ``invoice``.

        Args:
            invoice: The invoice.
            allocations: Tranches; those for other invoices are ignored.
            rate: Annual percentage rate already resolved for this invoice.
            anchor: Whether accrual starts at the invoice date or due date.
            as_of: Date up to which the unpaid balance accrues.  When None,
                unpaid interest is zero.
            opening_balance: Opening-balance accrual to fold into this
                invoice's total; normally left None and applied at
                customer level instead.
            combination: How the opening-balance term is combined.
        """
        annual_rate = rate if rate is not None else Decimal("0")
        start = anchor_date_for(invoice, anchor)
        own = sorted(
            (a for a in allocations if a.invoice_id == invoice.id),
            key=lambda a: (a.payment_date, a.sequence),
        )

        tranches = tuple(
            TrancheInterest(
                allocation_id=a.id,
                receipt_id=a.receipt_id,
                payment_date=a.payment_date,
                allocated_amount=a.allocated_amount,
                days_from_due=days_between(invoice.due_date, a.payment_date),
                days_overdue=days_overdue(start, a.payment_date),
                interest=accrue(a.allocated_amount, annual_rate, days_overdue(start, a.payment_date)),
                timing=payment_timing(days_between(invoice.due_date, a.payment_date)),
            )
            for a in own
        )
        tranche_total = sum_money(t.interest for t in tranches)

        paid = sum_money(a.allocated_amount for a in own)
        unpaid = (invoice.amount - paid).clamp_non_negative()
        unpaid_days = days_overdue(start, as_of) if as_of is not None else 0
        unpaid_interest = accrue(unpaid, annual_rate, unpaid_days)

        ob_term, total = _combine(tranche_total, opening_balance, combination)

        logger.debug("interest_computed", extra={
            "invoice_id": str(invoice.id),
            "annual_rate_pct": str(annual_rate),
            "anchor": anchor.value,
            "tranche_count": len(tranches),
            "total_interest": str(total),
            "unpaid_interest": str(unpaid_interest),
        })

        return InterestBreakdown(
            invoice_id=invoice.id,
            annual_rate_pct=annual_rate,
            anchor=anchor,
            anchor_date=start,
            per_tranche=tranches,
            tranche_interest=tranche_total,
            opening_balance_interest=ob_term,
            total_interest=total,
            unpaid_balance=unpaid,
            unpaid_days=unpaid_days,
            unpaid_interest=unpaid_interest,
            as_of=as_of,
        )

    def compute_opening_balance_interest(
        self,
        profile: CustomerCreditProfile,
        as_of: date,
        rate: Decimal | None = None,
    ) -> OpeningBalanceAccrual:
        """
        Interest on the customer's applicable opening balance up to ``as_of``.

        Accrual starts at ``profile.opening_balance_interest_from``; with no
        start date the opening balance accrues nothing.
        """
        annual_rate = rate if rate is not None else (profile.interest_rate or Decimal("0"))
        principal = profile.applicable_opening_balance
        start = profile.opening_balance_interest_from
        days = days_overdue(start, as_of) if start is not None else 0
        return OpeningBalanceAccrual(
            principal=principal,
            annual_rate_pct=annual_rate,
            accrual_from=start,
            as_of=as_of,
            days=days,
            interest=accrue(principal, annual_rate, days),
        )

    def summarize_customer(
        self,
        profile: CustomerCreditProfile,
        breakdowns: Iterable[InterestBreakdown],
        as_of: date,
        combination: InterestCombination = InterestCombination.SUM,
    ) -> CustomerInterestSummary:
        """Combine every invoice's tranche interest with the opening-balance term."""
        items = list(breakdowns)
        invoice_interest = sum_money(b.tranche_interest for b in items)
        accrual = self.compute_opening_balance_interest(profile, as_of)
        ob_term, total = _combine(invoice_interest, accrual, combination)
        return CustomerInterestSummary(
            customer_id=profile.customer_id,
            invoice_interest=invoice_interest,
            opening_balance_interest=ob_term,
            total_interest=total,
            unpaid_interest=sum_money(b.unpaid_interest for b in items),
            combination=combination,
        )
