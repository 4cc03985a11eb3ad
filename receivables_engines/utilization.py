"""
Module: receivables_engines.utilization
Responsibility:
    Compute how much of a customer's credit limit is consumed by
    outstanding invoice balances plus the applicable opening balance, and
    bucket customers into utilization bands for the credit dashboard.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - utilized = Σ remaining + applicable opening balance (counted once).
    - available = credit_limit − utilized, and may be negative.
    - utilization_pct is None (not an error) when credit_limit <= 0.
    - A percentage falls in the first band whose upper bound is >= it.

Failure modes:
    - ValueError from UtilizationPolicy when band bounds are not strictly
      increasing.

Usage:
    from receivables_engines.utilization import compute_utilization

    u = compute_utilization(profile, balances)
    u.band   # UtilizationBand.MODERATE
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from uuid import UUID

from receivables_engines.allocation import InvoiceBalance
from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dtos import CustomerCreditProfile
from receivables_kernel.domain.values import Money, percentage, sum_money
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.utilization")


class UtilizationBand(str, Enum):
    NOT_UTILIZED = "not_utilized"
    LOW = "low"  # 1-25%
    MODERATE = "moderate"  # 26-50%
    HIGH = "high"  # 51-75%
    CRITICAL = "critical"  # 76-100%
    OVER_UTILIZED = "over_utilized"  # > 100%


_BANDED = (
    UtilizationBand.LOW,
    UtilizationBand.MODERATE,
    UtilizationBand.HIGH,
    UtilizationBand.CRITICAL,
)


@dataclass(frozen=True)
class UtilizationPolicy:
    """Upper bounds (inclusive, in %) of LOW, MODERATE, HIGH and CRITICAL."""

    band_upper_bounds: tuple[Decimal, Decimal, Decimal, Decimal] = (
        Decimal("25"), Decimal("50"), Decimal("75"), Decimal("100"),
    )

    def __post_init__(self) -> None:
        bounds = self.band_upper_bounds
        if len(bounds) != len(_BANDED):
            raise ValueError(f"Expected {len(_BANDED)} band bounds, got {len(bounds)}")
        if any(b <= 0 for b in bounds) or any(
            lo >= hi for lo, hi in zip(bounds, bounds[1:])
        ):
            raise ValueError(f"Band bounds must be positive and increasing: {bounds}")


@dataclass(frozen=True)
class Utilization:
    customer_id: UUID
    credit_limit: Money
    outstanding: Money
    opening_balance: Money
    utilized_limit: Money
    available_limit: Money
    utilization_pct: Decimal | None
    band: UtilizationBand | None


@dataclass(frozen=True)
class UtilizationSummary:
    """Credit-management dashboard totals."""

    customer_count: int
    total_credit_limit: Money
    total_utilized: Money
    total_available: Money
    undefined_count: int
    band_counts: dict[UtilizationBand, int] = field(default_factory=dict)


def band_for(
    pct: Decimal | None,
    policy: UtilizationPolicy = UtilizationPolicy(),
) -> UtilizationBand | None:
    """Map a utilization percentage onto its dashboard band."""
    if pct is None:
        return None
    if pct <= 0:
        return UtilizationBand.NOT_UTILIZED
    for band, upper in zip(_BANDED, policy.band_upper_bounds):
        if pct <= upper:
            return band
    return UtilizationBand.OVER_UTILIZED


@traced_engine("utilization", "1.0", fingerprint_fields=("profile", "balances"))
def compute_utilization(
    profile: CustomerCreditProfile,
    balances: Iterable[InvoiceBalance],
    policy: UtilizationPolicy = UtilizationPolicy(),
) -> Utilization:
    """
    Credit utilization for one customer.

    Args:
        profile: The customer's credit profile.
        balances: Balances of the customer's invoices; paid ones contribute zero.
        policy: Band bounds.
    """
    outstanding = sum_money(b.remaining for b in balances)
    opening = profile.applicable_opening_balance
    utilized = outstanding + opening
    limit = profile.credit_limit

    pct = percentage(utilized.amount, limit.amount) if limit.is_positive else None

    return Utilization(
        customer_id=profile.customer_id,
        credit_limit=limit,
        outstanding=outstanding,
        opening_balance=opening,
        utilized_limit=utilized,
        available_limit=limit - utilized,
        utilization_pct=pct,
        band=band_for(pct, policy),
    )


def summarize_utilization(utilizations: Iterable[Utilization]) -> UtilizationSummary:
    """Count customers per band and total limits across ``utilizations``."""
    items = list(utilizations)
    counts = {band: 0 for band in UtilizationBand}
    undefined = 0
    for u in items:
        if u.band is None:
            undefined += 1
        else:
            counts[u.band] += 1

    summary = UtilizationSummary(
        customer_count=len(items),
        total_credit_limit=sum_money(u.credit_limit for u in items),
        total_utilized=sum_money(u.utilized_limit for u in items),
        total_available=sum_money(u.available_limit for u in items),
        undefined_count=undefined,
        band_counts=counts,
    )
    logger.debug("utilization_summarized", extra={
        "customer_count": summary.customer_count,
        "undefined_count": undefined,
    })
    return summary
