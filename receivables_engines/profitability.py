"""
Invoice Profitability Resolver.

Pure functions with deterministic behavior. No I/O.

Gross profit is the invoice amount less its cost basis; final gross profit
further deducts the overdue interest the company carried while waiting to
be paid.  An unknown (absent or zero) cost basis is treated as a pure
margin invoice and flagged with ``cost_basis_known=False`` so reports can
mark the figure as an approximation.  Negative results are surfaced, not
clamped.

Usage:
    from receivables_engines.profitability import resolve_profitability

    profit = resolve_profitability(invoice, breakdown)
    profit.final_gross_profit_pct   # Decimal("...") or None
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from receivables_engines.interest import InterestBreakdown
from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dtos import Invoice
from receivables_kernel.domain.values import Money, percentage
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.profitability")


@dataclass(frozen=True)
class Profitability:
    """
    Profit figures for one invoice.

    ``final_gross_profit_pct`` is None when the invoice amount is zero.
    """

    invoice_id: UUID
    invoice_amount: Money
    cost_basis: Money | None
    cost_basis_known: bool
    gross_profit: Money
    gross_profit_pct: Decimal | None
    interest_deducted: Money
    final_gross_profit: Money
    final_gross_profit_pct: Decimal | None


@traced_engine("profitability", "1.0", fingerprint_fields=("invoice", "include_unpaid_interest"))
def resolve_profitability(
    invoice: Invoice,
    breakdown: InterestBreakdown,
    include_unpaid_interest: bool = False,
) -> Profitability:
    """
    Resolve gross and final profit for ``invoice``.

    Args:
        invoice: The invoice.
        breakdown: Its interest breakdown (see InterestCalculator).
        include_unpaid_interest: Deduct ``projected_total_interest``
            (settled plus accruing-on-unpaid) instead of ``total_interest``.
    """
    cost_known = invoice.cost_basis is not None and not invoice.cost_basis.is_zero
    if cost_known:
        gross = invoice.amount - invoice.cost_basis
    else:
        gross = invoice.amount

    interest = (
        breakdown.projected_total_interest if include_unpaid_interest
        else breakdown.total_interest
    )
    final = gross - interest

    if final.is_negative:
        logger.info("invoice_negative_final_profit", extra={
            "invoice_id": str(invoice.id),
            "final_gross_profit": str(final),
        })

    return Profitability(
        invoice_id=invoice.id,
        invoice_amount=invoice.amount,
        cost_basis=invoice.cost_basis,
        cost_basis_known=cost_known,
        gross_profit=gross,
        gross_profit_pct=percentage(gross.amount, invoice.amount.amount),
        interest_deducted=interest,
        final_gross_profit=final,
        final_gross_profit_pct=percentage(final.amount, invoice.amount.amount),
    )
