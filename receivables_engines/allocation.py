"""
Module: receivables_engines.allocation
Responsibility:
    Apply receipts to a customer's open invoices, either to an explicitly
    referenced invoice or FIFO by due date, and derive each invoice's
    remaining balance and settlement status from the resulting tranches.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import receivables_kernel.domain and receivables_kernel.exceptions.

Invariants enforced:
    - Conservation: for every receipt, Σ allocated + unallocated == amount.
    - No over-allocation: an invoice never receives more than its
      remaining balance; remaining is clamped at zero.
    - Determinism: FIFO order is (due_date, invoice sequence); replay order
      is (payment_date, receipt sequence); allocation ids are uuid5 of the
      receipt/invoice pair.  Identical inputs give identical tranches.
    - Purity: no clock access, no I/O.

Failure modes:
    - InvalidAmountError when a receipt amount is zero or negative.
    - CustomerMismatchError when a candidate or referenced invoice belongs
      to a different customer than the receipt.
    - InvoiceNotFoundError when an explicit reference is not among the
      candidates supplied by the caller.

Audit relevance:
    Allocation tranches are the basis for every interest figure.  Because
    ``replay_ledger`` over the same invoices and receipts always produces
    the same tranches, retract-then-reapply after an edit is verifiable by
    a from-scratch replay.

Usage:
    from receivables_engines.allocation import OpenInvoice, PaymentAllocator

    allocator = PaymentAllocator()
    result = allocator.allocate(
        receipt,
        [OpenInvoice(invoice=inv, remaining=Money.of("10000"))],
    )
    result.unallocated_amount   # Money("0.00")
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dates import days_overdue
from receivables_kernel.domain.dtos import (
    Allocation,
    Invoice,
    InvoiceStatus,
    Receipt,
    allocation_id,
)
from receivables_kernel.domain.values import Money, sum_money
from receivables_kernel.exceptions import (
    CustomerMismatchError,
    InvalidAmountError,
    InvoiceNotFoundError,
)
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


class AllocationMode(str, Enum):
    """How a receipt was applied."""

    EXPLICIT = "explicit"  # receipt names its invoice
    FIFO = "fifo"  # earliest due date first


@dataclass(frozen=True)
class OpenInvoice:
    """
    An allocation candidate: an invoice and what is still owed on it.

    Guarantees:
        - ``remaining`` is never negative.
    """

    invoice: Invoice
    remaining: Money

    def __post_init__(self) -> None:
        if self.remaining.is_negative:
            object.__setattr__(self, "remaining", Money.zero())


@dataclass(frozen=True)
class AllocationResult:
    """
    Outcome of applying one receipt.

    Guarantees:
        - ``total_allocated + unallocated_amount == receipt.amount``.
    """

    receipt_id: UUID
    mode: AllocationMode
    allocations: tuple[Allocation, ...]
    total_allocated: Money
    unallocated_amount: Money

    @property
    def is_fully_allocated(self) -> bool:
        return self.unallocated_amount.is_zero


@dataclass(frozen=True)
class InvoiceBalance:
    """Remaining balance and settlement status of one invoice."""

    invoice_id: UUID
    amount: Money
    allocated: Money
    remaining: Money
    status: InvoiceStatus


@dataclass(frozen=True)
class LedgerReplayResult:
    """
    Outcome of replaying a customer's receipts in canonical order.

    ``allocations`` holds the retained tranches followed by the reapplied
    ones, numbered by ``Allocation.sequence``.
    """

    allocations: tuple[Allocation, ...]
    receipt_results: tuple[AllocationResult, ...]
    balances: Mapping[UUID, InvoiceBalance]

    @property
    def unallocated_by_receipt(self) -> dict[UUID, Money]:
        return {
            r.receipt_id: r.unallocated_amount
            for r in self.receipt_results
            if not r.unallocated_amount.is_zero
        }


def settlement_status(amount: Money, allocated: Money) -> InvoiceStatus:
    """UNPAID when nothing is allocated, PAID when nothing remains, else PARTIAL."""
    remaining = amount - allocated
    if remaining.amount <= 0:
        return InvoiceStatus.PAID
    if allocated.amount <= 0:
        return InvoiceStatus.UNPAID
    return InvoiceStatus.PARTIAL


def invoice_balance(invoice: Invoice, allocations: Iterable[Allocation]) -> InvoiceBalance:
    """Balance of ``invoice`` from the tranches that target it."""
    allocated = sum_money(
        a.allocated_amount for a in allocations if a.invoice_id == invoice.id
    )
    return InvoiceBalance(
        invoice_id=invoice.id,
        amount=invoice.amount,
        allocated=allocated,
        remaining=(invoice.amount - allocated).clamp_non_negative(),
        status=settlement_status(invoice.amount, allocated),
    )


def compute_balances(
    invoices: Iterable[Invoice],
    allocations: Iterable[Allocation],
) -> dict[UUID, InvoiceBalance]:
    """Balances for every invoice, keyed by invoice id."""
    allocated: dict[UUID, Money] = {}
    for a in allocations:
        allocated[a.invoice_id] = allocated.get(a.invoice_id, Money.zero()) + a.allocated_amount

    balances: dict[UUID, InvoiceBalance] = {}
    for invoice in invoices:
        total = allocated.get(invoice.id, Money.zero())
        balances[invoice.id] = InvoiceBalance(
            invoice_id=invoice.id,
            amount=invoice.amount,
            allocated=total,
            remaining=(invoice.amount - total).clamp_non_negative(),
            status=settlement_status(invoice.amount, total),
        )
    return balances


def fifo_order(invoices: Iterable[Invoice]) -> list[Invoice]:
    """Invoices ordered oldest due date first, creation order as tie-break."""
    return sorted(invoices, key=lambda inv: (inv.due_date, inv.sequence, str(inv.id)))


def replay_order(receipts: Iterable[Receipt]) -> list[Receipt]:
    """Receipts in canonical replay order: payment date, then creation order."""
    return sorted(receipts, key=lambda r: (r.payment_date, r.sequence, str(r.id)))


class PaymentAllocator:
    """
    Apply receipts to open invoices.

    Contract:
        Pure functions; no I/O, no database access.
    Guarantees:
        - Explicit receipts only ever touch the referenced invoice; any
          excess over its remaining balance is reported as unallocated.
        - Unreferenced receipts are applied FIFO by (due_date, sequence).
        - Zero-balance candidates receive no tranche.
    Non-goals:
        - Does not retract anything itself: callers pass the balances left
          after retraction, or use ``replay_ledger`` to rebuild from scratch.
    """

    @traced_engine("payment_allocation", "1.0", fingerprint_fields=("receipt", "candidate_invoices"))
    def allocate(
        self,
        receipt: Receipt,
        candidate_invoices: Sequence[OpenInvoice],
        first_sequence: int = 1,
    ) -> AllocationResult:
        """
        Apply ``receipt`` to ``candidate_invoices``.

        Args:
            receipt: The receipt to apply.
            candidate_invoices: The customer's invoices with their current
                remaining balances.
            first_sequence: ``Allocation.sequence`` of the first tranche produced.

        Returns:
            AllocationResult with the tranches and any unallocated remainder.
        """
        if not receipt.amount.is_positive:
            logger.warning("allocation_invalid_amount", extra={
                "receipt_id": str(receipt.id),
                "amount": str(receipt.amount),
            })
            raise InvalidAmountError(
                receipt.amount.amount, "receipt amount must be positive", str(receipt.id),
            )

        for candidate in candidate_invoices:
            if candidate.invoice.customer_id != receipt.customer_id:
                raise CustomerMismatchError(
                    receipt_id=str(receipt.id),
                    invoice_id=str(candidate.invoice.id),
                    receipt_customer_id=str(receipt.customer_id),
                    invoice_customer_id=str(candidate.invoice.customer_id),
                )

        if receipt.invoice_id is not None:
            target = next(
                (c for c in candidate_invoices if c.invoice.id == receipt.invoice_id),
                None,
            )
            if target is None:
                raise InvoiceNotFoundError(str(receipt.invoice_id))
            mode = AllocationMode.EXPLICIT
            ordered = [target]
        else:
            mode = AllocationMode.FIFO
            by_id = {c.invoice.id: c for c in candidate_invoices}
            ordered = [by_id[inv.id] for inv in fifo_order(c.invoice for c in candidate_invoices)]

        return self._allocate_sequential(receipt, ordered, mode, first_sequence)

    def _allocate_sequential(
        self,
        receipt: Receipt,
        ordered: Sequence[OpenInvoice],
        mode: AllocationMode,
        first_sequence: int,
    ) -> AllocationResult:
        """Fill candidates in order until the receipt is exhausted."""
        left = receipt.amount
        allocations: list[Allocation] = []

        for candidate in ordered:
            if left.is_zero:
                break
            if not candidate.remaining.is_positive:
                continue
            amount = min(left, candidate.remaining)
            left = left - amount
            invoice = candidate.invoice
            allocations.append(Allocation(
                id=allocation_id(receipt.id, invoice.id),
                receipt_id=receipt.id,
                invoice_id=invoice.id,
                allocated_amount=amount,
                payment_date=receipt.payment_date,
                days_overdue_at_payment=days_overdue(invoice.due_date, receipt.payment_date),
                sequence=first_sequence + len(allocations),
            ))

        total_allocated = sum_money(a.allocated_amount for a in allocations)
        assert total_allocated + left == receipt.amount, (
            f"Allocation conservation violated: "
            f"{total_allocated} + {left} != {receipt.amount}"
        )

        logger.info("allocation_completed", extra={
            "receipt_id": str(receipt.id),
            "mode": mode.value,
            "receipt_amount": str(receipt.amount),
            "total_allocated": str(total_allocated),
            "unallocated": str(left),
            "invoices_funded": len(allocations),
        })
        if not left.is_zero:
            logger.warning("receipt_unallocated_amount", extra={
                "receipt_id": str(receipt.id),
                "unallocated": str(left),
            })

        return AllocationResult(
            receipt_id=receipt.id,
            mode=mode,
            allocations=tuple(allocations),
            total_allocated=total_allocated,
            unallocated_amount=left,
        )

    @traced_engine("ledger_replay", "1.0", fingerprint_fields=("invoices", "receipts", "retained"))
    def replay_ledger(
        self,
        invoices: Sequence[Invoice],
        receipts: Sequence[Receipt],
        retained: Sequence[Allocation] = (),
    ) -> LedgerReplayResult:
        """
        Reapply ``receipts`` in canonical order on top of ``retained`` tranches.

        With ``retained`` empty this is a from-scratch rebuild of the
        customer's allocations.  When only a suffix of the receipt order is
        affected by an edit, the caller retains the prefix tranches and
        passes the suffix receipts; the result is identical to a full rebuild.
        """
        balances = compute_balances(invoices, retained)
        remaining = {inv_id: bal.remaining for inv_id, bal in balances.items()}
        next_sequence = max((a.sequence for a in retained), default=0) + 1

        produced: list[Allocation] = []
        results: list[AllocationResult] = []
        for receipt in replay_order(receipts):
            candidates = [
                OpenInvoice(invoice=inv, remaining=remaining[inv.id]) for inv in invoices
            ]
            result = self.allocate(receipt, candidates, first_sequence=next_sequence)
            for tranche in result.allocations:
                remaining[tranche.invoice_id] = remaining[tranche.invoice_id] - tranche.allocated_amount
            next_sequence += len(result.allocations)
            produced.extend(result.allocations)
            results.append(result)

        all_allocations = tuple(retained) + tuple(produced)
        return LedgerReplayResult(
            allocations=all_allocations,
            receipt_results=tuple(results),
            balances=compute_balances(invoices, all_allocations),
        )
