"""
Tests for the payment allocation engine.

Covers:
- Explicit allocation to a referenced invoice
- FIFO allocation by due date, creation order as tie-break
- Overpayment reported as unallocated
- Customer mismatch and invalid amounts
- Ledger replay, including replay on top of a retained prefix
- Settlement status and balances
- Conservation (property-based)
"""

from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from receivables_engines.allocation import (
    AllocationMode,
    OpenInvoice,
    PaymentAllocator,
    compute_balances,
    fifo_order,
    invoice_balance,
    replay_order,
    settlement_status,
)
from receivables_kernel.domain.dtos import Invoice, InvoiceStatus, Receipt, allocation_id
from receivables_kernel.domain.values import Money, sum_money
from receivables_kernel.exceptions import (
    CustomerMismatchError,
    InvalidAmountError,
    InvoiceNotFoundError,
)

DAY0 = date(2024, 1, 1)
CUSTOMER = uuid4()


def _invoice(amount="10000", terms=0, sequence=1, customer_id=CUSTOMER, invoice_date=DAY0):
    return Invoice(
        id=uuid4(),
        customer_id=customer_id,
        invoice_number=f"INV-{sequence:03d}",
        invoice_date=invoice_date,
        amount=Money.of(amount),
        payment_terms_days=terms,
        sequence=sequence,
    )


def _receipt(amount, paid_on=DAY0, invoice=None, sequence=1, customer_id=CUSTOMER):
    return Receipt(
        id=uuid4(),
        customer_id=customer_id,
        amount=Money.of(amount),
        payment_date=paid_on,
        invoice_id=invoice.id if invoice is not None else None,
        sequence=sequence,
    )


def _open(*invoices):
    return [OpenInvoice(invoice=inv, remaining=inv.amount) for inv in invoices]


class TestExplicitAllocation:
    """A receipt naming an invoice only ever touches that invoice."""

    def setup_method(self):
        self.allocator = PaymentAllocator()

    def test_full_payment_to_referenced_invoice(self):
        older = _invoice(sequence=1)
        target = _invoice(terms=30, sequence=2)
        receipt = _receipt("10000", paid_on=DAY0 + timedelta(days=40), invoice=target)

        result = self.allocator.allocate(receipt, _open(older, target))

        assert result.mode == AllocationMode.EXPLICIT
        assert len(result.allocations) == 1
        tranche = result.allocations[0]
        assert tranche.invoice_id == target.id
        assert tranche.allocated_amount == Money.of("10000")
        assert tranche.days_overdue_at_payment == 10
        assert result.is_fully_allocated

    def test_excess_over_referenced_invoice_is_unallocated(self):
        small = _invoice("3000", sequence=1)
        other = _invoice("5000", sequence=2)
        receipt = _receipt("4000", invoice=small)

        result = self.allocator.allocate(receipt, _open(small, other))

        assert [a.invoice_id for a in result.allocations] == [small.id]
        assert result.total_allocated == Money.of("3000")
        assert result.unallocated_amount == Money.of("1000")

    def test_unknown_reference_raises(self):
        receipt = _receipt("100", invoice=_invoice())
        with pytest.raises(InvoiceNotFoundError):
            self.allocator.allocate(receipt, _open(_invoice()))

    def test_settled_reference_gets_no_tranche(self):
        paid = _invoice("1000")
        receipt = _receipt("500", invoice=paid)

        result = self.allocator.allocate(
            receipt, [OpenInvoice(invoice=paid, remaining=Money.zero())],
        )

        assert result.allocations == ()
        assert result.unallocated_amount == Money.of("500")


class TestFifoAllocation:
    """Unreferenced receipts fill the earliest-due invoice first."""

    def setup_method(self):
        self.allocator = PaymentAllocator()

    def test_fills_earliest_due_first(self):
        late_due = _invoice("1000", terms=60, sequence=1)
        early_due = _invoice("1000", terms=10, sequence=2)

        result = self.allocator.allocate(_receipt("1500"), _open(late_due, early_due))

        assert result.mode == AllocationMode.FIFO
        assert [a.invoice_id for a in result.allocations] == [early_due.id, late_due.id]
        assert [a.allocated_amount for a in result.allocations] == [
            Money.of("1000"), Money.of("500"),
        ]

    def test_same_due_date_uses_creation_order(self):
        second = _invoice("1000", sequence=2)
        first = _invoice("1000", sequence=1)

        result = self.allocator.allocate(_receipt("1000"), _open(second, first))

        assert [a.invoice_id for a in result.allocations] == [first.id]

    def test_overpayment_reports_unallocated(self):
        invoice = _invoice("10000")

        result = self.allocator.allocate(_receipt("12000"), _open(invoice))

        assert result.total_allocated == Money.of("10000")
        assert result.unallocated_amount == Money.of("2000")
        assert not result.is_fully_allocated

    def test_no_open_invoices_leaves_everything_unallocated(self):
        result = self.allocator.allocate(_receipt("250"), [])
        assert result.allocations == ()
        assert result.unallocated_amount == Money.of("250")

    def test_tranche_sequence_starts_at_first_sequence(self):
        a, b = _invoice("100", sequence=1), _invoice("100", sequence=2)
        result = self.allocator.allocate(_receipt("200"), _open(a, b), first_sequence=7)
        assert [t.sequence for t in result.allocations] == [7, 8]

    def test_allocation_ids_are_deterministic(self):
        invoice = _invoice("100")
        receipt = _receipt("100")

        first = self.allocator.allocate(receipt, _open(invoice))
        second = self.allocator.allocate(receipt, _open(invoice))

        assert first.allocations == second.allocations
        assert first.allocations[0].id == allocation_id(receipt.id, invoice.id)

    def test_negative_remaining_is_clamped(self):
        invoice = _invoice("100")
        candidate = OpenInvoice(invoice=invoice, remaining=Money.of("-5"))
        assert candidate.remaining == Money.zero()


class TestAllocationRejections:

    def setup_method(self):
        self.allocator = PaymentAllocator()

    @pytest.mark.parametrize("amount", ["0", "-10"])
    def test_non_positive_receipt_rejected(self, amount):
        with pytest.raises(InvalidAmountError):
            self.allocator.allocate(_receipt(amount), _open(_invoice()))

    def test_candidate_of_another_customer_rejected(self):
        foreign = _invoice(customer_id=uuid4())
        with pytest.raises(CustomerMismatchError) as exc_info:
            self.allocator.allocate(_receipt("100"), _open(foreign))
        assert exc_info.value.invoice_customer_id == str(foreign.customer_id)


class TestLedgerReplay:

    def setup_method(self):
        self.allocator = PaymentAllocator()

    def test_replay_orders_by_payment_date_then_sequence(self):
        r1 = _receipt("10", paid_on=DAY0 + timedelta(days=5), sequence=2)
        r2 = _receipt("10", paid_on=DAY0 + timedelta(days=5), sequence=1)
        r3 = _receipt("10", paid_on=DAY0, sequence=3)
        assert replay_order([r1, r2, r3]) == [r3, r2, r1]

    def test_fifo_order(self):
        a = _invoice(terms=30, sequence=1)
        b = _invoice(terms=5, sequence=2)
        assert fifo_order([a, b]) == [b, a]

    def test_replay_applies_receipts_in_order(self):
        first = _invoice("1000", sequence=1)
        second = _invoice("1000", terms=10, sequence=2)
        early = _receipt("1200", paid_on=DAY0 + timedelta(days=1), sequence=2)
        late = _receipt("800", paid_on=DAY0 + timedelta(days=20), sequence=1)

        replay = self.allocator.replay_ledger([first, second], [late, early])

        assert [(a.receipt_id, a.invoice_id) for a in replay.allocations] == [
            (early.id, first.id), (early.id, second.id), (late.id, second.id),
        ]
        assert [a.sequence for a in replay.allocations] == [1, 2, 3]
        assert replay.balances[second.id].remaining == Money.zero()
        assert replay.unallocated_by_receipt == {}

    def test_replay_on_retained_prefix_matches_full_replay(self):
        invoices = [_invoice("700", sequence=1), _invoice("900", terms=15, sequence=2)]
        receipts = [
            _receipt("500", paid_on=DAY0 + timedelta(days=n * 3), sequence=n + 1)
            for n in range(4)
        ]
        full = self.allocator.replay_ledger(invoices, receipts)

        prefix = self.allocator.replay_ledger(invoices, receipts[:2])
        resumed = self.allocator.replay_ledger(
            invoices, receipts[2:], retained=prefix.allocations,
        )

        assert resumed.allocations == full.allocations
        assert resumed.balances == full.balances

    def test_unallocated_by_receipt(self):
        invoice = _invoice("100")
        receipt = _receipt("150")
        replay = self.allocator.replay_ledger([invoice], [receipt])
        assert replay.unallocated_by_receipt == {receipt.id: Money.of("50")}


class TestBalancesAndStatus:

    def test_settlement_status(self):
        amount = Money.of("100")
        assert settlement_status(amount, Money.zero()) == InvoiceStatus.UNPAID
        assert settlement_status(amount, Money.of("40")) == InvoiceStatus.PARTIAL
        assert settlement_status(amount, Money.of("100")) == InvoiceStatus.PAID

    def test_zero_amount_invoice_is_paid(self):
        assert settlement_status(Money.zero(), Money.zero()) == InvoiceStatus.PAID

    def test_balances(self):
        invoice = _invoice("1000")
        result = PaymentAllocator().allocate(_receipt("400"), _open(invoice))

        balances = compute_balances([invoice], result.allocations)

        assert balances[invoice.id].remaining == Money.of("600")
        assert balances[invoice.id].status == InvoiceStatus.PARTIAL
        assert invoice_balance(invoice, result.allocations) == balances[invoice.id]


amounts = st.decimals(
    min_value=Decimal("0.01"), max_value=Decimal("100000"), places=2,
    allow_nan=False, allow_infinity=False,
)


class TestAllocationProperties:

    @settings(max_examples=60, deadline=None)
    @given(
        invoice_amounts=st.lists(amounts, min_size=0, max_size=6),
        receipt_amounts=st.lists(amounts, min_size=1, max_size=6),
    )
    def test_conservation_and_no_over_allocation(self, invoice_amounts, receipt_amounts):
        invoices = [
            _invoice(str(a), terms=i * 7, sequence=i + 1)
            for i, a in enumerate(invoice_amounts)
        ]
        receipts = [
            _receipt(str(a), paid_on=DAY0 + timedelta(days=i), sequence=i + 1)
            for i, a in enumerate(receipt_amounts)
        ]

        replay = PaymentAllocator().replay_ledger(invoices, receipts)

        for result in replay.receipt_results:
            receipt = next(r for r in receipts if r.id == result.receipt_id)
            assert result.total_allocated + result.unallocated_amount == receipt.amount
            assert not result.unallocated_amount.is_negative
        for invoice in invoices:
            allocated = sum_money(
                a.allocated_amount for a in replay.allocations if a.invoice_id == invoice.id
            )
            assert allocated <= invoice.amount
        assert all(a.allocated_amount.is_positive for a in replay.allocations)
