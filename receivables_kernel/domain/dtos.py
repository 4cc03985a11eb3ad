"""
Receivables Domain Objects (``receivables_kernel.domain.dtos``).

Responsibility
--------------
Frozen dataclass value objects representing the nouns of the receivables
ledger: customer credit profiles, invoices, receipts, allocations and
payment-score records, plus the enums that classify them.

Architecture position
---------------------
**Kernel > Domain** -- pure data definitions with ZERO I/O.  Built by the
ORM models' ``to_dto()`` and consumed by every engine.

Invariants enforced
-------------------
* All objects are ``frozen=True``.
* All monetary fields are ``Money`` -- never ``float`` or raw ``Decimal``.
* ``Invoice.due_date`` is derived, never stored independently of its
  inputs.  Invoice settlement status is derived from allocations by the
  allocation engine and is not a field here.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid5

from receivables_kernel.domain.dates import derive_due_date
from receivables_kernel.domain.values import Money

ALLOCATION_NAMESPACE = UUID("7b0c3f52-1d8e-5a4e-9f61-3c2b8e4d7a10")


class InvoiceStatus(Enum):
    """Settlement state, derived from the sum of allocations."""
    UNPAID = "unpaid"
    PARTIAL = "partial"
    PAID = "paid"


class InterestAnchor(Enum):
    """Date from which overdue interest starts accruing."""
    INVOICE_DATE = "invoice_date"
    DUE_DATE = "due_date"


class CustomerCategory(Enum):
    """Collections category, from best (Alpha) to worst (Delta) payer."""
    ALPHA = "alpha"
    BETA = "beta"
    GAMMA = "gamma"
    DELTA = "delta"


class PaymentClassification(Enum):
    """Payment-behaviour segment driven by on-time rate."""
    STAR = "star"
    REGULAR = "regular"
    RISKY = "risky"
    CRITICAL = "critical"


@dataclass(frozen=True)
class CustomerCreditProfile:
    """A customer, with the credit and interest terms that apply to them."""
    customer_id: UUID
    name: str
    credit_limit: Money = Money.zero()
    category: CustomerCategory | None = None
    category_opening_balance: Money | None = None
    customer_opening_balance: Money | None = None
    interest_rate: Decimal | None = None  # annual %, customer default
    interest_anchor: InterestAnchor | None = None  # None: policy default applies
    opening_balance_interest_from: date | None = None

    @property
    def applicable_opening_balance(self) -> Money:
        """Customer-level opening balance wins over the category default."""
        if self.customer_opening_balance is not None:
            return self.customer_opening_balance
        if self.category_opening_balance is not None:
            return self.category_opening_balance
        return Money.zero()


@dataclass(frozen=True)
class Invoice:
    """A customer invoice."""
    id: UUID
    customer_id: UUID
    invoice_number: str
    invoice_date: date
    amount: Money
    payment_terms_days: int = 0
    due_date_override: date | None = None
    cost_basis: Money | None = None
    interest_rate: Decimal | None = None  # annual %, overrides customer rate
    interest_anchor: InterestAnchor | None = None
    sequence: int = 0  # creation order, FIFO tie-break

    @property
    def due_date(self) -> date:
        return derive_due_date(
            self.invoice_date, self.payment_terms_days, self.due_date_override,
        )


@dataclass(frozen=True)
class Receipt:
    """A payment received from a customer."""
    id: UUID
    customer_id: UUID
    amount: Money
    payment_date: date
    invoice_id: UUID | None = None  # explicit reference, else auto-allocate
    voucher_number: str | None = None
    sequence: int = 0  # creation order, replay tie-break


@dataclass(frozen=True)
class Allocation:
    """The portion of one receipt applied to one invoice (a tranche)."""
    id: UUID
    receipt_id: UUID
    invoice_id: UUID
    allocated_amount: Money
    payment_date: date
    days_overdue_at_payment: int
    sequence: int = 0  # order applied within the customer replay


def allocation_id(receipt_id: UUID, invoice_id: UUID) -> UUID:
    """Deterministic allocation identifier for a receipt/invoice pair."""
    return uuid5(ALLOCATION_NAMESPACE, f"{receipt_id}:{invoice_id}")


@dataclass(frozen=True)
class PaymentEvent:
    """One payment tranche as seen by the behaviour classifier."""
    invoice_id: UUID
    receipt_id: UUID
    due_date: date
    payment_date: date
    amount: Money


@dataclass(frozen=True)
class PaymentScoreRecord:
    """Per-customer payment-behaviour snapshot."""
    customer_id: UUID
    on_time_rate: Decimal | None
    avg_delay_days: Decimal | None
    payment_score: int | None
    classification: PaymentClassification | None
    total_payments: int
    on_time_count: int
    last_calculated_at: datetime | None = None
