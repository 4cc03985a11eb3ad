"""
Invoice ORM model (``receivables_kernel.models.invoice``).

``due_date`` is materialized from invoice_date + payment_terms_days (or the
manual override) whenever the row is written, so FIFO ordering and aging
queries can index it.  Settlement status is never stored.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receivables_kernel.db.base import TrackedBase
from receivables_kernel.db.types import RATE_TYPE
from receivables_kernel.domain.dtos import InterestAnchor, Invoice
from receivables_kernel.domain.values import Money


class InvoiceModel(TrackedBase):
    """
    ORM model for invoices.

    Guarantees:
        - invoice_number is unique per customer.
        - sequence is the creation-order tie-break, assigned once.
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("customer_id", "invoice_number", name="uq_invoices_customer_number"),
        Index("idx_invoices_customer_due", "customer_id", "due_date", "sequence"),
    )

    customer_id: Mapped[UUID] = mapped_column(ForeignKey("customers.id"), nullable=False)
    invoice_number: Mapped[str] = mapped_column(String(100), nullable=False)
    invoice_date: Mapped[date] = mapped_column(nullable=False)
    payment_terms_days: Mapped[int] = mapped_column(nullable=False, default=0)
    due_date_override: Mapped[date | None] = mapped_column(nullable=True)
    due_date: Mapped[date] = mapped_column(nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    cost_basis: Mapped[Decimal | None] = mapped_column(nullable=True)
    interest_rate: Mapped[Decimal | None] = mapped_column(RATE_TYPE, nullable=True)
    interest_anchor: Mapped[str | None] = mapped_column(String(20), nullable=True)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def to_dto(self) -> Invoice:
        return Invoice(
            id=self.id,
            customer_id=self.customer_id,
            invoice_number=self.invoice_number,
            invoice_date=self.invoice_date,
            amount=Money(self.amount),
            payment_terms_days=self.payment_terms_days,
            due_date_override=self.due_date_override,
            cost_basis=Money(self.cost_basis) if self.cost_basis is not None else None,
            interest_rate=self.interest_rate,
            interest_anchor=(
                InterestAnchor(self.interest_anchor) if self.interest_anchor else None
            ),
            sequence=self.sequence,
        )

    def apply_dto(self, dto: Invoice) -> None:
        """Copy mutable fields from ``dto``; sequence is kept as assigned."""
        self.customer_id = dto.customer_id
        self.invoice_number = dto.invoice_number
        self.invoice_date = dto.invoice_date
        self.payment_terms_days = dto.payment_terms_days
        self.due_date_override = dto.due_date_override
        self.due_date = dto.due_date
        self.amount = dto.amount.amount
        self.cost_basis = dto.cost_basis.amount if dto.cost_basis is not None else None
        self.interest_rate = dto.interest_rate
        self.interest_anchor = dto.interest_anchor.value if dto.interest_anchor else None

    @classmethod
    def from_dto(cls, dto: Invoice, sequence: int, created_by_id: UUID) -> "InvoiceModel":
        model = cls(id=dto.id, sequence=sequence, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model

    def __repr__(self) -> str:
        return f"<InvoiceModel {self.invoice_number}: {self.amount}>"
