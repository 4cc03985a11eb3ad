"""
Allocation ORM model (``receivables_kernel.models.allocation``).

Allocation rows are owned by the allocation replay: they are deleted and
regenerated, never edited.  Primary keys are deterministic
(``allocation_id(receipt_id, invoice_id)``) so a regenerated row carries
the same identity as the one it replaces.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from receivables_kernel.db.base import Base
from receivables_kernel.domain.dtos import Allocation
from receivables_kernel.domain.values import Money


class AllocationModel(Base):
    """One receipt-to-invoice tranche."""

    __tablename__ = "allocations"

    __table_args__ = (
        UniqueConstraint("receipt_id", "invoice_id", name="uq_allocations_receipt_invoice"),
        Index("idx_allocations_customer", "customer_id", "sequence"),
        Index("idx_allocations_invoice", "invoice_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(ForeignKey("customers.id"), nullable=False)
    receipt_id: Mapped[UUID] = mapped_column(
        ForeignKey("receipts.id", ondelete="CASCADE"), nullable=False,
    )
    invoice_id: Mapped[UUID] = mapped_column(
        ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False,
    )
    allocated_amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    days_overdue_at_payment: Mapped[int] = mapped_column(nullable=False, default=0)
    sequence: Mapped[int] = mapped_column(nullable=False, default=0)

    def to_dto(self) -> Allocation:
        return Allocation(
            id=self.id,
            receipt_id=self.receipt_id,
            invoice_id=self.invoice_id,
            allocated_amount=Money(self.allocated_amount),
            payment_date=self.payment_date,
            days_overdue_at_payment=self.days_overdue_at_payment,
            sequence=self.sequence,
        )

    @classmethod
    def from_dto(cls, dto: Allocation, customer_id: UUID) -> "AllocationModel":
        return cls(
            id=dto.id,
            customer_id=customer_id,
            receipt_id=dto.receipt_id,
            invoice_id=dto.invoice_id,
            allocated_amount=dto.allocated_amount.amount,
            payment_date=dto.payment_date,
            days_overdue_at_payment=dto.days_overdue_at_payment,
            sequence=dto.sequence,
        )

    def __repr__(self) -> str:
        return f"<AllocationModel {self.receipt_id}->{self.invoice_id}: {self.allocated_amount}>"
