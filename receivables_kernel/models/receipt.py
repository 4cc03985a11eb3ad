"""Receipt ORM model (``receivables_kernel.models.receipt``)."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from receivables_kernel.db.base import TrackedBase
from receivables_kernel.domain.dtos import Receipt
from receivables_kernel.domain.values import Money


class ReceiptModel(TrackedBase):
    """
    ORM model for receipts.

    ``invoice_id`` is the explicit allocation reference; NULL means the
    receipt is auto-allocated FIFO.
    """

    __tablename__ = "receipts"

    __table_args__ = (
        Index("idx_receipts_customer_date", "customer_id", "payment_date", "sequence"),
        Index("idx_receipts_invoice_id", "invoice_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(ForeignKey("customers.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    payment_date: Mapped[date] = mapped_column(nullable=False)
    invoice_id: Mapped[UUID | None] = mapped_column(ForeignKey("invoices.id"), nullable=True)
    voucher_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    sequence: Mapped[int] = mapped_column(nullable=False)

    def to_dto(self) -> Receipt:
        return Receipt(
            id=self.id,
            customer_id=self.customer_id,
            amount=Money(self.amount),
            payment_date=self.payment_date,
            invoice_id=self.invoice_id,
            voucher_number=self.voucher_number,
            sequence=self.sequence,
        )

    def apply_dto(self, dto: Receipt) -> None:
        self.customer_id = dto.customer_id
        self.amount = dto.amount.amount
        self.payment_date = dto.payment_date
        self.invoice_id = dto.invoice_id
        self.voucher_number = dto.voucher_number

    @classmethod
    def from_dto(cls, dto: Receipt, sequence: int, created_by_id: UUID) -> "ReceiptModel":
        model = cls(id=dto.id, sequence=sequence, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model

    def __repr__(self) -> str:
        return f"<ReceiptModel {self.id}: {self.amount} on {self.payment_date}>"
