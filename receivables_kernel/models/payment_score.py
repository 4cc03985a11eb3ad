"""
Payment score ORM model (``receivables_kernel.models.payment_score``).

One row per customer, written only by the payment-score recalculation.
Replacement happens inside a savepoint so readers see either the previous
record or the new one.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from receivables_kernel.db.base import Base
from receivables_kernel.db.types import RATE_TYPE
from receivables_kernel.domain.dtos import PaymentClassification, PaymentScoreRecord


class PaymentScoreModel(Base):
    """Persisted PaymentScoreRecord."""

    __tablename__ = "payment_scores"

    customer_id: Mapped[UUID] = mapped_column(
        ForeignKey("customers.id", ondelete="CASCADE"), nullable=False, unique=True,
    )
    on_time_rate: Mapped[Decimal | None] = mapped_column(RATE_TYPE, nullable=True)
    avg_delay_days: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)
    payment_score: Mapped[int | None] = mapped_column(Integer, nullable=True)
    classification: Mapped[str | None] = mapped_column(String(20), nullable=True)
    total_payments: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    on_time_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_calculated_at: Mapped[datetime | None] = mapped_column(nullable=True)
    policy_checksum: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def to_dto(self) -> PaymentScoreRecord:
        return PaymentScoreRecord(
            customer_id=self.customer_id,
            on_time_rate=self.on_time_rate,
            avg_delay_days=self.avg_delay_days,
            payment_score=self.payment_score,
            classification=(
                PaymentClassification(self.classification)
                if self.classification else None
            ),
            total_payments=self.total_payments,
            on_time_count=self.on_time_count,
            last_calculated_at=self.last_calculated_at,
        )

    def apply_dto(self, dto: PaymentScoreRecord, policy_checksum: str | None = None) -> None:
        self.on_time_rate = dto.on_time_rate
        self.avg_delay_days = dto.avg_delay_days
        self.payment_score = dto.payment_score
        self.classification = dto.classification.value if dto.classification else None
        self.total_payments = dto.total_payments
        self.on_time_count = dto.on_time_count
        self.last_calculated_at = dto.last_calculated_at
        self.policy_checksum = policy_checksum

    def __repr__(self) -> str:
        return f"<PaymentScoreModel {self.customer_id}: {self.classification}>"
