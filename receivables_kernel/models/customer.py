"""
Customer ORM model (``receivables_kernel.models.customer``).

Maps to the ``CustomerCreditProfile`` frozen dataclass.  The customer row is
also the lock target for ledger mutations: every invoice/receipt change
takes ``SELECT ... FOR UPDATE`` on it before touching allocations.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Index, String
from sqlalchemy.orm import Mapped, mapped_column

from receivables_kernel.db.base import TrackedBase
from receivables_kernel.db.types import RATE_TYPE
from receivables_kernel.domain.dtos import (
    CustomerCategory,
    CustomerCreditProfile,
    InterestAnchor,
)
from receivables_kernel.domain.values import Money


def _money_or_none(value: Decimal | None) -> Money | None:
    return Money(value) if value is not None else None


class CustomerModel(TrackedBase):
    """
    ORM model for customers and their credit terms.

    Guarantees:
        - credit_limit is NOT NULL and defaults to 0 (utilization undefined).
        - category / interest_anchor stored as enum values; a NULL anchor
          defers to the policy default.
    """

    __tablename__ = "customers"

    __table_args__ = (
        Index("idx_customers_category", "category"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    credit_limit: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    category: Mapped[str | None] = mapped_column(String(20), nullable=True)
    category_opening_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    customer_opening_balance: Mapped[Decimal | None] = mapped_column(nullable=True)
    interest_rate: Mapped[Decimal | None] = mapped_column(RATE_TYPE, nullable=True)
    interest_anchor: Mapped[str | None] = mapped_column(String(20), nullable=True)
    opening_balance_interest_from: Mapped[date | None] = mapped_column(nullable=True)

    def to_dto(self) -> CustomerCreditProfile:
        return CustomerCreditProfile(
            customer_id=self.id,
            name=self.name,
            credit_limit=Money(self.credit_limit),
            category=CustomerCategory(self.category) if self.category else None,
            category_opening_balance=_money_or_none(self.category_opening_balance),
            customer_opening_balance=_money_or_none(self.customer_opening_balance),
            interest_rate=self.interest_rate,
            interest_anchor=(
                InterestAnchor(self.interest_anchor) if self.interest_anchor else None
            ),
            opening_balance_interest_from=self.opening_balance_interest_from,
        )

    def apply_dto(self, dto: CustomerCreditProfile) -> None:
        """Copy mutable fields from ``dto`` onto this row."""
        self.name = dto.name
        self.credit_limit = dto.credit_limit.amount
        self.category = dto.category.value if dto.category else None
        self.category_opening_balance = (
            dto.category_opening_balance.amount
            if dto.category_opening_balance is not None else None
        )
        self.customer_opening_balance = (
            dto.customer_opening_balance.amount
            if dto.customer_opening_balance is not None else None
        )
        self.interest_rate = dto.interest_rate
        self.interest_anchor = dto.interest_anchor.value if dto.interest_anchor else None
        self.opening_balance_interest_from = dto.opening_balance_interest_from

    @classmethod
    def from_dto(cls, dto: CustomerCreditProfile, created_by_id: UUID) -> "CustomerModel":
        model = cls(id=dto.customer_id, created_by_id=created_by_id)
        model.apply_dto(dto)
        return model

    def __repr__(self) -> str:
        return f"<CustomerModel {self.id}: {self.name}>"
