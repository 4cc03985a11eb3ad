"""
Values -- Immutable money and rate value objects.

Responsibility:
    Provides the fixed-point ``Money`` type used for every amount in the
    ledger, the ``daily_rate`` conversion used by interest accrual, and the
    ``percentage`` helper that reports undefined ratios as ``None``.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by every engine and by the ORM ``to_dto()`` conversions.

Invariants enforced:
    - Amounts are ``Decimal`` quantized to 2 places, ROUND_HALF_UP, on
      construction.  Floats are rejected; they cannot represent cents.
    - Addition and subtraction of two Money values are exact (both operands
      are already at 2 places).
    - Scalar multiplication re-quantizes immediately.  Callers that need
      a multi-step rate product keep it as a raw Decimal and construct
      Money once at the end.

Failure modes:
    - TypeError when constructed from a float or combined with a non-Money.
    - ValueError when the amount is not a finite number.

Audit relevance:
    Every allocated amount and every interest figure passes through the
    single quantization point in ``Money.__post_init__``.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")
HUNDRED = Decimal("100")
DAYS_PER_YEAR = Decimal("365")


def quantize_amount(value: Decimal) -> Decimal:
    """Round a Decimal to 2 places, half-up."""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True, slots=True)
class Money:
    """
    Monetary amount in the ledger's single implicit currency.

    Contract:
        Wraps a Decimal amount held at exactly 2 decimal places.

    Guarantees:
        - Immutable and hashable
        - ``amount`` is always a finite Decimal quantized to 0.01
        - ``Money("0.005") == Money("0.01")`` (half-up on construction)

    Non-goals:
        - No currency code: multi-currency ledgers are out of scope.
    """

    amount: Decimal

    def __post_init__(self) -> None:
        raw = self.amount
        if isinstance(raw, float):
            raise TypeError(f"Money cannot be built from float: {raw!r}")
        if not isinstance(raw, Decimal):
            try:
                raw = Decimal(str(raw))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount: {self.amount!r}") from e
        if not raw.is_finite():
            raise ValueError(f"Invalid amount: {self.amount!r}")
        object.__setattr__(self, "amount", quantize_amount(raw))

    @classmethod
    def of(cls, amount: Decimal | str | int) -> Money:
        """Factory method for creating Money.  Floats are rejected like the constructor does."""
        return cls(amount=amount)

    @classmethod
    def zero(cls) -> Money:
        return cls(amount=Decimal("0"))

    @property
    def is_zero(self) -> bool:
        return self.amount == 0

    @property
    def is_positive(self) -> bool:
        return self.amount > 0

    @property
    def is_negative(self) -> bool:
        return self.amount < 0

    def clamp_non_negative(self) -> Money:
        """Return this amount, or zero if it is negative."""
        return self if self.amount >= 0 else Money.zero()

    def __add__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(amount=self.amount + other.amount)

    def __sub__(self, other: Money) -> Money:
        if not isinstance(other, Money):
            return NotImplemented
        return Money(amount=self.amount - other.amount)

    def __neg__(self) -> Money:
        return Money(amount=-self.amount)

    def __abs__(self) -> Money:
        return Money(amount=abs(self.amount))

    def __mul__(self, factor: Decimal | int) -> Money:
        """Multiply by a scalar, re-quantizing the product."""
        if isinstance(factor, int) and not isinstance(factor, bool):
            factor = Decimal(factor)
        if not isinstance(factor, Decimal):
            return NotImplemented
        return Money(amount=self.amount * factor)

    def __rmul__(self, factor: Decimal | int) -> Money:
        return self.__mul__(factor)

    def __lt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount < other.amount

    def __le__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount <= other.amount

    def __gt__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount > other.amount

    def __ge__(self, other: Money) -> bool:
        if not isinstance(other, Money):
            return NotImplemented
        return self.amount >= other.amount

    def __str__(self) -> str:
        return str(self.amount)

    def __repr__(self) -> str:
        return f"Money({str(self.amount)!r})"


def sum_money(amounts) -> Money:
    """Sum an iterable of Money, starting from zero."""
    total = Money.zero()
    for amount in amounts:
        total = total + amount
    return total


def daily_rate(annual_rate_pct: Decimal | None) -> Decimal:
    """
    Convert an annual percentage rate into a daily fraction.

    ``daily_rate(Decimal("18")) == 18 / 100 / 365``.  The result keeps full
    Decimal context precision; it is never rounded on its own.
    An absent rate is treated as zero.
    """
    if annual_rate_pct is None:
        return Decimal("0")
    return annual_rate_pct / HUNDRED / DAYS_PER_YEAR


def percentage(numerator: Decimal, denominator: Decimal) -> Decimal | None:
    """
    ``numerator / denominator * 100`` at 2 places, or None when undefined.

    A zero denominator yields ``None`` rather than raising; the caller
    renders it as "not applicable".
    """
    if denominator == 0:
        return None
    return quantize_amount(numerator / denominator * HUNDRED)
