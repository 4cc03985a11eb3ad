"""
Module: receivables_engines.payment_behavior
Responsibility:
    Score a customer's payment behaviour from their allocation history:
    on-time rate, average delay, a 0-100 composite payment score, and a
    classification (Star / Regular / Risky / Critical) used to prioritise
    collections.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Persisting the resulting
    PaymentScoreRecord and iterating customers is the job of
    receivables_services.payment_score_service and the batch task.

Invariants enforced:
    - One payment event per allocation tranche.
    - on_time_rate = on_time / total × 100; None when there are no payments,
      in which case score and classification are also None.
    - classification is a step function of on_time_rate alone.
    - payment_score is clamped to [0, 100] and rounded half-up to an integer.
    - Determinism: identical history, as_of and policy give an identical
      record.

Failure modes:
    - MalformedPaymentHistoryError when an event has a non-positive amount.
    - ValueError from ScoringPolicy / ClassificationThresholds on
      inconsistent configuration.

Usage:
    from receivables_engines.payment_behavior import PaymentBehaviorClassifier

    record = PaymentBehaviorClassifier().classify(
        customer_id, events, as_of=date(2024, 6, 30),
    )
    record.classification   # PaymentClassification.STAR
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from uuid import UUID

from receivables_engines.tracer import traced_engine
from receivables_kernel.domain.dates import days_overdue
from receivables_kernel.domain.dtos import (
    PaymentClassification,
    PaymentEvent,
    PaymentScoreRecord,
)
from receivables_kernel.domain.values import HUNDRED, percentage, quantize_amount
from receivables_kernel.exceptions import MalformedPaymentHistoryError
from receivables_kernel.logging_config import get_logger

logger = get_logger("engines.payment_behavior")

_HALF = Decimal("0.5")


@dataclass(frozen=True)
class ScoringPolicy:
    """
    Coefficients of the composite payment score.

    score = on_time_weight × on_time_rate
          + delay_weight × max(0, 100 − weighted_delay × delay_penalty_per_day)

    ``weighted_delay`` weights each payment by
    ``0.5 ** (age_days / recency_half_life_days)``; a half-life of None or 0
    weights every payment equally.
    """

    on_time_weight: Decimal = Decimal("0.6")
    delay_weight: Decimal = Decimal("0.4")
    delay_penalty_per_day: Decimal = Decimal("1")
    recency_half_life_days: int | None = 180
    on_time_grace_days: int = 0

    def __post_init__(self) -> None:
        if self.on_time_weight < 0 or self.delay_weight < 0:
            raise ValueError("Score weights cannot be negative")
        if self.on_time_weight + self.delay_weight == 0:
            raise ValueError("At least one score weight must be positive")
        if self.delay_penalty_per_day < 0:
            raise ValueError("delay_penalty_per_day cannot be negative")
        if self.recency_half_life_days is not None and self.recency_half_life_days < 0:
            raise ValueError("recency_half_life_days cannot be negative")
        if self.on_time_grace_days < 0:
            raise ValueError("on_time_grace_days cannot be negative")


@dataclass(frozen=True)
class ClassificationThresholds:
    """Minimum on-time rate (%) for each segment; below ``risky`` is Critical."""

    star: Decimal = Decimal("80")
    regular: Decimal = Decimal("50")
    risky: Decimal = Decimal("30")

    def __post_init__(self) -> None:
        if not (HUNDRED >= self.star > self.regular > self.risky >= 0):
            raise ValueError(
                f"Thresholds must satisfy 100 >= star > regular > risky >= 0: "
                f"{self.star}/{self.regular}/{self.risky}"
            )

    def classify(self, on_time_rate: Decimal | None) -> PaymentClassification | None:
        if on_time_rate is None:
            return None
        if on_time_rate >= self.star:
            return PaymentClassification.STAR
        if on_time_rate >= self.regular:
            return PaymentClassification.REGULAR
        if on_time_rate >= self.risky:
            return PaymentClassification.RISKY
        return PaymentClassification.CRITICAL


@dataclass(frozen=True)
class SegmentStats:
    classification: PaymentClassification
    customer_count: int
    avg_on_time_rate: Decimal | None
    avg_payment_score: Decimal | None


@dataclass(frozen=True)
class SegmentSummary:
    """Payment-analytics dashboard: per-segment and overall figures."""

    segments: dict[PaymentClassification, SegmentStats] = field(default_factory=dict)
    classified_count: int = 0
    unclassified_count: int = 0
    avg_on_time_rate: Decimal | None = None
    avg_payment_score: Decimal | None = None


def _mean(values: Sequence[Decimal]) -> Decimal | None:
    if not values:
        return None
    return quantize_amount(sum(values, Decimal("0")) / Decimal(len(values)))


def recency_weight(age_days: int, half_life_days: int | None) -> Decimal:
    """Exponential decay weight: 1 for today, 0.5 after one half-life."""
    if not half_life_days or age_days <= 0:
        return Decimal("1")
    return _HALF ** (Decimal(age_days) / Decimal(half_life_days))


class PaymentBehaviorClassifier:
    """
    Compute a PaymentScoreRecord from a customer's payment events.

    Contract:
        Pure; ``as_of`` (recency reference) and ``calculated_at`` (stamped
        on the record) are supplied by the caller.
    Non-goals:
        - Does not read or write persisted scores.
    """

    def __init__(
        self,
        scoring: ScoringPolicy | None = None,
        thresholds: ClassificationThresholds | None = None,
    ):
        self._scoring = scoring or ScoringPolicy()
        self._thresholds = thresholds or ClassificationThresholds()

    @property
    def scoring(self) -> ScoringPolicy:
        return self._scoring

    @property
    def thresholds(self) -> ClassificationThresholds:
        return self._thresholds

    def _validate(self, customer_id: UUID, events: Sequence[PaymentEvent]) -> None:
        for event in events:
            if not event.amount.is_positive:
                raise MalformedPaymentHistoryError(
                    str(customer_id),
                    f"payment {event.receipt_id} on invoice {event.invoice_id} "
                    f"has non-positive amount {event.amount}",
                )

    @traced_engine("payment_behavior", "1.0", fingerprint_fields=("customer_id", "events", "as_of"))
    def classify(
        self,
        customer_id: UUID,
        events: Sequence[PaymentEvent],
        as_of: date,
        calculated_at: datetime | None = None,
    ) -> PaymentScoreRecord:
        """
        Score ``customer_id`` from ``events``.

        Args:
            customer_id: The customer being scored.
            events: One event per allocation tranche.
            as_of: Reference date for recency weighting.
            calculated_at: Timestamp stamped on the record.
        """
        self._validate(customer_id, events)

        total = len(events)
        if total == 0:
            logger.debug("payment_behavior_no_history", extra={"customer_id": str(customer_id)})
            return PaymentScoreRecord(
                customer_id=customer_id,
                on_time_rate=None,
                avg_delay_days=None,
                payment_score=None,
                classification=None,
                total_payments=0,
                on_time_count=0,
                last_calculated_at=calculated_at,
            )

        policy = self._scoring
        delays = [days_overdue(e.due_date, e.payment_date) for e in events]
        on_time = sum(1 for d in delays if d <= policy.on_time_grace_days)
        on_time_rate = percentage(Decimal(on_time), Decimal(total))
        avg_delay = quantize_amount(Decimal(sum(delays)) / Decimal(total))

        weights = [
            recency_weight(max(0, (as_of - e.payment_date).days), policy.recency_half_life_days)
            for e in events
        ]
        weighted_delay = sum(
            (w * Decimal(d) for w, d in zip(weights, delays)), Decimal("0"),
        ) / sum(weights, Decimal("0"))

        delay_score = max(Decimal("0"), HUNDRED - weighted_delay * policy.delay_penalty_per_day)
        raw_score = policy.on_time_weight * on_time_rate + policy.delay_weight * delay_score
        score = int(min(HUNDRED, max(Decimal("0"), raw_score)).quantize(
            Decimal("1"), rounding=ROUND_HALF_UP,
        ))

        classification = self._thresholds.classify(on_time_rate)

        logger.info("payment_behavior_classified", extra={
            "customer_id": str(customer_id),
            "total_payments": total,
            "on_time_count": on_time,
            "on_time_rate": str(on_time_rate),
            "avg_delay_days": str(avg_delay),
            "payment_score": score,
            "classification": classification.value if classification else None,
        })

        return PaymentScoreRecord(
            customer_id=customer_id,
            on_time_rate=on_time_rate,
            avg_delay_days=avg_delay,
            payment_score=score,
            classification=classification,
            total_payments=total,
            on_time_count=on_time,
            last_calculated_at=calculated_at,
        )


def summarize_segments(records: Iterable[PaymentScoreRecord]) -> SegmentSummary:
    """Per-classification counts and averages; unclassified records are counted apart."""
    by_segment: dict[PaymentClassification, list[PaymentScoreRecord]] = {
        c: [] for c in PaymentClassification
    }
    unclassified = 0
    for record in records:
        if record.classification is None:
            unclassified += 1
        else:
            by_segment[record.classification].append(record)

    segments = {
        c: SegmentStats(
            classification=c,
            customer_count=len(rs),
            avg_on_time_rate=_mean([r.on_time_rate for r in rs if r.on_time_rate is not None]),
            avg_payment_score=_mean([
                Decimal(r.payment_score) for r in rs if r.payment_score is not None
            ]),
        )
        for c, rs in by_segment.items()
    }
    classified = [r for rs in by_segment.values() for r in rs]
    return SegmentSummary(
        segments=segments,
        classified_count=len(classified),
        unclassified_count=unclassified,
        avg_on_time_rate=_mean([r.on_time_rate for r in classified if r.on_time_rate is not None]),
        avg_payment_score=_mean([
            Decimal(r.payment_score) for r in classified if r.payment_score is not None
        ]),
    )
