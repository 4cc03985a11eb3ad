"""
Module: receivables_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    receivables calculation engines.  Canonical import surface for
    receivables_services and receivables_batch.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import receivables_kernel.domain, receivables_kernel.exceptions
    and receivables_kernel.logging_config.
    MUST NOT import receivables_services, receivables_batch or receivables_config.

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      ``as_of`` dates are explicit parameters supplied by services.
    - Decimal-only arithmetic through ``Money``; floats are rejected.
    - Determinism: identical inputs always produce identical outputs.

Audit relevance:
    Engine invocations are traced via ``@traced_engine``, emitting
    RECEIVABLES_ENGINE_TRACE records with an input fingerprint.
"""

from receivables_engines.aging import (
    STANDARD_BUCKETS,
    AgeBucket,
    AgedInvoice,
    AgingCalculator,
    AgingReport,
    InvoiceStatusCard,
    InvoiceStatusClassifier,
    StatusCardTotals,
)
from receivables_engines.allocation import (
    AllocationMode,
    AllocationResult,
    InvoiceBalance,
    LedgerReplayResult,
    OpenInvoice,
    PaymentAllocator,
    compute_balances,
    settlement_status,
)
from receivables_engines.categorization import (
    CategoryRecommendation,
    CategoryRules,
    recommend_category,
)
from receivables_engines.interest import (
    CustomerInterestSummary,
    InterestBreakdown,
    InterestCalculator,
    InterestCombination,
    InterestPolicy,
    OpeningBalanceAccrual,
    PaymentTiming,
    TrancheInterest,
    resolve_anchor,
    resolve_rate,
)
from receivables_engines.payment_behavior import (
    ClassificationThresholds,
    PaymentBehaviorClassifier,
    ScoringPolicy,
    SegmentSummary,
    summarize_segments,
)
from receivables_engines.profitability import Profitability, resolve_profitability
from receivables_engines.utilization import (
    Utilization,
    UtilizationBand,
    UtilizationPolicy,
    UtilizationSummary,
    compute_utilization,
    summarize_utilization,
)

__all__ = [
    "STANDARD_BUCKETS",
    "AgeBucket",
    "AgedInvoice",
    "AgingCalculator",
    "AgingReport",
    "AllocationMode",
    "AllocationResult",
    "CategoryRecommendation",
    "CategoryRules",
    "ClassificationThresholds",
    "CustomerInterestSummary",
    "InterestBreakdown",
    "InterestCalculator",
    "InterestCombination",
    "InterestPolicy",
    "InvoiceBalance",
    "InvoiceStatusCard",
    "InvoiceStatusClassifier",
    "LedgerReplayResult",
    "OpenInvoice",
    "OpeningBalanceAccrual",
    "PaymentAllocator",
    "PaymentBehaviorClassifier",
    "PaymentTiming",
    "Profitability",
    "ScoringPolicy",
    "SegmentSummary",
    "StatusCardTotals",
    "TrancheInterest",
    "Utilization",
    "UtilizationBand",
    "UtilizationPolicy",
    "UtilizationSummary",
    "compute_balances",
    "compute_utilization",
    "recommend_category",
    "resolve_anchor",
    "resolve_profitability",
    "resolve_rate",
    "settlement_status",
    "summarize_segments",
    "summarize_utilization",
]
