"""
Engine policy schema.

The human-authored YAML policy is parsed into these frozen types by the
loader.  Each section is the engine's own policy dataclass, so an
``EnginePolicy`` can be handed to engines field by field without any
translation layer.

Key distinction:
  engine_policy.yaml = source artifact (human-authored, versioned)
  EnginePolicy       = runtime artifact (validated, frozen, checksummed)
"""

from __future__ import annotations

from dataclasses import dataclass, field

from receivables_engines.categorization import CategoryRules
from receivables_engines.interest import InterestPolicy
from receivables_engines.payment_behavior import ClassificationThresholds, ScoringPolicy
from receivables_engines.utilization import UtilizationPolicy


@dataclass(frozen=True)
class StatusCardPolicy:
    """Grace window used by the invoice status-card dashboard."""

    grace_days: int = 7


@dataclass(frozen=True)
class EnginePolicy:
    """
    Complete engine configuration.

    Contract:
        Every section has already passed its own ``__post_init__``
        validation by the time an EnginePolicy exists.
    Guarantees:
        - ``checksum`` is the SHA-256 of the canonical source document,
          empty for a policy built in code.
    """

    name: str = "default"
    version: int = 1
    interest: InterestPolicy = field(default_factory=InterestPolicy)
    scoring: ScoringPolicy = field(default_factory=ScoringPolicy)
    thresholds: ClassificationThresholds = field(default_factory=ClassificationThresholds)
    utilization: UtilizationPolicy = field(default_factory=UtilizationPolicy)
    categories: CategoryRules = field(default_factory=CategoryRules)
    status_cards: StatusCardPolicy = field(default_factory=StatusCardPolicy)
    checksum: str = ""
