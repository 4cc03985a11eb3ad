"""
Engine policy loader (``receivables_config.loader``).

Responsibility
--------------
Loads the engine policy YAML document and parses it into the frozen
``receivables_config.schema.EnginePolicy``.  Runtime callers go through
``receivables_config.get_active_policy()``; the parse functions here are
public for tests and tooling.

Invariants enforced
-------------------
* Every parse error raises ``PolicyConfigError`` naming the offending
  field; no silent defaults for values that are present but malformed.
* Sections that are absent fall back to the engine defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  canonical source document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Malformed or inconsistent values  -> ``PolicyConfigError``.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from receivables_config.schema import EnginePolicy, StatusCardPolicy
from receivables_engines.categorization import CategoryRules
from receivables_engines.interest import InterestCombination, InterestPolicy
from receivables_engines.payment_behavior import ClassificationThresholds, ScoringPolicy
from receivables_engines.utilization import UtilizationPolicy
from receivables_kernel.domain.dtos import InterestAnchor
from receivables_kernel.exceptions import PolicyConfigError


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
        PolicyConfigError: if the document is not a mapping.
    """
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise PolicyConfigError("<root>", "policy document must be a mapping", str(path))
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _section(data: dict[str, Any], key: str) -> dict[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, dict):
        raise PolicyConfigError(key, "section must be a mapping")
    return value


def _decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool):
        raise PolicyConfigError(field_name, f"expected a number, got {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise PolicyConfigError(field_name, f"expected a number, got {value!r}") from exc


def _int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise PolicyConfigError(field_name, f"expected an integer, got {value!r}")
    return value


def _enum(enum_cls: Any, value: Any, field_name: str) -> Any:
    try:
        return enum_cls[str(value).upper()]
    except KeyError as exc:
        allowed = ", ".join(m.name for m in enum_cls)
        raise PolicyConfigError(field_name, f"{value!r} is not one of {allowed}") from exc


def _build(factory: Any, section: str, **kwargs: Any) -> Any:
    """Construct an engine policy, converting its ValueError to PolicyConfigError."""
    try:
        return factory(**kwargs)
    except ValueError as exc:
        raise PolicyConfigError(section, str(exc)) from exc


def parse_interest(data: dict[str, Any]) -> InterestPolicy:
    defaults = InterestPolicy()
    return InterestPolicy(
        combination=_enum(InterestCombination, data["combination"], "interest.combination")
        if "combination" in data else defaults.combination,
        default_anchor=_enum(InterestAnchor, data["default_anchor"], "interest.default_anchor")
        if "default_anchor" in data else defaults.default_anchor,
        include_unpaid_interest_in_profit=bool(
            data.get("include_unpaid_interest_in_profit", defaults.include_unpaid_interest_in_profit)
        ),
    )


def parse_scoring(data: dict[str, Any]) -> ScoringPolicy:
    defaults = ScoringPolicy()
    half_life = data.get("recency_half_life_days", defaults.recency_half_life_days)
    return _build(
        ScoringPolicy,
        "scoring",
        on_time_weight=_decimal(
            data.get("on_time_weight", defaults.on_time_weight), "scoring.on_time_weight",
        ),
        delay_weight=_decimal(
            data.get("delay_weight", defaults.delay_weight), "scoring.delay_weight",
        ),
        delay_penalty_per_day=_decimal(
            data.get("delay_penalty_per_day", defaults.delay_penalty_per_day),
            "scoring.delay_penalty_per_day",
        ),
        recency_half_life_days=(
            None if half_life is None else _int(half_life, "scoring.recency_half_life_days")
        ),
        on_time_grace_days=_int(
            data.get("on_time_grace_days", defaults.on_time_grace_days),
            "scoring.on_time_grace_days",
        ),
    )


def parse_thresholds(data: dict[str, Any]) -> ClassificationThresholds:
    defaults = ClassificationThresholds()
    return _build(
        ClassificationThresholds,
        "classification",
        star=_decimal(data.get("star", defaults.star), "classification.star"),
        regular=_decimal(data.get("regular", defaults.regular), "classification.regular"),
        risky=_decimal(data.get("risky", defaults.risky), "classification.risky"),
    )


def parse_utilization(data: dict[str, Any]) -> UtilizationPolicy:
    if "band_upper_bounds" not in data:
        return UtilizationPolicy()
    raw = data["band_upper_bounds"]
    if not isinstance(raw, list):
        raise PolicyConfigError("utilization.band_upper_bounds", "expected a list")
    bounds = tuple(_decimal(v, "utilization.band_upper_bounds") for v in raw)
    return _build(UtilizationPolicy, "utilization", band_upper_bounds=bounds)


def parse_categories(data: dict[str, Any]) -> CategoryRules:
    defaults = CategoryRules()
    return _build(
        CategoryRules,
        "categories",
        grace_days=_int(data.get("grace_days", defaults.grace_days), "categories.grace_days"),
        alpha_max_days=_int(
            data.get("alpha_max_days", defaults.alpha_max_days), "categories.alpha_max_days",
        ),
        beta_max_days=_int(
            data.get("beta_max_days", defaults.beta_max_days), "categories.beta_max_days",
        ),
        gamma_max_days=_int(
            data.get("gamma_max_days", defaults.gamma_max_days), "categories.gamma_max_days",
        ),
    )


def parse_status_cards(data: dict[str, Any]) -> StatusCardPolicy:
    grace = _int(data.get("grace_days", StatusCardPolicy().grace_days), "status_cards.grace_days")
    if grace < 0:
        raise PolicyConfigError("status_cards.grace_days", "cannot be negative")
    return StatusCardPolicy(grace_days=grace)


def parse_policy(data: dict[str, Any], source: str | None = None) -> EnginePolicy:
    """
    Parse a full ``EnginePolicy`` from a policy document.

    Postconditions:
        - Returns a validated ``EnginePolicy`` whose checksum is the
          SHA-256 of ``data``.
    Raises:
        PolicyConfigError: on any malformed or inconsistent value.
    """
    try:
        return EnginePolicy(
            name=str(data.get("name", "default")),
            version=_int(data.get("version", 1), "version"),
            interest=parse_interest(_section(data, "interest")),
            scoring=parse_scoring(_section(data, "scoring")),
            thresholds=parse_thresholds(_section(data, "classification")),
            utilization=parse_utilization(_section(data, "utilization")),
            categories=parse_categories(_section(data, "categories")),
            status_cards=parse_status_cards(_section(data, "status_cards")),
            checksum=compute_checksum(data),
        )
    except PolicyConfigError as exc:
        if source is None or exc.source is not None:
            raise
        raise PolicyConfigError(exc.field, exc.reason, source) from exc


def load_policy(path: Path) -> EnginePolicy:
    """Load and parse the policy document at ``path``."""
    return parse_policy(load_yaml_file(path), source=str(path))
