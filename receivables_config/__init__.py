"""
receivables_config -- single public entrypoint for engine policy.

Responsibility:
    Provides the ONLY way to obtain engine configuration at runtime through
    ``get_active_policy()``.  Services and batch tasks receive the returned
    ``EnginePolicy`` and hand its sections to the engines; engines never
    read configuration themselves.

Architecture position:
    Configuration -- sits above ``receivables_engines`` (whose policy
    dataclasses it composes) and below ``receivables_services``.

Invariants enforced:
    - Single entrypoint: runtime config flows through ``get_active_policy()``.
    - Deterministic: the same YAML document always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the requested policy file does not exist.
    - ``PolicyConfigError`` -- malformed or inconsistent values.

Audit relevance:
    Every successful ``get_active_policy()`` call emits a
    ``RECEIVABLES_CONFIG_TRACE`` log entry carrying the policy checksum,
    which is also stamped on every persisted payment score.
"""

from __future__ import annotations

import os
from pathlib import Path

from receivables_config.loader import load_policy, parse_policy
from receivables_config.schema import EnginePolicy, StatusCardPolicy
from receivables_kernel.logging_config import get_logger

_logger = get_logger("config")

POLICY_PATH_ENV = "RECEIVABLES_POLICY_PATH"

# Default policy document
DEFAULT_POLICY_PATH = Path(__file__).parent / "defaults" / "engine_policy.yaml"


def get_active_policy(path: Path | str | None = None) -> EnginePolicy:
    """The ONLY public configuration entrypoint.

    Resolution order: the explicit ``path``, then the file named by the
    ``RECEIVABLES_POLICY_PATH`` environment variable, then the bundled
    default policy.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        PolicyConfigError: If the document fails validation.
    """
    env_path = os.environ.get(POLICY_PATH_ENV)
    resolved = Path(path) if path is not None else (
        Path(env_path) if env_path else DEFAULT_POLICY_PATH
    )

    policy = load_policy(resolved)

    _logger.info(
        "RECEIVABLES_CONFIG_TRACE",
        extra={
            "trace_type": "RECEIVABLES_CONFIG_TRACE",
            "policy_name": policy.name,
            "policy_version": policy.version,
            "checksum": policy.checksum,
            "source": str(resolved),
            "interest_combination": policy.interest.combination.value,
        },
    )
    return policy


__all__ = [
    "DEFAULT_POLICY_PATH",
    "POLICY_PATH_ENV",
    "EnginePolicy",
    "StatusCardPolicy",
    "get_active_policy",
    "parse_policy",
]
