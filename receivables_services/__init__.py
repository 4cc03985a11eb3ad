"""
receivables_services -- Package init and public API.

Responsibility:
    Stateful services that compose the pure engines (receivables_engines/)
    with database sessions, the customer locks and the injected clock.
    This is the only layer that holds sessions on behalf of callers.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction (enforced by tests/architecture/test_layer_boundaries.py):
        receivables_services/ -> receivables_engines/  (allowed)
        receivables_services/ -> receivables_kernel/   (allowed)
        receivables_engines/  -> receivables_services/ (FORBIDDEN)
        receivables_kernel/   -> receivables_services/ (FORBIDDEN)
"""

from receivables_services.ledger_service import (
    LedgerEvent,
    LedgerRebuildResult,
    ReceiptPostingResult,
    ReceivablesLedgerService,
)
from receivables_services.locks import CustomerLockRegistry, default_lock_registry
from receivables_services.payment_score_service import (
    PaymentScoreService,
    RecalculationSummary,
)
from receivables_services.views import ReceivablesViewService, render_to_dict

__all__ = [
    "CustomerLockRegistry",
    "LedgerEvent",
    "LedgerRebuildResult",
    "PaymentScoreService",
    "ReceiptPostingResult",
    "ReceivablesLedgerService",
    "ReceivablesViewService",
    "RecalculationSummary",
    "default_lock_registry",
    "render_to_dict",
]
