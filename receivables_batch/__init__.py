"""
receivables_batch -- Batch processing and job scheduling infrastructure.

Provides a batch execution engine with per-item SAVEPOINT isolation,
progress tracking, cooperative cancellation with checkpoint/resume, and an
in-process polling scheduler.  The payment-score recalculation is the
registered task.

Architecture:
    receivables_batch/ is a top-level package.  Kernel and engine code never
    import it; receivables_services imports it lazily for ``recalculate_all``.

Guarantees:
    - SAVEPOINT isolation per item
    - Job idempotency (UNIQUE idempotency_key)
    - Sequence monotonicity via SequenceService
    - Clock injection (no datetime.now() calls)
    - One running instance per task type
    - Graceful shutdown between items
"""
