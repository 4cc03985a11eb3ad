"""
Typed exception hierarchy for the receivables ledger.

Every error has a typed class, a machine-readable ``code`` class attribute,
and carries its context as attributes rather than inside the message.
Callers catch by type and read structured fields:

    try:
        ledger.upsert_receipt(receipt)
    except CustomerMismatchError as e:
        api_response(code=e.code, invoice=e.invoice_id)

Hierarchy:

    ReceivablesError
    |
    +-- LedgerError
    |   +-- InvalidAmountError
    |   +-- CustomerMismatchError
    |   +-- CustomerNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- ReceiptNotFoundError
    |   +-- CustomerHasLedgerEntriesError
    |   +-- MalformedPaymentHistoryError
    |   +-- UnknownLedgerEventError
    |
    +-- BatchError
    |   +-- BatchJobNotFoundError
    |   +-- BatchAlreadyRunningError
    |   +-- BatchIdempotencyError
    |   +-- BatchNotResumableError
    |   +-- TaskNotRegisteredError
    |   +-- RecalculationInterruptedError
    |
    +-- ScheduleError
    |   +-- ScheduleNotFoundError
    |
    +-- PolicyConfigError

Division by zero in percentage figures is NOT an exception: ratios with a
zero denominator are reported as ``None`` by the engines.
"""

from __future__ import annotations

from decimal import Decimal


class ReceivablesError(Exception):
    """
    Base exception for all receivables errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "RECEIVABLES_ERROR"


# Ledger exceptions


class LedgerError(ReceivablesError):
    """Base exception for ledger mutations."""

    code: str = "LEDGER_ERROR"


class InvalidAmountError(LedgerError):
    """A receipt or invoice amount is not acceptable."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, amount: Decimal | str, reason: str, entity_id: str | None = None):
        self.amount = str(amount)
        self.reason = reason
        self.entity_id = entity_id
        super().__init__(f"Invalid amount {amount}: {reason}")


class CustomerMismatchError(LedgerError):
    """A receipt references an invoice that belongs to another customer."""

    code: str = "CUSTOMER_MISMATCH"

    def __init__(
        self,
        receipt_id: str,
        invoice_id: str,
        receipt_customer_id: str,
        invoice_customer_id: str,
    ):
        self.receipt_id = receipt_id
        self.invoice_id = invoice_id
        self.receipt_customer_id = receipt_customer_id
        self.invoice_customer_id = invoice_customer_id
        super().__init__(
            f"Receipt {receipt_id} (customer {receipt_customer_id}) cannot be "
            f"applied to invoice {invoice_id} (customer {invoice_customer_id})"
        )


class CustomerNotFoundError(LedgerError):
    """Customer with given ID was not found."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class InvoiceNotFoundError(LedgerError):
    """Invoice with given ID was not found."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class ReceiptNotFoundError(LedgerError):
    """Receipt with given ID was not found."""

    code: str = "RECEIPT_NOT_FOUND"

    def __init__(self, receipt_id: str):
        self.receipt_id = receipt_id
        super().__init__(f"Receipt not found: {receipt_id}")


class CustomerHasLedgerEntriesError(LedgerError):
    """Customer cannot be deleted while invoices or receipts reference it."""

    code: str = "CUSTOMER_HAS_LEDGER_ENTRIES"

    def __init__(self, customer_id: str, invoice_count: int, receipt_count: int):
        self.customer_id = customer_id
        self.invoice_count = invoice_count
        self.receipt_count = receipt_count
        super().__init__(
            f"Customer {customer_id} still has {invoice_count} invoice(s) "
            f"and {receipt_count} receipt(s)"
        )


class MalformedPaymentHistoryError(LedgerError):
    """A customer's payment history cannot be scored."""

    code: str = "MALFORMED_PAYMENT_HISTORY"

    def __init__(self, customer_id: str, reason: str):
        self.customer_id = customer_id
        self.reason = reason
        super().__init__(f"Malformed payment history for customer {customer_id}: {reason}")


class UnknownLedgerEventError(LedgerError):
    """A ledger event names an entity/action pair with no handler."""

    code: str = "UNKNOWN_LEDGER_EVENT"

    def __init__(self, entity: str, action: str):
        self.entity = entity
        self.action = action
        super().__init__(f"No handler for ledger event {entity}.{action}")


# Batch exceptions


class BatchError(ReceivablesError):
    """Base exception for batch processing errors."""

    code: str = "BATCH_ERROR"


class BatchJobNotFoundError(BatchError):
    """Batch job with given ID was not found."""

    code: str = "BATCH_JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Batch job not found: {job_id}")


class BatchAlreadyRunningError(BatchError):
    """A job is already running and cannot be started again."""

    code: str = "BATCH_ALREADY_RUNNING"

    def __init__(self, job_name: str, running_job_id: str):
        self.job_name = job_name
        self.running_job_id = running_job_id
        super().__init__(
            f"Batch job '{job_name}' is already running: {running_job_id}"
        )


class BatchIdempotencyError(BatchError):
    """A job with the same idempotency key was already submitted."""

    code: str = "BATCH_IDEMPOTENCY_CONFLICT"

    def __init__(self, idempotency_key: str, existing_job_id: str):
        self.idempotency_key = idempotency_key
        self.existing_job_id = existing_job_id
        super().__init__(
            f"Idempotency key '{idempotency_key}' already used by job {existing_job_id}"
        )


class BatchNotResumableError(BatchError):
    """Only cancelled or failed jobs with a checkpoint can be resumed."""

    code: str = "BATCH_NOT_RESUMABLE"

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Batch job {job_id} in status {status} cannot be resumed")


class TaskNotRegisteredError(BatchError):
    """No task is registered under the requested task type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, task_type: str):
        self.task_type = task_type
        super().__init__(f"Batch task not registered: {task_type}")


class RecalculationInterruptedError(BatchError):
    """
    A batch recalculation stopped at a cancellation request.

    Work done before the interruption is committed. ``last_item_key`` is
    the checkpoint; resuming the job continues with the next item.
    """

    code: str = "RECALCULATION_INTERRUPTED"

    def __init__(self, job_id: str, processed: int, last_item_key: str | None):
        self.job_id = job_id
        self.processed = processed
        self.last_item_key = last_item_key
        super().__init__(
            f"Recalculation job {job_id} interrupted after {processed} item(s) "
            f"(checkpoint: {last_item_key})"
        )


# Schedule exceptions


class ScheduleError(ReceivablesError):
    """Base exception for schedule errors."""

    code: str = "SCHEDULE_ERROR"


class ScheduleNotFoundError(ScheduleError):
    """Schedule with given ID was not found."""

    code: str = "SCHEDULE_NOT_FOUND"

    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}")


# Configuration exceptions


class PolicyConfigError(ReceivablesError):
    """Engine policy configuration is malformed or inconsistent."""

    code: str = "POLICY_CONFIG_INVALID"

    def __init__(self, field: str, reason: str, source: str | None = None):
        self.field = field
        self.reason = reason
        self.source = source
        where = f" ({source})" if source else ""
        super().__init__(f"Invalid engine policy field '{field}'{where}: {reason}")
