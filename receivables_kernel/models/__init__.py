"""ORM models for the receivables ledger."""

from receivables_kernel.models.allocation import AllocationModel
from receivables_kernel.models.customer import CustomerModel
from receivables_kernel.models.invoice import InvoiceModel
from receivables_kernel.models.payment_score import PaymentScoreModel
from receivables_kernel.models.receipt import ReceiptModel

__all__ = [
    "AllocationModel",
    "CustomerModel",
    "InvoiceModel",
    "PaymentScoreModel",
    "ReceiptModel",
    "import_all_models",
]


def import_all_models() -> None:
    """Import every module that declares tables so Base.metadata is complete."""
    import receivables_kernel.services.sequence_service  # noqa: F401
