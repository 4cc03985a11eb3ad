"""
Receivables Kernel

Primitives and persistence for the receivables ledger:
- Fixed-point money and calendar-day arithmetic
- Typed exceptions with machine-readable codes
- Structured JSON logging
- SQLAlchemy models for customers, invoices, receipts and allocations
"""

__version__ = "0.1.0"
