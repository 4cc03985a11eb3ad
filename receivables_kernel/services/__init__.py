"""Kernel infrastructure services."""

from receivables_kernel.services.sequence_service import SequenceService

__all__ = ["SequenceService"]
