"""Batch ORM models."""

from receivables_batch.models.batch import BatchItemModel, BatchJobModel, JobScheduleModel

__all__ = ["BatchItemModel", "BatchJobModel", "JobScheduleModel"]
