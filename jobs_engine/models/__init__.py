"""
jobs_engine.models -- ORM models for job scheduling and execution.

Architecture: jobs_engine/models. Imports from jobs_kernel.db.base only.
"""

from jobs_engine.models.jobs import (
    DeadLetterEntryModel,
    IdempotencyRecordModel,
    JobDefinitionModel,
    JobExecutionModel,
    JobLockModel,
    JobLogModel,
)

__all__ = [
    "DeadLetterEntryModel",
    "IdempotencyRecordModel",
    "JobDefinitionModel",
    "JobExecutionModel",
    "JobLockModel",
    "JobLogModel",
    "import_all_models",
]


def import_all_models() -> tuple[type, ...]:
    """Return every model class so Base.metadata knows all tables."""
    return (
        JobDefinitionModel,
        JobExecutionModel,
        JobLockModel,
        JobLogModel,
        DeadLetterEntryModel,
        IdempotencyRecordModel,
    )
