"""
ORM models for job scheduling and execution persistence.

Contract:
    JobDefinitionModel, JobExecutionModel, JobLockModel, JobLogModel,
    DeadLetterEntryModel and IdempotencyRecordModel persist the engine's
    state.  Each has a ``to_dto()`` method returning the frozen DTO from
    ``jobs_engine.domain.types``.

Architecture: jobs_engine/models. Imports from jobs_kernel.db.base only.

Invariants enforced:
    - (tenant_id, name) is UNIQUE on JobDefinitionModel.
    - job_id is UNIQUE on JobLockModel -- the atomic claim relies on it.
    - execution_id is UNIQUE on DeadLetterEntryModel -- one DLQ entry per
      terminally-failed execution.
    - key is UNIQUE on IdempotencyRecordModel.
    - (execution_id, seq) is UNIQUE on JobLogModel.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from jobs_kernel.db.base import Base, TrackedBase, UUIDString

if TYPE_CHECKING:
    from jobs_engine.domain.types import (
        DeadLetterEntry,
        Execution,
        IdempotencyRecord,
        JobDefinition,
        Lock,
        LogEntry,
    )


class JobDefinitionModel(TrackedBase):
    """Named, schedulable unit of work scoped to a tenant."""

    __tablename__ = "job_definitions"

    __table_args__ = (
        UniqueConstraint("tenant_id", "name", name="uq_job_definitions_tenant_name"),
        Index("ix_job_definitions_enabled_next_run", "enabled", "next_run_at"),
        Index("ix_job_definitions_job_type", "job_type"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    job_type: Mapped[str] = mapped_column(String(100), nullable=False)
    cron_schedule: Mapped[str | None] = mapped_column(String(100), nullable=True)
    config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    enabled: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    last_run_at: Mapped[datetime | None] = mapped_column(nullable=True)
    next_run_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def to_dto(self, config: Any = None) -> JobDefinition:
        """Build the DTO.  ``config`` is the decoded value supplied by the registry."""
        from jobs_engine.domain.types import JobDefinition

        return JobDefinition(
            job_id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            job_type=self.job_type,
            cron_schedule=self.cron_schedule,
            config=config,
            enabled=self.enabled,
            max_retries=self.max_retries,
            last_run_at=self.last_run_at,
            next_run_at=self.next_run_at,
            created_by=self.created_by_id,
        )


class JobExecutionModel(TrackedBase):
    """One attempt to run a job.  Never deleted."""

    __tablename__ = "job_executions"

    __table_args__ = (
        Index("ix_job_executions_job_status", "job_id", "status"),
        Index("ix_job_executions_tenant_started", "tenant_id", "started_at"),
        Index("ix_job_executions_status", "status"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_definitions.id"),
        nullable=False,
    )
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    started_at: Mapped[datetime | None] = mapped_column(nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    duration_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)
    input_params: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    output_result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    max_retries: Mapped[int] = mapped_column(Integer, default=3, nullable=False)
    idempotency_key: Mapped[str | None] = mapped_column(String(300), nullable=True)
    backoff_until: Mapped[datetime | None] = mapped_column(nullable=True)
    runner_identity: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def to_dto(self) -> Execution:
        from jobs_engine.domain.types import Execution, ExecutionStatus

        return Execution(
            execution_id=self.id,
            job_id=self.job_id,
            tenant_id=self.tenant_id,
            status=ExecutionStatus(self.status),
            started_at=self.started_at,
            completed_at=self.completed_at,
            duration_ms=self.duration_ms,
            input_params=self.input_params or {},
            output_result=self.output_result,
            error_message=self.error_message,
            retry_count=self.retry_count,
            max_retries=self.max_retries,
            idempotency_key=self.idempotency_key,
            backoff_until=self.backoff_until,
            runner_identity=self.runner_identity,
        )


class JobLockModel(Base):
    """Mutual-exclusion claim: at most one row per job."""

    __tablename__ = "job_locks"

    __table_args__ = (
        Index("ix_job_locks_expires_at", "lock_expires_at"),
    )

    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, unique=True)
    execution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    locked_at: Mapped[datetime] = mapped_column(nullable=False)
    lock_expires_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> Lock:
        from jobs_engine.domain.types import Lock

        return Lock(
            job_id=self.job_id,
            execution_id=self.execution_id,
            locked_at=self.locked_at,
            lock_expires_at=self.lock_expires_at,
        )


class JobLogModel(Base):
    """Append-only execution log line."""

    __tablename__ = "job_logs"

    __table_args__ = (
        UniqueConstraint("execution_id", "seq", name="uq_job_logs_execution_seq"),
        Index("ix_job_logs_execution_level", "execution_id", "level"),
    )

    execution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_executions.id"),
        nullable=False,
    )
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, nullable=False)
    level: Mapped[str] = mapped_column(String(10), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # "metadata" is reserved on declarative classes
    log_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    logged_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> LogEntry:
        from jobs_engine.domain.types import LogEntry, LogLevel

        return LogEntry(
            entry_id=self.id,
            execution_id=self.execution_id,
            tenant_id=self.tenant_id,
            level=LogLevel(self.level),
            message=self.message,
            metadata=self.log_metadata or {},
            logged_at=self.logged_at,
            seq=self.seq,
        )


class DeadLetterEntryModel(TrackedBase):
    """Terminally-failed execution awaiting operator triage."""

    __tablename__ = "dead_letter_queue"

    __table_args__ = (
        Index("ix_dead_letter_queue_tenant_resolved", "tenant_id", "resolved"),
        Index("ix_dead_letter_queue_last_failed", "last_failed_at"),
    )

    job_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_definitions.id"),
        nullable=False,
    )
    execution_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("job_executions.id"),
        nullable=False,
        unique=True,
    )
    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    job_type: Mapped[str] = mapped_column(String(100), nullable=False)
    failure_reason: Mapped[str] = mapped_column(Text, nullable=False)
    input_params: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    retry_attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    first_failed_at: Mapped[datetime] = mapped_column(nullable=False)
    last_failed_at: Mapped[datetime] = mapped_column(nullable=False)
    resolved: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    resolved_by: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def to_dto(self) -> DeadLetterEntry:
        from jobs_engine.domain.types import DeadLetterEntry

        return DeadLetterEntry(
            entry_id=self.id,
            job_id=self.job_id,
            execution_id=self.execution_id,
            tenant_id=self.tenant_id,
            job_type=self.job_type,
            failure_reason=self.failure_reason,
            input_params=self.input_params or {},
            retry_attempts=self.retry_attempts,
            first_failed_at=self.first_failed_at,
            last_failed_at=self.last_failed_at,
            resolved=self.resolved,
            resolved_at=self.resolved_at,
            resolved_by=self.resolved_by,
            resolution_notes=self.resolution_notes,
        )


class IdempotencyRecordModel(Base):
    """Stored result of a side-effecting unit of work.  Immutable."""

    __tablename__ = "job_idempotency_keys"

    key: Mapped[str] = mapped_column(String(300), nullable=False, unique=True)
    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    execution_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    result: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def to_dto(self) -> IdempotencyRecord:
        from jobs_engine.domain.types import IdempotencyRecord

        return IdempotencyRecord(
            key=self.key,
            job_id=self.job_id,
            execution_id=self.execution_id,
            result=self.result,
            created_at=self.created_at,
        )
