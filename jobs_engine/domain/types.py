"""
jobs_engine.domain.types -- Pure frozen dataclasses for the job engine.

ZERO I/O.  Frozen dataclasses with enum status fields; ORM models convert
to these via ``to_dto()`` so services never hand live ORM rows to callers.

Invariants carried here:
    - ``Execution.retry_count`` is monotonically non-decreasing.
    - ``completed`` and ``failed`` are terminal statuses.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


# =============================================================================
# Status enums
# =============================================================================


class ExecutionStatus(str, Enum):
    """Execution lifecycle status."""

    PENDING = "pending"  # Created, not yet running
    RUNNING = "running"  # Job body in flight, lock held
    COMPLETED = "completed"  # Terminal success
    FAILED = "failed"  # Terminal failure, DLQ entry exists
    RETRYING = "retrying"  # Transient failure, waiting for backoff_until

    @property
    def is_terminal(self) -> bool:
        return self in (ExecutionStatus.COMPLETED, ExecutionStatus.FAILED)


# Statuses that make a job ineligible for list_due()
IN_FLIGHT_STATUSES: tuple[ExecutionStatus, ...] = (
    ExecutionStatus.PENDING,
    ExecutionStatus.RUNNING,
)


class LogLevel(str, Enum):
    """Execution log severity, ordered debug < info < warn < error."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"

    @property
    def rank(self) -> int:
        return _LEVEL_RANK[self]

    @classmethod
    def at_least(cls, minimum: LogLevel) -> tuple[LogLevel, ...]:
        """All levels at or above ``minimum``."""
        return tuple(level for level in cls if level.rank >= minimum.rank)


_LEVEL_RANK = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}


class EventType(str, Enum):
    """Explicit lifecycle events published on the EventBus."""

    EXECUTION_STARTED = "execution.started"
    EXECUTION_COMPLETED = "execution.completed"
    EXECUTION_RETRYING = "execution.retrying"
    EXECUTION_FAILED = "execution.failed"
    DEAD_LETTER_RESOLVED = "dead_letter.resolved"


# =============================================================================
# Entity DTOs
# =============================================================================


@dataclass(frozen=True)
class JobDefinition:
    """Immutable snapshot of a job definition.

    ``config`` holds the typed value produced by the job type's decoder,
    not the raw JSON stored in the database.
    """

    job_id: UUID
    tenant_id: UUID
    name: str  # Unique per tenant
    job_type: str
    cron_schedule: str | None = None  # None = on-demand only
    config: Any = None
    enabled: bool = True
    max_retries: int = 3
    last_run_at: datetime | None = None
    next_run_at: datetime | None = None
    created_by: UUID | None = None


@dataclass(frozen=True)
class Execution:
    """Immutable snapshot of one attempt to run a job."""

    execution_id: UUID
    job_id: UUID
    tenant_id: UUID
    status: ExecutionStatus
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    input_params: dict[str, Any] = field(default_factory=dict)
    output_result: dict[str, Any] | None = None
    error_message: str | None = None
    retry_count: int = 0
    max_retries: int = 3
    idempotency_key: str | None = None
    backoff_until: datetime | None = None
    runner_identity: str | None = None


@dataclass(frozen=True)
class Lock:
    """Mutual-exclusion claim on a job."""

    job_id: UUID
    execution_id: UUID
    locked_at: datetime
    lock_expires_at: datetime

    def is_expired(self, as_of: datetime) -> bool:
        return self.lock_expires_at <= as_of


@dataclass(frozen=True)
class LogEntry:
    """One append-only execution log line."""

    entry_id: UUID
    execution_id: UUID
    tenant_id: UUID
    level: LogLevel
    message: str
    metadata: dict[str, Any] = field(default_factory=dict)
    logged_at: datetime | None = None
    seq: int = 0


@dataclass(frozen=True)
class DeadLetterEntry:
    """Terminally-failed execution awaiting operator triage."""

    entry_id: UUID
    job_id: UUID
    execution_id: UUID
    tenant_id: UUID
    job_type: str
    failure_reason: str
    input_params: dict[str, Any] = field(default_factory=dict)
    retry_attempts: int = 0
    first_failed_at: datetime | None = None
    last_failed_at: datetime | None = None
    resolved: bool = False
    resolved_at: datetime | None = None
    resolved_by: UUID | None = None
    resolution_notes: str | None = None


@dataclass(frozen=True)
class IdempotencyRecord:
    """Stored result of a side-effecting unit of work."""

    key: str
    job_id: UUID
    execution_id: UUID
    result: dict[str, Any] | None = None
    created_at: datetime | None = None


# =============================================================================
# Run / tick results
# =============================================================================


@dataclass(frozen=True)
class JobRunResult:
    """Outcome of one ``JobRunner.run_job()`` call.

    ``claimed`` is False when another runner owned the lock; in that case
    no execution was started and every other field is None.
    """

    job_id: UUID
    claimed: bool
    execution_id: UUID | None = None
    status: ExecutionStatus | None = None
    output: dict[str, Any] | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class TickResult:
    """Summary of one ``JobTrigger.tick()``."""

    due: int = 0
    claimed: int = 0
    skipped: int = 0
    completed: int = 0
    retrying: int = 0
    failed: int = 0
    reaped: int = 0
    run_results: tuple[JobRunResult, ...] = ()


@dataclass(frozen=True)
class ExecutionEvent:
    """Explicit lifecycle event delivered to EventBus subscribers."""

    event_type: EventType
    execution_id: UUID
    job_id: UUID
    tenant_id: UUID
    job_type: str
    status: ExecutionStatus
    occurred_at: datetime
    actor_id: UUID | None = None
    payload: dict[str, Any] = field(default_factory=dict)
