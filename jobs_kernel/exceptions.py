"""
Typed Exception Hierarchy for the Job Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

The engine is driven by an external trigger that must tell caller errors
(unknown execution, start without a lock) apart from everything else.
Parsing messages for that is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Lock contention is NOT an error: ``LockManager.acquire()`` returns False.
Job-body failures are NOT exceptions at the engine boundary: they become
status transitions, log lines and DLQ entries.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    JobEngineError (base)
    |
    +-- JobDefinitionError
    |   +-- JobNotFoundError
    |   +-- UnknownJobTypeError
    |   +-- InvalidJobConfigError
    |
    +-- ScheduleError
    |   +-- InvalidCronExpressionError
    |
    +-- LockError
    |   +-- LockNotHeldError
    |
    +-- ExecutionError
    |   +-- ExecutionNotFoundError
    |   +-- InvalidExecutionTransitionError
    |   +-- RetryBackoffActiveError
    |   +-- RetryPendingError
    |
    +-- DeadLetterError
    |   +-- DeadLetterEntryNotFoundError
    |   +-- DeadLetterAlreadyResolvedError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                          | When Raised
----------------|-------------------------------|---------------------------------------
Definition      | JOB_NOT_FOUND                 | Job id doesn't exist
                | UNKNOWN_JOB_TYPE              | No config decoder for job_type
                | INVALID_JOB_CONFIG            | Config rejected by its decoder
----------------|-------------------------------|---------------------------------------
Schedule        | INVALID_CRON_EXPRESSION       | Cron string cannot be parsed
----------------|-------------------------------|---------------------------------------
Lock            | LOCK_NOT_HELD                 | start() without a live acquire()
----------------|-------------------------------|---------------------------------------
Execution       | EXECUTION_NOT_FOUND           | Unknown execution id
                | INVALID_EXECUTION_TRANSITION  | complete/fail on a non-running execution,
                |                               | start() twice under one lock
                | RETRY_BACKOFF_ACTIVE          | Resuming a retry before backoff_until
                | RETRY_PENDING                 | Fresh execution while a retry is pending
----------------|-------------------------------|---------------------------------------
Dead letter     | DEAD_LETTER_ENTRY_NOT_FOUND   | Unknown DLQ entry id
                | DEAD_LETTER_ALREADY_RESOLVED  | resolve() on a resolved entry
----------------|-------------------------------|---------------------------------------
Immutability    | IMMUTABILITY_VIOLATION        | Modifying an append-only record
----------------|-------------------------------|---------------------------------------
Configuration   | CONFIGURATION_ERROR           | Engine settings file is invalid
"""


class JobEngineError(Exception):
    """
    Base exception for all job engine errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "JOB_ENGINE_ERROR"


# Job definition exceptions


class JobDefinitionError(JobEngineError):
    """Base exception for job definition errors."""

    code: str = "JOB_DEFINITION_ERROR"


class JobNotFoundError(JobDefinitionError):
    """Job definition with given ID was not found."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job definition not found: {job_id}")


class UnknownJobTypeError(JobDefinitionError):
    """No configuration decoder is registered for the job type."""

    code: str = "UNKNOWN_JOB_TYPE"

    def __init__(self, job_type: str, available: tuple[str, ...] = ()):
        self.job_type = job_type
        self.available = available
        super().__init__(
            f"Unknown job type '{job_type}'. Available: {list(available)}"
        )


class InvalidJobConfigError(JobDefinitionError):
    """Job configuration was rejected by its job type's decoder."""

    code: str = "INVALID_JOB_CONFIG"

    def __init__(self, job_type: str, reason: str):
        self.job_type = job_type
        self.reason = reason
        super().__init__(f"Invalid config for job type '{job_type}': {reason}")


# Schedule exceptions


class ScheduleError(JobEngineError):
    """Base exception for schedule errors."""

    code: str = "SCHEDULE_ERROR"


class InvalidCronExpressionError(ScheduleError):
    """Cron expression could not be parsed."""

    code: str = "INVALID_CRON_EXPRESSION"

    def __init__(self, expression: str, reason: str):
        self.expression = expression
        self.reason = reason
        super().__init__(f"Invalid cron expression '{expression}': {reason}")


# Lock exceptions


class LockError(JobEngineError):
    """Base exception for lock errors."""

    code: str = "LOCK_ERROR"


class LockNotHeldError(LockError):
    """start() was called for a job whose lock is absent or expired."""

    code: str = "LOCK_NOT_HELD"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(
            f"Lock not held for job {job_id}: call acquire() before start()"
        )


# Execution exceptions


class ExecutionError(JobEngineError):
    """Base exception for execution lifecycle errors."""

    code: str = "EXECUTION_ERROR"


class ExecutionNotFoundError(ExecutionError):
    """Execution with given ID was not found."""

    code: str = "EXECUTION_NOT_FOUND"

    def __init__(self, execution_id: str):
        self.execution_id = execution_id
        super().__init__(f"Job execution not found: {execution_id}")


class InvalidExecutionTransitionError(ExecutionError):
    """The requested state transition is not allowed from the current status."""

    code: str = "INVALID_EXECUTION_TRANSITION"

    def __init__(self, execution_id: str, from_status: str, to_status: str):
        self.execution_id = execution_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Execution {execution_id} cannot transition "
            f"from '{from_status}' to '{to_status}'"
        )


class RetryBackoffActiveError(ExecutionError):
    """A retrying execution was picked up before its backoff elapsed."""

    code: str = "RETRY_BACKOFF_ACTIVE"

    def __init__(self, execution_id: str, backoff_until: str):
        self.execution_id = execution_id
        self.backoff_until = backoff_until
        super().__init__(
            f"Execution {execution_id} is backing off until {backoff_until}"
        )


class RetryPendingError(ExecutionError):
    """A fresh execution was requested while the job has a retrying one."""

    code: str = "RETRY_PENDING"

    def __init__(self, job_id: str, execution_id: str):
        self.job_id = job_id
        self.execution_id = execution_id
        super().__init__(
            f"Job {job_id} has retrying execution {execution_id}; "
            "let it finish or fail before starting a new one"
        )


# Dead letter exceptions


class DeadLetterError(JobEngineError):
    """Base exception for dead-letter queue errors."""

    code: str = "DEAD_LETTER_ERROR"


class DeadLetterEntryNotFoundError(DeadLetterError):
    """Dead-letter entry with given ID was not found."""

    code: str = "DEAD_LETTER_ENTRY_NOT_FOUND"

    def __init__(self, entry_id: str):
        self.entry_id = entry_id
        super().__init__(f"Dead letter entry not found: {entry_id}")


class DeadLetterAlreadyResolvedError(DeadLetterError):
    """Dead-letter entry has already been resolved."""

    code: str = "DEAD_LETTER_ALREADY_RESOLVED"

    def __init__(self, entry_id: str, resolved_by: str | None = None):
        self.entry_id = entry_id
        self.resolved_by = resolved_by
        super().__init__(
            f"Dead letter entry {entry_id} was already resolved"
            + (f" by {resolved_by}" if resolved_by else "")
        )


# Immutability exceptions


class ImmutabilityError(JobEngineError):
    """Base exception for immutability violations."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an append-only record.

    Log entries and idempotency records are immutable from creation.
    Executions and dead-letter entries are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration exceptions


class ConfigurationError(JobEngineError):
    """Engine configuration file is invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"Invalid configuration in {source}: {reason}")
