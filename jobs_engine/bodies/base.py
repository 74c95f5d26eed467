"""
JobBody protocol, supporting types, and JobBodyRegistry.

Contract:
    ``JobBody`` is the interface every external job body implements.
    ``JobBodyRegistry`` stores bodies keyed by ``job_type``.
    ``JobContext`` is what a body receives: identity, typed config, a
    clock-derived ``as_of``, the session, and the idempotency / log helpers.

Body obligations:
    - Call ``context.previous_result(natural_key)`` before any
      side-effecting write.  If it returns a record, return that record's
      result instead of writing again.
    - Return ``JobOutcome.ok()`` on success, ``JobOutcome.failure()`` on
      failure with ``should_retry`` saying whether the failure is transient.
      Exceptions are treated as transient failures by the runner.

Non-goals:
    - Bodies do NOT manage transactions -- the runner commits.
    - Bodies do NOT retry -- the tracker decides retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable
from uuid import UUID

from sqlalchemy.orm import Session

from jobs_engine.domain.types import IdempotencyRecord, LogLevel

if TYPE_CHECKING:
    from jobs_engine.services.execution_log import ExecutionLogService
    from jobs_engine.services.idempotency import IdempotencyStore


# =============================================================================
# Supporting types
# =============================================================================


@dataclass(frozen=True)
class JobOutcome:
    """Result returned by ``JobBody.run()``."""

    success: bool
    output: dict[str, Any] | None = None
    error: str | None = None
    should_retry: bool = False

    @classmethod
    def ok(cls, output: dict[str, Any] | None = None) -> JobOutcome:
        return cls(success=True, output=output)

    @classmethod
    def failure(cls, error: str, should_retry: bool = True) -> JobOutcome:
        return cls(success=False, error=error, should_retry=should_retry)


class JobContext:
    """Per-execution context handed to a job body."""

    def __init__(
        self,
        execution_id: UUID,
        job_id: UUID,
        tenant_id: UUID,
        job_type: str,
        config: Any,
        input_params: dict[str, Any],
        retry_count: int,
        as_of: datetime,
        session: Session,
        idempotency_store: IdempotencyStore,
        execution_log: ExecutionLogService,
    ):
        self.execution_id = execution_id
        self.job_id = job_id
        self.tenant_id = tenant_id
        self.job_type = job_type
        self.config = config
        self.input_params = input_params
        self.retry_count = retry_count
        self.as_of = as_of
        self.session = session
        self._idempotency = idempotency_store
        self._log = execution_log
        self.idempotency_key: str | None = None

    def previous_result(self, natural_key: str) -> IdempotencyRecord | None:
        """Claim ``natural_key`` for this execution and return any stored result.

        The derived key is recorded on completion, so the next execution
        with the same natural key finds this one's result.
        """
        self.idempotency_key = self._idempotency.compute_key(
            self.job_type, self.tenant_id, natural_key,
        )
        return self._idempotency.lookup(self.idempotency_key)

    def log(
        self,
        level: LogLevel | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        self._log.append(self.execution_id, level, message, metadata)

    def info(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.INFO, message, metadata or None)

    def warn(self, message: str, **metadata: Any) -> None:
        self.log(LogLevel.WARN, message, metadata or None)


# =============================================================================
# JobBody Protocol
# =============================================================================


@runtime_checkable
class JobBody(Protocol):
    """Protocol for job body implementations, one per ``job_type``."""

    @property
    def job_type(self) -> str: ...

    def run(self, context: JobContext) -> JobOutcome:
        """Perform the job's domain work for one execution."""
        ...


# =============================================================================
# JobBodyRegistry
# =============================================================================


class JobBodyRegistry:
    """Registry mapping job_type strings to JobBody implementations.

    Contract:
        - ``register()`` adds a body; raises ValueError on duplicate.
        - ``get()`` retrieves by job_type; raises KeyError if missing.
    """

    def __init__(self) -> None:
        self._bodies: dict[str, JobBody] = {}

    def register(self, body: JobBody) -> None:
        if body.job_type in self._bodies:
            raise ValueError(f"Job type '{body.job_type}' is already registered")
        self._bodies[body.job_type] = body

    def get(self, job_type: str) -> JobBody:
        try:
            return self._bodies[job_type]
        except KeyError:
            raise KeyError(
                f"No job body registered for type '{job_type}'. "
                f"Available: {sorted(self._bodies.keys())}"
            ) from None

    def list_job_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._bodies.keys()))

    def __len__(self) -> int:
        return len(self._bodies)

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._bodies
