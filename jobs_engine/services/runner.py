"""
JobRunner -- acquire, start, run the body, complete or fail.

Contract:
    ``run_job()`` runs one execution of a job end to end and returns a
    ``JobRunResult``.  Lock contention yields ``claimed=False`` and no
    execution.  No job-body exception escapes: it becomes a transient
    failure (``fail(should_retry=True)``) plus an error log line.

Transaction boundaries (this class OWNS them):
    1. acquire + start, then COMMIT -- the claim and the running execution
       are visible to other runners before the body starts.
    2. body + complete/fail, then COMMIT.  If the body raises or reports
       failure, its writes are rolled back before the failure is recorded,
       so only a successful body leaves rows behind.

Non-goals:
    - Does NOT compute schedules -- JobTrigger does.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.logging_config import LogContext, get_logger

from jobs_engine.bodies.base import JobBodyRegistry, JobContext, JobOutcome
from jobs_engine.domain.types import JobDefinition, JobRunResult, LogLevel
from jobs_engine.services.dead_letter import DeadLetterQueue
from jobs_engine.services.execution_log import ExecutionLogService
from jobs_engine.services.idempotency import IdempotencyStore
from jobs_engine.services.locks import LockManager
from jobs_engine.services.registry import JobRegistry
from jobs_engine.services.tracker import ExecutionTracker

logger = get_logger("engine.runner")


class JobRunner:
    """Runs job bodies through the lock / tracker lifecycle."""

    def __init__(
        self,
        session: Session,
        registry: JobRegistry,
        lock_manager: LockManager,
        tracker: ExecutionTracker,
        dead_letter_queue: DeadLetterQueue,
        idempotency_store: IdempotencyStore,
        execution_log: ExecutionLogService,
        bodies: JobBodyRegistry,
        clock: Clock | None = None,
        runner_identity: str = "system",
        lock_ttl: timedelta | None = None,
    ):
        self._session = session
        self._registry = registry
        self._locks = lock_manager
        self._tracker = tracker
        self._dlq = dead_letter_queue
        self._idempotency = idempotency_store
        self._log = execution_log
        self._bodies = bodies
        self._clock = clock or SystemClock()
        self._runner_identity = runner_identity
        self._lock_ttl = lock_ttl

    @property
    def registry(self) -> JobRegistry:
        return self._registry

    @property
    def tracker(self) -> ExecutionTracker:
        return self._tracker

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run_job(
        self,
        job_id: UUID,
        actor_id: UUID,
        input_params: dict[str, Any] | None = None,
        resume: bool = True,
    ) -> JobRunResult:
        """Run one execution of ``job_id``.

        ``resume=False`` forces a fresh execution; see ``ExecutionTracker.start``.

        Raises:
            JobNotFoundError: Unknown job.
            RetryBackoffActiveError: The job's retrying execution is still
                backing off.  The claim is rolled back.
            RetryPendingError: ``resume=False`` while the job has a retrying
                execution.  The claim is rolled back.
        """
        job = self._registry.get(job_id)
        reserved_id = uuid4()

        try:
            if not self._locks.acquire(job_id, reserved_id, self._lock_ttl):
                self._session.commit()
                logger.info(
                    "job_run_skipped_lock_held",
                    extra={"job_id": str(job_id), "runner_id": self._runner_identity},
                )
                return JobRunResult(job_id=job_id, claimed=False)

            execution_id = self._tracker.start(
                job_id, input_params, actor_id, self._runner_identity, resume,
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise

        with LogContext.bind(
            tenant_id=str(job.tenant_id),
            job_id=str(job_id),
            execution_id=str(execution_id),
            actor_id=str(actor_id),
            runner_id=self._runner_identity,
        ):
            return self._run_body(job, execution_id, actor_id)

    def replay_dead_letter(self, entry_id: UUID, actor_id: UUID) -> JobRunResult:
        """Re-run a dead-lettered job with the entry's original input_params.

        Always starts a fresh execution; a pending retry of the job is never
        hijacked.  Does not resolve the entry; resolution stays an operator
        decision.

        Raises:
            DeadLetterEntryNotFoundError: Unknown entry.
            RetryPendingError: The job has a retrying execution.
        """
        entry = self._dlq.get(entry_id)
        logger.info(
            "dead_letter_replay_requested",
            extra={
                "entry_id": str(entry_id),
                "job_id": str(entry.job_id),
                "execution_id": str(entry.execution_id),
            },
        )
        return self.run_job(
            entry.job_id, actor_id, input_params=entry.input_params, resume=False,
        )

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_body(
        self,
        job: JobDefinition,
        execution_id: UUID,
        actor_id: UUID,
    ) -> JobRunResult:
        execution = self._tracker.get(execution_id)

        if job.job_type not in self._bodies:
            message = f"No job body registered for type '{job.job_type}'"
            return self._record_failure(execution_id, message, False, actor_id)

        body = self._bodies.get(job.job_type)
        context = JobContext(
            execution_id=execution_id,
            job_id=job.job_id,
            tenant_id=job.tenant_id,
            job_type=job.job_type,
            config=job.config,
            input_params=dict(execution.input_params),
            retry_count=execution.retry_count,
            as_of=self._clock.now(),
            session=self._session,
            idempotency_store=self._idempotency,
            execution_log=self._log,
        )

        try:
            outcome = body.run(context)
        except Exception as exc:
            self._session.rollback()
            logger.exception(
                "job_body_raised",
                extra={"job_type": job.job_type},
            )
            self._log.append(
                execution_id,
                LogLevel.ERROR,
                f"Job body raised {type(exc).__name__}: {exc}",
                {"exc_type": type(exc).__name__},
            )
            return self._record_failure(
                execution_id, f"{type(exc).__name__}: {exc}", True, actor_id,
            )

        if not isinstance(outcome, JobOutcome):
            self._session.rollback()
            message = f"Job body returned {type(outcome).__name__}, expected JobOutcome"
            return self._record_failure(execution_id, message, False, actor_id)

        if outcome.success:
            try:
                done = self._tracker.complete(
                    execution_id,
                    outcome.output,
                    actor_id,
                    idempotency_key=context.idempotency_key,
                )
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise
            return JobRunResult(
                job_id=job.job_id,
                claimed=True,
                execution_id=execution_id,
                status=done.status,
                output=done.output_result,
            )

        self._session.rollback()
        return self._record_failure(
            execution_id,
            outcome.error or "job body reported failure",
            outcome.should_retry,
            actor_id,
        )

    def _record_failure(
        self,
        execution_id: UUID,
        error_message: str,
        should_retry: bool,
        actor_id: UUID,
    ) -> JobRunResult:
        try:
            failed = self._tracker.fail(
                execution_id, error_message, should_retry, actor_id,
            )
            self._session.commit()
        except Exception:
            self._session.rollback()
            raise
        return JobRunResult(
            job_id=failed.job_id,
            claimed=True,
            execution_id=execution_id,
            status=failed.status,
            error_message=error_message,
        )
