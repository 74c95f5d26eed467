"""
ExecutionTracker -- the execution state machine.

States::

    pending -> running -> completed
                       -> retrying -> running (after backoff_until)
                       -> failed

Contract:
    - ``start()`` requires a live lock for the job (``LockManager.acquire()``
      first).  The new execution takes the id reserved by ``acquire()``.
      If the job has a ``retrying`` execution whose backoff has elapsed,
      that execution is resumed instead and the lock is re-bound to it,
      unless the caller passes ``resume=False``.
    - ``complete()`` and ``fail()`` only accept ``running`` executions.
    - ``fail()`` decides retry vs. terminal failure through RetryPolicy.  A
      terminal failure creates exactly one DLQ entry in the same flush.

Invariants enforced:
    - retry_count is monotonically non-decreasing (+1 per ``fail()``).
    - An execution is terminal ``failed`` iff a DLQ entry for it exists.
    - The lock is released on completion and on every failure, but only
      while it is still owned by the execution being finished.

Non-goals:
    - Does NOT run job bodies -- JobRunner does.
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.exceptions import (
    ExecutionNotFoundError,
    InvalidExecutionTransitionError,
    JobNotFoundError,
    LockNotHeldError,
    RetryBackoffActiveError,
    RetryPendingError,
)
from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.retry import RetryPolicy
from jobs_engine.domain.types import (
    EventType,
    Execution,
    ExecutionEvent,
    ExecutionStatus,
    LogLevel,
)
from jobs_engine.models.jobs import (
    JobDefinitionModel,
    JobExecutionModel,
    JobLogModel,
)
from jobs_engine.services.dead_letter import DeadLetterQueue
from jobs_engine.services.events import EventBus
from jobs_engine.services.execution_log import ExecutionLogService
from jobs_engine.services.idempotency import IdempotencyStore
from jobs_engine.services.locks import LockManager

logger = get_logger("engine.tracker")

ORPHAN_FAILURE_REASON = "lock expired before completion"


class ExecutionTracker:
    """Owns the execution lifecycle stored in ``job_executions``."""

    def __init__(
        self,
        session: Session,
        lock_manager: LockManager,
        execution_log: ExecutionLogService,
        dead_letter_queue: DeadLetterQueue,
        idempotency_store: IdempotencyStore,
        clock: Clock | None = None,
        retry_policy: RetryPolicy | None = None,
        event_bus: EventBus | None = None,
    ):
        self._session = session
        self._locks = lock_manager
        self._log = execution_log
        self._dlq = dead_letter_queue
        self._idempotency = idempotency_store
        self._clock = clock or SystemClock()
        self._retry_policy = retry_policy or RetryPolicy()
        self._events = event_bus or EventBus()

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

    def start(
        self,
        job_id: UUID,
        input_params: dict[str, Any] | None,
        actor_id: UUID,
        runner_identity: str = "system",
        resume: bool = True,
    ) -> UUID:
        """Begin (or resume) an execution of ``job_id``.

        With ``resume=False`` a retrying execution is never picked up: the
        call starts a fresh execution with ``input_params`` or refuses.

        Raises:
            JobNotFoundError: Unknown job.
            LockNotHeldError: No live lock for the job.
            RetryBackoffActiveError: A retrying execution is still backing off.
            RetryPendingError: ``resume=False`` and a retrying execution exists.
            InvalidExecutionTransitionError: The lock's execution was already
                started.
        """
        job = self._session.get(JobDefinitionModel, job_id)
        if job is None:
            raise JobNotFoundError(str(job_id))

        now = self._clock.now()
        lock = self._locks.get(job_id)
        if lock is None or lock.is_expired(now):
            raise LockNotHeldError(str(job_id))

        model = self._session.execute(
            select(JobExecutionModel)
            .where(
                JobExecutionModel.job_id == job_id,
                JobExecutionModel.status == ExecutionStatus.RETRYING.value,
            )
            .order_by(JobExecutionModel.created_at.desc())
            .limit(1)
        ).scalar_one_or_none()

        if model is not None and not resume:
            raise RetryPendingError(str(job_id), str(model.id))

        if model is not None:
            if model.backoff_until is not None and model.backoff_until > now:
                raise RetryBackoffActiveError(
                    str(model.id), model.backoff_until.isoformat(),
                )
            resumed = True
            model.status = ExecutionStatus.RUNNING.value
            model.started_at = now
            model.completed_at = None
            model.duration_ms = None
            model.backoff_until = None
            model.runner_identity = runner_identity
            model.updated_by_id = actor_id
            if lock.execution_id != model.id:
                self._locks.rebind(job_id, model.id)
        else:
            started = self._session.get(JobExecutionModel, lock.execution_id)
            if started is not None:
                raise InvalidExecutionTransitionError(
                    str(started.id), started.status, ExecutionStatus.RUNNING.value,
                )
            resumed = False
            model = JobExecutionModel(
                id=lock.execution_id,
                job_id=job_id,
                tenant_id=job.tenant_id,
                status=ExecutionStatus.RUNNING.value,
                started_at=now,
                input_params=input_params or None,
                retry_count=0,
                max_retries=job.max_retries,
                runner_identity=runner_identity,
                created_at=now,
                created_by_id=actor_id,
            )
            self._session.add(model)

        job.last_run_at = now
        job.updated_by_id = actor_id
        self._session.flush()

        self._log.append(
            model.id,
            LogLevel.INFO,
            "Execution resumed after backoff" if resumed else "Execution started",
            {"retry_count": model.retry_count, "runner_identity": runner_identity},
        )
        logger.info(
            "execution_started",
            extra={
                "execution_id": str(model.id),
                "job_id": str(job_id),
                "resumed": resumed,
                "retry_count": model.retry_count,
            },
        )
        self._publish(EventType.EXECUTION_STARTED, model, job.job_type, actor_id)
        return model.id

    # -------------------------------------------------------------------------
    # Complete
    # -------------------------------------------------------------------------

    def complete(
        self,
        execution_id: UUID,
        output: dict[str, Any] | None,
        actor_id: UUID,
        idempotency_key: str | None = None,
    ) -> Execution:
        """Mark a running execution completed and release its lock.

        When ``idempotency_key`` is given the idempotency record is written
        in the same flush as the status change.

        Raises:
            ExecutionNotFoundError: Unknown execution.
            InvalidExecutionTransitionError: Execution is not running.
        """
        model = self._get_running(execution_id, ExecutionStatus.COMPLETED)
        now = self._clock.now()

        model.status = ExecutionStatus.COMPLETED.value
        model.completed_at = now
        model.duration_ms = self._duration_ms(model.started_at, now)
        model.output_result = output
        model.updated_by_id = actor_id
        if idempotency_key is not None:
            model.idempotency_key = idempotency_key
            self._idempotency.record(
                idempotency_key, model.job_id, model.id, output,
            )
        self._session.flush()

        self._log.append(
            model.id,
            LogLevel.INFO,
            "Execution completed",
            {"duration_ms": model.duration_ms},
        )
        self._release(model)

        logger.info(
            "execution_completed",
            extra={
                "execution_id": str(model.id),
                "job_id": str(model.job_id),
                "duration_ms": model.duration_ms,
                "retry_count": model.retry_count,
            },
        )
        self._publish(EventType.EXECUTION_COMPLETED, model, self._job_type(model), actor_id)
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Fail
    # -------------------------------------------------------------------------

    def fail(
        self,
        execution_id: UUID,
        error_message: str,
        should_retry: bool,
        actor_id: UUID,
    ) -> Execution:
        """Record a failed attempt; schedule a retry or dead-letter it.

        Raises:
            ExecutionNotFoundError: Unknown execution.
            InvalidExecutionTransitionError: Execution is not running.
        """
        model = self._get_running(execution_id, ExecutionStatus.FAILED)
        now = self._clock.now()

        decision = self._retry_policy.decide(
            retry_count=model.retry_count,
            max_retries=model.max_retries,
            should_retry=should_retry,
            failed_at=now,
        )

        model.retry_count = decision.new_retry_count
        model.error_message = error_message
        model.duration_ms = self._duration_ms(model.started_at, now)
        model.updated_by_id = actor_id
        job_type = self._job_type(model)

        if decision.retry:
            model.status = ExecutionStatus.RETRYING.value
            model.backoff_until = decision.backoff_until
            self._session.flush()

            self._log.append(
                model.id,
                LogLevel.WARN,
                f"Execution failed, retry scheduled: {error_message}",
                {
                    "retry_count": model.retry_count,
                    "max_retries": model.max_retries,
                    "delay_seconds": decision.delay_seconds,
                    "backoff_until": decision.backoff_until.isoformat(),
                },
            )
            self._release(model)
            logger.warning(
                "execution_retrying",
                extra={
                    "execution_id": str(model.id),
                    "job_id": str(model.job_id),
                    "retry_count": model.retry_count,
                    "backoff_until": decision.backoff_until.isoformat(),
                },
            )
            self._publish(EventType.EXECUTION_RETRYING, model, job_type, actor_id)
            return model.to_dto()

        model.status = ExecutionStatus.FAILED.value
        model.completed_at = now
        model.backoff_until = None
        self._session.flush()

        self._log.append(
            model.id,
            LogLevel.ERROR,
            f"Execution failed permanently: {error_message}",
            {"retry_count": model.retry_count, "reason": decision.reason},
        )
        self._dlq.enqueue(
            job_id=model.job_id,
            execution_id=model.id,
            tenant_id=model.tenant_id,
            job_type=job_type,
            failure_reason=error_message,
            input_params=model.input_params,
            retry_attempts=model.retry_count,
            first_failed_at=self._first_failed_at(model.id, now),
            last_failed_at=now,
            actor_id=actor_id,
        )
        self._release(model)
        logger.error(
            "execution_failed",
            extra={
                "execution_id": str(model.id),
                "job_id": str(model.job_id),
                "retry_count": model.retry_count,
                "reason": decision.reason,
            },
        )
        self._publish(EventType.EXECUTION_FAILED, model, job_type, actor_id)
        return model.to_dto()

    # -------------------------------------------------------------------------
    # Recovery
    # -------------------------------------------------------------------------

    def reap_orphaned(self, actor_id: UUID) -> tuple[Execution, ...]:
        """Fail running executions whose lock expired or vanished.

        Each orphan goes through ``fail(should_retry=True)``.
        """
        now = self._clock.now()
        running = self._session.execute(
            select(JobExecutionModel).where(
                JobExecutionModel.status == ExecutionStatus.RUNNING.value,
            )
        ).scalars().all()

        reaped: list[Execution] = []
        for model in running:
            lock = self._locks.get(model.job_id)
            if (
                lock is not None
                and lock.execution_id == model.id
                and not lock.is_expired(now)
            ):
                continue
            logger.warning(
                "orphaned_execution_reaped",
                extra={
                    "execution_id": str(model.id),
                    "job_id": str(model.job_id),
                },
            )
            reaped.append(
                self.fail(model.id, ORPHAN_FAILURE_REASON, True, actor_id)
            )
        return tuple(reaped)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, execution_id: UUID) -> Execution:
        """Raises ExecutionNotFoundError for unknown ids."""
        return self._get_model(execution_id).to_dto()

    def get_history(
        self,
        tenant_id: UUID,
        job_id: UUID | None = None,
        limit: int = 50,
    ) -> tuple[Execution, ...]:
        """Executions for ``tenant_id``, most recent first."""
        stmt = select(JobExecutionModel).where(
            JobExecutionModel.tenant_id == tenant_id,
        )
        if job_id is not None:
            stmt = stmt.where(JobExecutionModel.job_id == job_id)
        stmt = stmt.order_by(
            JobExecutionModel.created_at.desc(),
            JobExecutionModel.started_at.desc(),
        ).limit(limit)
        return tuple(m.to_dto() for m in self._session.execute(stmt).scalars().all())

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _get_model(self, execution_id: UUID) -> JobExecutionModel:
        model = self._session.get(JobExecutionModel, execution_id)
        if model is None:
            raise ExecutionNotFoundError(str(execution_id))
        return model

    def _get_running(
        self,
        execution_id: UUID,
        to_status: ExecutionStatus,
    ) -> JobExecutionModel:
        model = self._get_model(execution_id)
        if model.status != ExecutionStatus.RUNNING.value:
            raise InvalidExecutionTransitionError(
                str(execution_id), model.status, to_status.value,
            )
        return model

    def _release(self, model: JobExecutionModel) -> None:
        if not self._locks.release(model.job_id, execution_id=model.id):
            logger.warning(
                "lock_not_owned_on_finish",
                extra={
                    "execution_id": str(model.id),
                    "job_id": str(model.job_id),
                },
            )

    def _job_type(self, model: JobExecutionModel) -> str:
        job = self._session.get(JobDefinitionModel, model.job_id)
        return job.job_type if job is not None else ""

    def _first_failed_at(self, execution_id: UUID, default: datetime) -> datetime:
        first = self._session.execute(
            select(func.min(JobLogModel.logged_at)).where(
                JobLogModel.execution_id == execution_id,
                JobLogModel.level.in_(
                    [lv.value for lv in LogLevel.at_least(LogLevel.WARN)]
                ),
            )
        ).scalar()
        return first if first is not None else default

    @staticmethod
    def _duration_ms(started_at: datetime | None, ended_at: datetime) -> int | None:
        if started_at is None:
            return None
        return int((ended_at - started_at).total_seconds() * 1000)

    def _publish(
        self,
        event_type: EventType,
        model: JobExecutionModel,
        job_type: str,
        actor_id: UUID,
    ) -> None:
        self._events.publish(
            ExecutionEvent(
                event_type=event_type,
                execution_id=model.id,
                job_id=model.job_id,
                tenant_id=model.tenant_id,
                job_type=job_type,
                status=ExecutionStatus(model.status),
                occurred_at=self._clock.now(),
                actor_id=actor_id,
                payload={
                    "retry_count": model.retry_count,
                    "duration_ms": model.duration_ms,
                    "error_message": model.error_message,
                    "output": model.output_result,
                },
            )
        )
