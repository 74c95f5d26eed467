"""
DeadLetterQueue -- terminally-failed executions awaiting operator triage.

Contract:
    ``enqueue()`` is called only by the ExecutionTracker, exactly once per
    execution that becomes terminally ``failed``.  ``list()`` and ``get()``
    are read-only.  ``resolve()`` marks an entry resolved; it does NOT
    re-trigger the job (replay is ``JobRunner.replay_dead_letter()``).

Invariants enforced:
    - One entry per execution (UNIQUE execution_id).
    - Entries are never deleted (ORM listener).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.exceptions import (
    DeadLetterAlreadyResolvedError,
    DeadLetterEntryNotFoundError,
)
from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.types import (
    DeadLetterEntry,
    EventType,
    ExecutionEvent,
    ExecutionStatus,
)
from jobs_engine.models.jobs import DeadLetterEntryModel
from jobs_engine.services.events import EventBus

logger = get_logger("engine.dead_letter")


class DeadLetterQueue:
    """Dead-letter entries stored in ``dead_letter_queue``."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        event_bus: EventBus | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._events = event_bus

    def enqueue(
        self,
        job_id: UUID,
        execution_id: UUID,
        tenant_id: UUID,
        job_type: str,
        failure_reason: str,
        input_params: dict[str, Any] | None,
        retry_attempts: int,
        first_failed_at: datetime,
        last_failed_at: datetime,
        actor_id: UUID,
    ) -> DeadLetterEntry:
        model = DeadLetterEntryModel(
            job_id=job_id,
            execution_id=execution_id,
            tenant_id=tenant_id,
            job_type=job_type,
            failure_reason=failure_reason,
            input_params=input_params or None,
            retry_attempts=retry_attempts,
            first_failed_at=first_failed_at,
            last_failed_at=last_failed_at,
            resolved=False,
            created_at=last_failed_at,
            created_by_id=actor_id,
        )
        self._session.add(model)
        self._session.flush()

        logger.error(
            "dead_letter_enqueued",
            extra={
                "entry_id": str(model.id),
                "job_id": str(job_id),
                "execution_id": str(execution_id),
                "job_type": job_type,
                "retry_attempts": retry_attempts,
                "failure_reason": failure_reason,
            },
        )
        return model.to_dto()

    def list(
        self,
        tenant_id: UUID,
        resolved: bool = False,
    ) -> tuple[DeadLetterEntry, ...]:
        """Entries for ``tenant_id``, most recently failed first."""
        models = self._session.execute(
            select(DeadLetterEntryModel)
            .where(
                DeadLetterEntryModel.tenant_id == tenant_id,
                DeadLetterEntryModel.resolved == resolved,
            )
            .order_by(
                DeadLetterEntryModel.last_failed_at.desc(),
                DeadLetterEntryModel.id,
            )
        ).scalars().all()
        return tuple(m.to_dto() for m in models)

    def get(self, entry_id: UUID) -> DeadLetterEntry:
        """Raises DeadLetterEntryNotFoundError for unknown ids."""
        return self._get_model(entry_id).to_dto()

    def get_for_execution(self, execution_id: UUID) -> DeadLetterEntry | None:
        model = self._session.execute(
            select(DeadLetterEntryModel).where(
                DeadLetterEntryModel.execution_id == execution_id,
            )
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def resolve(
        self,
        entry_id: UUID,
        notes: str,
        resolver_id: UUID,
    ) -> DeadLetterEntry:
        """Mark an entry resolved.

        Raises:
            DeadLetterEntryNotFoundError: Unknown entry.
            DeadLetterAlreadyResolvedError: Entry already resolved.
        """
        model = self._get_model(entry_id)
        if model.resolved:
            raise DeadLetterAlreadyResolvedError(
                str(entry_id),
                str(model.resolved_by) if model.resolved_by else None,
            )

        now = self._clock.now()
        model.resolved = True
        model.resolved_at = now
        model.resolved_by = resolver_id
        model.resolution_notes = notes
        model.updated_by_id = resolver_id
        self._session.flush()

        logger.info(
            "dead_letter_resolved",
            extra={
                "entry_id": str(entry_id),
                "execution_id": str(model.execution_id),
                "resolver_id": str(resolver_id),
            },
        )

        if self._events is not None:
            self._events.publish(
                ExecutionEvent(
                    event_type=EventType.DEAD_LETTER_RESOLVED,
                    execution_id=model.execution_id,
                    job_id=model.job_id,
                    tenant_id=model.tenant_id,
                    job_type=model.job_type,
                    status=ExecutionStatus.FAILED,
                    occurred_at=now,
                    actor_id=resolver_id,
                    payload={"entry_id": str(entry_id), "notes": notes},
                )
            )

        return model.to_dto()

    def _get_model(self, entry_id: UUID) -> DeadLetterEntryModel:
        model = self._session.get(DeadLetterEntryModel, entry_id)
        if model is None:
            raise DeadLetterEntryNotFoundError(str(entry_id))
        return model
