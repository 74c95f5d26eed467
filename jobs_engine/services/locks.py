"""
LockManager -- per-job mutual exclusion with a TTL.

Contract:
    ``acquire()`` sweeps expired lock rows, then attempts an atomic
    ``INSERT ... ON CONFLICT (job_id) DO NOTHING``.  It returns True iff
    that insert took effect.  Contention is not an error.

Invariants enforced:
    - At most one lock row per job (UNIQUE job_id).
    - Claim correctness depends only on the shared store's atomic insert,
      never on process-local state.  Any number of runner processes may
      race on the same job.

Non-goals:
    - No heartbeat renewal.  A body that outlives the TTL can be joined by
      a duplicate execution once another runner sweeps the lock.
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from jobs_kernel.db.dialect import insert_for
from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.types import Lock
from jobs_engine.models.jobs import JobLockModel

logger = get_logger("engine.locks")

DEFAULT_LOCK_TTL = timedelta(minutes=5)


class LockManager:
    """Atomic per-job claims stored in ``job_locks``."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        default_ttl: timedelta = DEFAULT_LOCK_TTL,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._default_ttl = default_ttl

    def sweep_expired(self) -> int:
        """Delete every lock whose ``lock_expires_at`` has passed."""
        now = self._clock.now()
        result = self._session.execute(
            delete(JobLockModel)
            .where(JobLockModel.lock_expires_at <= now)
            .execution_options(synchronize_session=False)
        )
        swept = result.rowcount or 0
        if swept:
            logger.warning("expired_locks_swept", extra={"count": swept})
        return swept

    def acquire(
        self,
        job_id: UUID,
        execution_id: UUID,
        ttl: timedelta | None = None,
    ) -> bool:
        """Claim ``job_id`` for ``execution_id``.

        Returns:
            True if this call created the lock row, False if another
            live lock already holds the job.
        """
        self.sweep_expired()

        now = self._clock.now()
        expires_at = now + (ttl if ttl is not None else self._default_ttl)

        stmt = (
            insert_for(self._session, JobLockModel)
            .values(
                id=uuid4(),
                job_id=job_id,
                execution_id=execution_id,
                locked_at=now,
                lock_expires_at=expires_at,
            )
            .on_conflict_do_nothing(index_elements=["job_id"])
        )
        claimed = self._session.execute(stmt).rowcount == 1

        logger.info(
            "lock_acquired" if claimed else "lock_contended",
            extra={
                "job_id": str(job_id),
                "execution_id": str(execution_id),
                "lock_expires_at": expires_at.isoformat(),
            },
        )
        return claimed

    def release(self, job_id: UUID, execution_id: UUID | None = None) -> bool:
        """Delete the lock for ``job_id``; no-op if absent.

        With ``execution_id`` only a lock owned by that execution is removed.

        Returns:
            True if a lock row was deleted.
        """
        stmt = delete(JobLockModel).where(JobLockModel.job_id == job_id)
        if execution_id is not None:
            stmt = stmt.where(JobLockModel.execution_id == execution_id)
        result = self._session.execute(
            stmt.execution_options(synchronize_session=False)
        )
        released = (result.rowcount or 0) > 0
        if released:
            logger.info("lock_released", extra={"job_id": str(job_id)})
        return released

    def rebind(self, job_id: UUID, execution_id: UUID) -> None:
        """Point the live lock for ``job_id`` at a resumed execution."""
        self._session.execute(
            update(JobLockModel)
            .where(JobLockModel.job_id == job_id)
            .values(execution_id=execution_id)
            .execution_options(synchronize_session=False)
        )

    def is_locked(self, job_id: UUID) -> bool:
        """Sweep expired locks, then report whether ``job_id`` is held."""
        self.sweep_expired()
        return self.get(job_id) is not None

    def get(self, job_id: UUID) -> Lock | None:
        """Current lock row for ``job_id``, expired or not."""
        model = self._session.execute(
            select(JobLockModel)
            .where(JobLockModel.job_id == job_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None
