"""
IdempotencyStore -- at-most-once side effects across re-fired work.

Contract:
    A job body derives a key with ``compute_key()`` and checks ``lookup()``
    before any side-effecting write.  If a record exists the body returns
    the stored result instead of repeating the write.  The tracker calls
    ``record()`` in the same flush as ``complete()``.

Invariants enforced:
    - One record per key (UNIQUE key, insert-if-absent).
    - Records are immutable once written.

Non-goals:
    - The engine cannot force a body to consult the store; honoring it is
      part of the job body contract.
"""

from __future__ import annotations

from datetime import date
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from jobs_kernel.db.dialect import insert_for
from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.logging_config import get_logger
from jobs_kernel.utils.idempotency import daily_natural_key, generate_idempotency_key

from jobs_engine.domain.types import IdempotencyRecord
from jobs_engine.models.jobs import IdempotencyRecordModel

logger = get_logger("engine.idempotency")


class IdempotencyStore:
    """Key -> stored result, backed by ``job_idempotency_keys``."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    @staticmethod
    def compute_key(job_type: str, tenant_id: UUID, natural_key: str) -> str:
        return generate_idempotency_key(job_type, tenant_id, natural_key)

    @staticmethod
    def daily_natural_key(on_date: date) -> str:
        return daily_natural_key(on_date)

    def lookup(self, key: str) -> IdempotencyRecord | None:
        model = self._session.execute(
            select(IdempotencyRecordModel).where(IdempotencyRecordModel.key == key)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def record(
        self,
        key: str,
        job_id: UUID,
        execution_id: UUID,
        result: dict[str, Any] | None,
    ) -> bool:
        """Insert-if-absent.

        Returns:
            True if this call wrote the record, False if the key existed.
        """
        stmt = (
            insert_for(self._session, IdempotencyRecordModel)
            .values(
                id=uuid4(),
                key=key,
                job_id=job_id,
                execution_id=execution_id,
                result=result,
                created_at=self._clock.now(),
            )
            .on_conflict_do_nothing(index_elements=["key"])
        )
        written = self._session.execute(stmt).rowcount == 1

        if written:
            logger.info(
                "idempotency_record_written",
                extra={"idempotency_key": key, "execution_id": str(execution_id)},
            )
        else:
            logger.info(
                "idempotency_record_exists",
                extra={"idempotency_key": key, "execution_id": str(execution_id)},
            )
        return written
