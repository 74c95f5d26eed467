"""
ExecutionLogService -- append-only structured log stream per execution.

Contract:
    ``append()`` writes one ``job_logs`` row with the next per-execution
    ``seq`` and mirrors it to the Python logger.  ``get_logs()`` returns an
    execution's entries in ``seq`` order, optionally filtered by a minimum
    level.

Invariants enforced:
    - Entries are never updated or deleted (ORM listeners in
      jobs_kernel.db.immutability).
    - ``seq`` gives a total order within one execution; there is no
      ordering guarantee across executions.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.exceptions import ExecutionNotFoundError
from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.types import LogEntry, LogLevel
from jobs_engine.models.jobs import JobExecutionModel, JobLogModel

logger = get_logger("engine.execution_log")

_PY_LEVEL = {
    LogLevel.DEBUG: logging.DEBUG,
    LogLevel.INFO: logging.INFO,
    LogLevel.WARN: logging.WARNING,
    LogLevel.ERROR: logging.ERROR,
}


class ExecutionLogService:
    """Append-only execution logs stored in ``job_logs``."""

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def append(
        self,
        execution_id: UUID,
        level: LogLevel | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> LogEntry:
        """Append one entry to ``execution_id``'s stream.

        Raises:
            ExecutionNotFoundError: If the execution does not exist.
            ValueError: If ``level`` is not a known level.
        """
        level = LogLevel(level)
        execution = self._session.get(JobExecutionModel, execution_id)
        if execution is None:
            raise ExecutionNotFoundError(str(execution_id))

        last_seq = self._session.execute(
            select(func.max(JobLogModel.seq)).where(
                JobLogModel.execution_id == execution_id,
            )
        ).scalar()

        model = JobLogModel(
            execution_id=execution_id,
            tenant_id=execution.tenant_id,
            seq=(last_seq or 0) + 1,
            level=level.value,
            message=message,
            log_metadata=metadata or None,
            logged_at=self._clock.now(),
        )
        self._session.add(model)
        self._session.flush()

        logger.log(
            _PY_LEVEL[level],
            "execution_log",
            extra={
                "execution_id": str(execution_id),
                "job_id": str(execution.job_id),
                "log_message": message,
                "log_metadata": metadata or {},
            },
        )
        return model.to_dto()

    def get_logs(
        self,
        execution_id: UUID,
        min_level: LogLevel | str | None = None,
    ) -> tuple[LogEntry, ...]:
        """Entries for ``execution_id`` in append order."""
        stmt = select(JobLogModel).where(JobLogModel.execution_id == execution_id)
        if min_level is not None:
            levels = LogLevel.at_least(LogLevel(min_level))
            stmt = stmt.where(JobLogModel.level.in_([lv.value for lv in levels]))
        models = self._session.execute(stmt.order_by(JobLogModel.seq)).scalars().all()
        return tuple(m.to_dto() for m in models)
