"""
JobRegistry -- job definitions and the "what is due now" query.

Contract:
    ``register()`` upserts a definition keyed by (tenant_id, name).  The
    config is decoded through the ConfigDecoderRegistry and the cron
    expression (when present) is parsed before anything is written.
    ``list_due()`` is the trigger's polling entrypoint; ``update_schedule()``
    persists the next fire time the trigger computed.

Due rule:
    A job is due when it is enabled, no execution of it is pending or
    running, no retrying execution of it is still backing off, and one of:
    ``next_run_at`` is null or <= now; a retrying execution's backoff has
    elapsed.  Ordered by ``next_run_at`` ascending, nulls first.  Keeping
    an on-demand job from running on every tick is the trigger's job
    (it disables the job once it reaches a terminal status).

Non-goals:
    - ``update_schedule()`` does not check the value against the cron
      expression.
    - Does NOT call ``session.commit()`` -- caller controls boundaries.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.exceptions import JobNotFoundError
from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.config_types import (
    ConfigDecoderRegistry,
    default_config_registry,
    encode_config,
)
from jobs_engine.domain.schedule import validate_cron
from jobs_engine.domain.types import (
    IN_FLIGHT_STATUSES,
    ExecutionStatus,
    JobDefinition,
)
from jobs_engine.models.jobs import JobDefinitionModel, JobExecutionModel

logger = get_logger("engine.registry")

DEFAULT_MAX_RETRIES = 3


class JobRegistry:
    """Job definitions stored in ``job_definitions``."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config_registry: ConfigDecoderRegistry | None = None,
        default_max_retries: int = DEFAULT_MAX_RETRIES,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._configs = config_registry or default_config_registry()
        self._default_max_retries = default_max_retries

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register(
        self,
        tenant_id: UUID,
        name: str,
        job_type: str,
        cron_schedule: str | None,
        config: dict[str, Any] | None,
        enabled: bool,
        actor_id: UUID,
        max_retries: int | None = None,
    ) -> UUID:
        """Create or update the job named ``name`` for ``tenant_id``.

        Raises:
            UnknownJobTypeError: No decoder registered for ``job_type``.
            InvalidJobConfigError: ``config`` rejected by its decoder.
            InvalidCronExpressionError: ``cron_schedule`` is malformed.
            ValueError: ``max_retries`` is negative.
        """
        decoded = self._configs.decode(job_type, config)
        if cron_schedule is not None:
            validate_cron(cron_schedule)
        if max_retries is not None and max_retries < 0:
            raise ValueError(f"max_retries must be >= 0: {max_retries}")

        model = self._session.execute(
            select(JobDefinitionModel).where(
                JobDefinitionModel.tenant_id == tenant_id,
                JobDefinitionModel.name == name,
            )
        ).scalar_one_or_none()

        now = self._clock.now()
        created = model is None
        if created:
            model = JobDefinitionModel(
                tenant_id=tenant_id,
                name=name,
                max_retries=(
                    max_retries if max_retries is not None
                    else self._default_max_retries
                ),
                created_at=now,
                created_by_id=actor_id,
            )
            self._session.add(model)
        else:
            if max_retries is not None:
                model.max_retries = max_retries
            model.updated_by_id = actor_id

        model.job_type = job_type
        model.cron_schedule = cron_schedule
        model.config = encode_config(decoded)
        model.enabled = enabled
        self._session.flush()

        logger.info(
            "job_registered" if created else "job_reregistered",
            extra={
                "job_id": str(model.id),
                "tenant_id": str(tenant_id),
                "job_name": name,
                "job_type": job_type,
                "cron_schedule": cron_schedule,
                "enabled": enabled,
            },
        )
        return model.id

    def set_enabled(self, job_id: UUID, enabled: bool, actor_id: UUID) -> JobDefinition:
        model = self._get_model(job_id)
        model.enabled = enabled
        model.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "job_enabled" if enabled else "job_disabled",
            extra={"job_id": str(job_id)},
        )
        return self._to_dto(model)

    # -------------------------------------------------------------------------
    # Scheduling surface
    # -------------------------------------------------------------------------

    def list_due(self, limit: int = 100) -> tuple[JobDefinition, ...]:
        """Jobs eligible to run now, never-run jobs first."""
        now = self._clock.now()
        job_id_col = JobDefinitionModel.id

        in_flight = exists().where(
            JobExecutionModel.job_id == job_id_col,
            JobExecutionModel.status.in_([s.value for s in IN_FLIGHT_STATUSES]),
        )
        backing_off = exists().where(
            JobExecutionModel.job_id == job_id_col,
            JobExecutionModel.status == ExecutionStatus.RETRYING.value,
            JobExecutionModel.backoff_until > now,
        )
        retry_ready = exists().where(
            JobExecutionModel.job_id == job_id_col,
            JobExecutionModel.status == ExecutionStatus.RETRYING.value,
            or_(
                JobExecutionModel.backoff_until.is_(None),
                JobExecutionModel.backoff_until <= now,
            ),
        )

        stmt = (
            select(JobDefinitionModel)
            .where(
                and_(
                    JobDefinitionModel.enabled.is_(True),
                    ~in_flight,
                    ~backing_off,
                    or_(
                        JobDefinitionModel.next_run_at.is_(None),
                        JobDefinitionModel.next_run_at <= now,
                        retry_ready,
                    ),
                )
            )
            .order_by(
                JobDefinitionModel.next_run_at.asc().nulls_first(),
                JobDefinitionModel.name,
            )
            .limit(limit)
        )
        models = self._session.execute(stmt).scalars().all()
        return tuple(self._to_dto(m) for m in models)

    def update_schedule(
        self,
        job_id: UUID,
        next_run_at: datetime | None,
        actor_id: UUID,
    ) -> None:
        """Persist the next fire time.

        Raises:
            JobNotFoundError: If the job does not exist.
        """
        model = self._get_model(job_id)
        model.next_run_at = next_run_at
        model.updated_by_id = actor_id
        self._session.flush()
        logger.info(
            "job_schedule_updated",
            extra={
                "job_id": str(job_id),
                "next_run_at": next_run_at.isoformat() if next_run_at else None,
            },
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def get(self, job_id: UUID) -> JobDefinition:
        """Raises JobNotFoundError for unknown ids."""
        return self._to_dto(self._get_model(job_id))

    def get_by_name(self, tenant_id: UUID, name: str) -> JobDefinition | None:
        model = self._session.execute(
            select(JobDefinitionModel).where(
                JobDefinitionModel.tenant_id == tenant_id,
                JobDefinitionModel.name == name,
            )
        ).scalar_one_or_none()
        return self._to_dto(model) if model is not None else None

    def list_jobs(
        self,
        tenant_id: UUID,
        enabled: bool | None = None,
    ) -> tuple[JobDefinition, ...]:
        stmt = select(JobDefinitionModel).where(
            JobDefinitionModel.tenant_id == tenant_id,
        )
        if enabled is not None:
            stmt = stmt.where(JobDefinitionModel.enabled.is_(enabled))
        models = self._session.execute(
            stmt.order_by(JobDefinitionModel.name)
        ).scalars().all()
        return tuple(self._to_dto(m) for m in models)

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    def _get_model(self, job_id: UUID) -> JobDefinitionModel:
        model = self._session.get(JobDefinitionModel, job_id)
        if model is None:
            raise JobNotFoundError(str(job_id))
        return model

    def _to_dto(self, model: JobDefinitionModel) -> JobDefinition:
        return model.to_dto(config=self._configs.decode(model.job_type, model.config))
