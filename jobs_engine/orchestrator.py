"""
JobsOrchestrator -- DI container for the job engine.

Contract:
    Wires every service against one session, one Clock, one EventBus and
    one EngineSettings.  Exposes the operator-facing read surface
    (``get_execution_history``, ``get_logs``, ``get_dead_letter_queue``),
    YAML-driven registration (``sync_definitions``), and factories for a
    JobTrigger whose workers get their own sessions.

Non-goals:
    - Does NOT start the trigger automatically -- caller decides.
    - Does NOT manage session lifecycle -- caller controls commits, except
      inside JobRunner, which owns its own boundaries.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.logging_config import get_logger

from jobs_config.schema import EngineConfig, EngineSettings

from jobs_engine.bodies.base import JobBodyRegistry
from jobs_engine.domain.config_types import (
    ConfigDecoderRegistry,
    default_config_registry,
)
from jobs_engine.domain.retry import RetryPolicy
from jobs_engine.domain.types import DeadLetterEntry, Execution, LogEntry, LogLevel
from jobs_engine.services.dead_letter import DeadLetterQueue
from jobs_engine.services.events import EventBus
from jobs_engine.services.execution_log import ExecutionLogService
from jobs_engine.services.idempotency import IdempotencyStore
from jobs_engine.services.locks import LockManager
from jobs_engine.services.registry import JobRegistry
from jobs_engine.services.runner import JobRunner
from jobs_engine.services.tracker import ExecutionTracker
from jobs_engine.services.trigger import JobTrigger

logger = get_logger("engine.orchestrator")


@dataclass(frozen=True)
class EngineServices:
    """Every service bound to one session."""

    session: Session
    registry: JobRegistry
    locks: LockManager
    execution_log: ExecutionLogService
    idempotency: IdempotencyStore
    dead_letter_queue: DeadLetterQueue
    tracker: ExecutionTracker
    runner: JobRunner


class JobsOrchestrator:
    """DI container for the job engine.

    Contract:
        - ``from_session()`` creates a fully wired orchestrator.
        - ``build_services(session)`` wires a fresh service graph for any
          session (used for trigger workers).
        - ``create_trigger()`` returns a JobTrigger for background use.
    """

    def __init__(
        self,
        session: Session,
        settings: EngineSettings | None = None,
        clock: Clock | None = None,
        config_registry: ConfigDecoderRegistry | None = None,
        bodies: JobBodyRegistry | None = None,
        event_bus: EventBus | None = None,
        actor_id: UUID | None = None,
    ) -> None:
        self._settings = settings or EngineSettings()
        self._clock = clock or SystemClock()
        self._configs = config_registry or default_config_registry()
        self._bodies = bodies if bodies is not None else JobBodyRegistry()
        self._events = event_bus or EventBus()
        self._actor_id = actor_id or uuid4()
        self._retry_policy = RetryPolicy(
            base_delay_seconds=self._settings.retry_base_delay_seconds,
            max_delay_seconds=self._settings.retry_max_delay_seconds,
        )
        self._services = self.build_services(session)

    # -------------------------------------------------------------------------
    # Factory
    # -------------------------------------------------------------------------

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        settings: EngineSettings | None = None,
        bodies: JobBodyRegistry | None = None,
        actor_id: UUID | None = None,
    ) -> JobsOrchestrator:
        return cls(
            session=session,
            settings=settings,
            clock=clock,
            bodies=bodies,
            actor_id=actor_id,
        )

    def build_services(self, session: Session) -> EngineServices:
        """Wire every service against ``session``."""
        clock = self._clock
        registry = JobRegistry(
            session,
            clock,
            self._configs,
            default_max_retries=self._settings.default_max_retries,
        )
        locks = LockManager(session, clock, default_ttl=self._settings.lock_ttl)
        execution_log = ExecutionLogService(session, clock)
        idempotency = IdempotencyStore(session, clock)
        dead_letter_queue = DeadLetterQueue(session, clock, self._events)
        tracker = ExecutionTracker(
            session,
            locks,
            execution_log,
            dead_letter_queue,
            idempotency,
            clock=clock,
            retry_policy=self._retry_policy,
            event_bus=self._events,
        )
        runner = JobRunner(
            session,
            registry,
            locks,
            tracker,
            dead_letter_queue,
            idempotency,
            execution_log,
            self._bodies,
            clock=clock,
            runner_identity=self._settings.runner_identity,
        )
        return EngineServices(
            session=session,
            registry=registry,
            locks=locks,
            execution_log=execution_log,
            idempotency=idempotency,
            dead_letter_queue=dead_letter_queue,
            tracker=tracker,
            runner=runner,
        )

    # -------------------------------------------------------------------------
    # Trigger
    # -------------------------------------------------------------------------

    def create_trigger(
        self,
        session_factory: Callable[[], Session],
        tick_interval_seconds: int | None = None,
        max_workers: int | None = None,
    ) -> JobTrigger:
        """Create a JobTrigger whose runs each get a fresh session."""
        return JobTrigger(
            session_factory=session_factory,
            runner_factory=lambda session: self.build_services(session).runner,
            clock=self._clock,
            actor_id=self._actor_id,
            tick_interval_seconds=(
                tick_interval_seconds
                if tick_interval_seconds is not None
                else self._settings.tick_interval_seconds
            ),
            due_limit=self._settings.due_limit,
            max_workers=(
                max_workers if max_workers is not None else self._settings.max_workers
            ),
        )

    # -------------------------------------------------------------------------
    # Configuration
    # -------------------------------------------------------------------------

    def sync_definitions(
        self,
        config: EngineConfig,
        actor_id: UUID | None = None,
    ) -> tuple[UUID, ...]:
        """Register every job declared in ``config``.  Flushes, never commits."""
        actor = actor_id or self._actor_id
        job_ids = tuple(
            self.registry.register(
                tenant_id=job.tenant_id,
                name=job.name,
                job_type=job.job_type,
                cron_schedule=job.cron_schedule,
                config=job.config,
                enabled=job.enabled,
                actor_id=actor,
                max_retries=job.max_retries,
            )
            for job in config.jobs
        )
        logger.info(
            "job_definitions_synced",
            extra={"count": len(job_ids), "checksum": config.checksum},
        )
        return job_ids

    # -------------------------------------------------------------------------
    # Observability (read-only)
    # -------------------------------------------------------------------------

    def get_execution_history(
        self,
        tenant_id: UUID,
        job_id: UUID | None = None,
        limit: int = 50,
    ) -> tuple[Execution, ...]:
        return self.tracker.get_history(tenant_id, job_id, limit)

    def get_logs(
        self,
        execution_id: UUID,
        level: LogLevel | str | None = None,
    ) -> tuple[LogEntry, ...]:
        return self.execution_log.get_logs(execution_id, min_level=level)

    def get_dead_letter_queue(
        self,
        tenant_id: UUID,
        resolved: bool = False,
    ) -> tuple[DeadLetterEntry, ...]:
        return self.dead_letter_queue.list(tenant_id, resolved)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._services.session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def settings(self) -> EngineSettings:
        return self._settings

    @property
    def actor_id(self) -> UUID:
        return self._actor_id

    @property
    def event_bus(self) -> EventBus:
        return self._events

    @property
    def bodies(self) -> JobBodyRegistry:
        return self._bodies

    @property
    def config_registry(self) -> ConfigDecoderRegistry:
        return self._configs

    @property
    def registry(self) -> JobRegistry:
        return self._services.registry

    @property
    def locks(self) -> LockManager:
        return self._services.locks

    @property
    def tracker(self) -> ExecutionTracker:
        return self._services.tracker

    @property
    def idempotency(self) -> IdempotencyStore:
        return self._services.idempotency

    @property
    def dead_letter_queue(self) -> DeadLetterQueue:
        return self._services.dead_letter_queue

    @property
    def execution_log(self) -> ExecutionLogService:
        return self._services.execution_log

    @property
    def runner(self) -> JobRunner:
        return self._services.runner
