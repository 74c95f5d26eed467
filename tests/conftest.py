"""
Pytest fixtures for the job engine test suite.

Provides:
- In-memory SQLite sessions (StaticPool, so sessions opened by trigger
  worker threads see the same database)
- File-backed SQLite engines for multi-runner scenarios
- DeterministicClock, actor and tenant fixtures
- Fully wired engine services and a scripted job body
- Structured log capture
"""

import json
import logging
from collections.abc import Iterable
from datetime import datetime, timezone
from io import StringIO
from typing import Any
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from jobs_kernel.db.base import Base
from jobs_kernel.db.immutability import register_immutability_listeners
from jobs_kernel.domain.clock import DeterministicClock
from jobs_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

from jobs_engine.bodies.base import JobBodyRegistry, JobContext, JobOutcome
from jobs_engine.domain.config_types import EmptyConfig, default_config_registry
from jobs_engine.domain.retry import RetryPolicy
from jobs_engine.models import import_all_models
from jobs_engine.services.dead_letter import DeadLetterQueue
from jobs_engine.services.events import EventBus
from jobs_engine.services.execution_log import ExecutionLogService
from jobs_engine.services.idempotency import IdempotencyStore
from jobs_engine.services.locks import LockManager
from jobs_engine.services.registry import JobRegistry
from jobs_engine.services.runner import JobRunner
from jobs_engine.services.tracker import ExecutionTracker

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

START_TIME = datetime(2026, 2, 1, 12, 0, 0, tzinfo=timezone.utc)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True, scope="session")
def _immutability_listeners():
    register_immutability_listeners()
    yield


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture jobs_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, runner):
            runner.run_job(...)
            logs = captured_logs()
            assert any(r["message"] == "execution_completed" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("jobs_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def engine():
    """In-memory SQLite engine shared by every session of one test."""
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    import_all_models()
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, expire_on_commit=False)


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def file_engine_factory(tmp_path):
    """
    Build independent engines on one SQLite file.

    Each engine stands in for a separate runner process: its own pool, its
    own connections, and only the database file in common.
    """
    path = tmp_path / "jobs.db"
    engines = []

    def _make():
        eng = create_engine(
            f"sqlite:///{path}",
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        if not engines:
            import_all_models()
            Base.metadata.create_all(eng)
        engines.append(eng)
        return eng

    yield _make

    for eng in engines:
        eng.dispose()


# =============================================================================
# Identity / time fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(fixed_time=START_TIME)


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


@pytest.fixture
def tenant_id():
    return uuid4()


# =============================================================================
# Service fixtures
# =============================================================================


@pytest.fixture
def config_registry():
    registry = default_config_registry()
    registry.register("noop", EmptyConfig)
    return registry


@pytest.fixture
def event_bus():
    return EventBus()


@pytest.fixture
def retry_policy():
    return RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600)


@pytest.fixture
def registry(db_session, clock, config_registry):
    return JobRegistry(db_session, clock, config_registry)


@pytest.fixture
def lock_manager(db_session, clock):
    return LockManager(db_session, clock)


@pytest.fixture
def execution_log(db_session, clock):
    return ExecutionLogService(db_session, clock)


@pytest.fixture
def idempotency_store(db_session, clock):
    return IdempotencyStore(db_session, clock)


@pytest.fixture
def dead_letter_queue(db_session, clock, event_bus):
    return DeadLetterQueue(db_session, clock, event_bus)


@pytest.fixture
def tracker(
    db_session,
    lock_manager,
    execution_log,
    dead_letter_queue,
    idempotency_store,
    clock,
    retry_policy,
    event_bus,
):
    return ExecutionTracker(
        db_session,
        lock_manager,
        execution_log,
        dead_letter_queue,
        idempotency_store,
        clock=clock,
        retry_policy=retry_policy,
        event_bus=event_bus,
    )


@pytest.fixture
def bodies():
    return JobBodyRegistry()


@pytest.fixture
def runner(
    db_session,
    registry,
    lock_manager,
    tracker,
    dead_letter_queue,
    idempotency_store,
    execution_log,
    bodies,
    clock,
):
    return JobRunner(
        db_session,
        registry,
        lock_manager,
        tracker,
        dead_letter_queue,
        idempotency_store,
        execution_log,
        bodies,
        clock=clock,
        runner_identity="runner-test",
    )


# =============================================================================
# Job helpers
# =============================================================================


class ScriptedBody:
    """
    Job body that plays back a fixed script of results.

    Each script item is a JobOutcome to return or an exception to raise.
    Once the script is exhausted every further run succeeds.
    """

    def __init__(self, job_type: str, script: Iterable[Any] = ()):
        self._job_type = job_type
        self._script = list(script)
        self.contexts: list[JobContext] = []

    @property
    def job_type(self) -> str:
        return self._job_type

    @property
    def calls(self) -> int:
        return len(self.contexts)

    def run(self, context: JobContext) -> JobOutcome:
        self.contexts.append(context)
        if not self._script:
            return JobOutcome.ok({"run": self.calls})
        step = self._script.pop(0)
        if isinstance(step, BaseException):
            raise step
        return step


@pytest.fixture
def scripted_body(bodies):
    """Register a ScriptedBody for ``job_type`` and return it."""

    def _make(job_type: str = "noop", script: Iterable[Any] = ()) -> ScriptedBody:
        body = ScriptedBody(job_type, script)
        bodies.register(body)
        return body

    return _make


@pytest.fixture
def make_job(registry, db_session, tenant_id, actor_id):
    """Register a job and commit it; returns the job id."""

    def _make(
        name: str = "test_job",
        job_type: str = "noop",
        cron_schedule: str | None = None,
        config: dict[str, Any] | None = None,
        enabled: bool = True,
        max_retries: int | None = None,
        tenant=None,
    ):
        job_id = registry.register(
            tenant_id=tenant or tenant_id,
            name=name,
            job_type=job_type,
            cron_schedule=cron_schedule,
            config=config,
            enabled=enabled,
            actor_id=actor_id,
            max_retries=max_retries,
        )
        db_session.commit()
        return job_id

    return _make
