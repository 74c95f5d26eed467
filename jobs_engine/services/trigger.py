"""
JobTrigger -- one polling tick of the external scheduler surface.

Contract:
    ``tick()`` reaps orphaned executions, asks ``JobRegistry.list_due()``
    for candidates, runs each through ``JobRunner.run_job()``, and after a
    terminal outcome persists the next fire time via ``update_schedule()``
    (the cron expression's next match).  An on-demand job (no cron
    expression) is disabled after its terminal run, so it runs once per
    registration or ``set_enabled(True)``.
    ``start()`` / ``stop()`` drive ``tick()`` from a background thread for
    single-process deployments; an external ticker may call ``tick()``
    directly instead.

Concurrency:
    Every job run uses its own session.  With ``max_workers`` set, runs go
    to a ThreadPoolExecutor so one slow body does not hold up the rest of
    the tick.  Any number of triggers in any number of processes may tick
    at once: the lock claim decides who runs a job.

Non-goals:
    - NOT a distributed scheduler (no leader election needed, none provided).
    - Retrying executions keep their schedule; ``update_schedule()`` runs
      only after completed/failed.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from jobs_kernel.domain.clock import Clock, SystemClock
from jobs_kernel.logging_config import get_logger

from jobs_engine.domain.schedule import next_fire_time
from jobs_engine.domain.types import (
    ExecutionStatus,
    JobDefinition,
    JobRunResult,
    TickResult,
)
from jobs_engine.services.runner import JobRunner

logger = get_logger("engine.trigger")

DEFAULT_DUE_LIMIT = 100


class JobTrigger:
    """Polling trigger for due jobs."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        runner_factory: Callable[[Session], JobRunner],
        clock: Clock | None = None,
        actor_id: UUID | None = None,
        tick_interval_seconds: int = 60,
        due_limit: int = DEFAULT_DUE_LIMIT,
        max_workers: int | None = None,
    ):
        self._session_factory = session_factory
        self._runner_factory = runner_factory
        self._clock = clock or SystemClock()
        self._actor_id = actor_id or uuid4()
        self._tick_interval = tick_interval_seconds
        self._due_limit = due_limit
        self._max_workers = max_workers
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def tick(self) -> TickResult:
        """Run one polling cycle and summarize it."""
        session = self._session_factory()
        try:
            runner = self._runner_factory(session)
            reaped = runner.tracker.reap_orphaned(self._actor_id)
            due = runner.registry.list_due(self._due_limit)
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

        if self._max_workers and len(due) > 1:
            with ThreadPoolExecutor(
                max_workers=self._max_workers,
                thread_name_prefix="job-trigger",
            ) as pool:
                results = list(pool.map(self._run_one, due))
        else:
            results = [self._run_one(job) for job in due]

        run_results = tuple(r for r in results if r is not None)
        statuses = [r.status for r in run_results if r.claimed]
        tick = TickResult(
            due=len(due),
            claimed=sum(1 for r in run_results if r.claimed),
            skipped=sum(1 for r in run_results if not r.claimed),
            completed=statuses.count(ExecutionStatus.COMPLETED),
            retrying=statuses.count(ExecutionStatus.RETRYING),
            failed=statuses.count(ExecutionStatus.FAILED),
            reaped=len(reaped),
            run_results=run_results,
        )

        logger.info(
            "trigger_tick_completed",
            extra={
                "due": tick.due,
                "claimed": tick.claimed,
                "skipped": tick.skipped,
                "completed": tick.completed,
                "retrying": tick.retrying,
                "failed": tick.failed,
                "reaped": tick.reaped,
            },
        )
        return tick

    def start(self) -> None:
        """Start ticking in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="job-trigger",
            daemon=True,
        )
        self._thread.start()
        logger.info("trigger_started", extra={"tick_interval": self._tick_interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current tick to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("trigger_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # -------------------------------------------------------------------------
    # Internal
    # -------------------------------------------------------------------------

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("trigger_tick_failed")
            self._stop_event.wait(timeout=self._tick_interval)

    def _run_one(self, job: JobDefinition) -> JobRunResult | None:
        if self._stop_event.is_set():
            return None

        session = self._session_factory()
        try:
            runner = self._runner_factory(session)
            result = runner.run_job(job.job_id, self._actor_id)
            if result.claimed and result.status is not None and result.status.is_terminal:
                if job.cron_schedule:
                    next_run = next_fire_time(job.cron_schedule, self._clock.now())
                    runner.registry.update_schedule(job.job_id, next_run, self._actor_id)
                else:
                    # One-shot: re-enable (or re-register) to run it again.
                    runner.registry.update_schedule(job.job_id, None, self._actor_id)
                    runner.registry.set_enabled(job.job_id, False, self._actor_id)
                session.commit()
            return result
        except Exception:
            session.rollback()
            logger.exception(
                "trigger_job_run_failed",
                extra={"job_id": str(job.job_id), "job_name": job.name},
            )
            return None
        finally:
            session.close()
