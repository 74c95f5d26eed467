"""Tests for jobs_engine.services.execution_log -- ExecutionLogService."""

from uuid import uuid4

import pytest

from jobs_kernel.exceptions import ExecutionNotFoundError

from jobs_engine.domain.types import LogLevel


@pytest.fixture
def execution_id(make_job, lock_manager, tracker, actor_id):
    job_id = make_job()
    lock_manager.acquire(job_id, uuid4())
    return tracker.start(job_id, None, actor_id)


class TestAppend:
    def test_append_assigns_increasing_seq(self, execution_log, execution_id, clock):
        first = execution_log.append(execution_id, LogLevel.INFO, "step one")
        second = execution_log.append(execution_id, "debug", "step two", {"rows": 3})

        assert second.seq == first.seq + 1
        assert second.level == LogLevel.DEBUG
        assert second.metadata == {"rows": 3}
        assert second.logged_at == clock.now()

    def test_seq_is_per_execution(
        self, execution_log, execution_id, make_job, lock_manager, tracker, actor_id,
    ):
        other_job = make_job("other")
        lock_manager.acquire(other_job, uuid4())
        other_execution = tracker.start(other_job, None, actor_id)

        # tracker.start() already wrote one line to each stream
        assert execution_log.append(execution_id, "info", "a").seq == 2
        assert execution_log.append(other_execution, "info", "b").seq == 2

    def test_tenant_copied_from_execution(self, execution_log, execution_id, tenant_id):
        assert execution_log.append(execution_id, "warn", "slow").tenant_id == tenant_id

    def test_unknown_execution(self, execution_log):
        with pytest.raises(ExecutionNotFoundError):
            execution_log.append(uuid4(), LogLevel.INFO, "orphan")

    def test_unknown_level(self, execution_log, execution_id):
        with pytest.raises(ValueError):
            execution_log.append(execution_id, "fatal", "nope")

    def test_mirrored_to_structured_logger(self, execution_log, execution_id, captured_logs):
        execution_log.append(execution_id, LogLevel.WARN, "disk nearly full", {"pct": 93})

        records = [
            r for r in captured_logs()
            if r["message"] == "execution_log"
            and r["log_message"] == "disk nearly full"
        ]
        assert len(records) == 1
        assert records[0]["level"] == "WARNING"
        assert records[0]["log_message"] == "disk nearly full"
        assert records[0]["log_metadata"] == {"pct": 93}
        assert records[0]["execution_id"] == str(execution_id)


class TestGetLogs:
    def test_returns_append_order(self, execution_log, execution_id):
        execution_log.append(execution_id, "info", "second")
        execution_log.append(execution_id, "error", "third")

        messages = [e.message for e in execution_log.get_logs(execution_id)]
        assert messages == ["Execution started", "second", "third"]

    def test_min_level_filter(self, execution_log, execution_id):
        execution_log.append(execution_id, "debug", "noise")
        execution_log.append(execution_id, "warn", "careful")
        execution_log.append(execution_id, "error", "broken")

        warn_up = execution_log.get_logs(execution_id, min_level=LogLevel.WARN)
        assert [e.message for e in warn_up] == ["careful", "broken"]
        assert len(execution_log.get_logs(execution_id, min_level="debug")) == 4

    def test_unknown_execution_has_no_logs(self, execution_log):
        assert execution_log.get_logs(uuid4()) == ()
