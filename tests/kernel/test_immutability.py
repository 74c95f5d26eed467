"""
Append-only enforcement for job history (jobs_kernel/db/immutability.py).

Log lines, idempotency records and finished executions are the operator's
record of what the engine did.  These tests go around the services and
mutate rows through the ORM directly, the way a careless maintenance
script would.
"""

import pytest

from jobs_kernel.exceptions import ImmutabilityViolationError

from jobs_engine.bodies.base import JobOutcome
from jobs_engine.domain.types import ExecutionStatus
from jobs_engine.models.jobs import (
    DeadLetterEntryModel,
    IdempotencyRecordModel,
    JobExecutionModel,
    JobLogModel,
)


@pytest.fixture
def completed_execution(make_job, scripted_body, runner, actor_id, db_session):
    scripted_body("noop")
    job_id = make_job()
    result = runner.run_job(job_id, actor_id)
    assert result.status == ExecutionStatus.COMPLETED
    return db_session.get(JobExecutionModel, result.execution_id)


@pytest.fixture
def failed_execution(make_job, scripted_body, runner, actor_id, db_session):
    scripted_body("noop", [JobOutcome.failure("bad input", should_retry=False)])
    job_id = make_job()
    result = runner.run_job(job_id, actor_id)
    assert result.status == ExecutionStatus.FAILED
    return db_session.get(JobExecutionModel, result.execution_id)


class TestLogEntriesAppendOnly:
    def test_update_blocked(self, completed_execution, db_session):
        entry = db_session.query(JobLogModel).filter_by(
            execution_id=completed_execution.id
        ).first()
        entry.message = "rewritten"
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()
        assert exc_info.value.entity_type == "JobLog"
        db_session.rollback()

    def test_delete_blocked(self, completed_execution, db_session):
        entry = db_session.query(JobLogModel).filter_by(
            execution_id=completed_execution.id
        ).first()
        db_session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
        db_session.rollback()


class TestExecutionHistory:
    def test_completed_execution_frozen(self, completed_execution, db_session):
        completed_execution.output_result = {"forged": True}
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            db_session.flush()
        assert "completed" in exc_info.value.reason
        db_session.rollback()

    def test_failed_execution_cannot_be_reopened(self, failed_execution, db_session):
        failed_execution.status = ExecutionStatus.RUNNING.value
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
        db_session.rollback()

    def test_execution_delete_blocked(self, completed_execution, db_session):
        db_session.delete(completed_execution)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
        db_session.rollback()


class TestDeadLetterEntries:
    def test_delete_blocked(self, failed_execution, db_session):
        entry = db_session.query(DeadLetterEntryModel).filter_by(
            execution_id=failed_execution.id
        ).one()
        db_session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
        db_session.rollback()


class TestIdempotencyRecords:
    def test_update_and_delete_blocked(self, idempotency_store, db_session, make_job):
        job_id = make_job()
        execution_id = job_id  # any UUID; the table has no foreign keys
        idempotency_store.record("noop:t:2026-02-01", job_id, execution_id, {"n": 1})
        db_session.commit()

        record = db_session.query(IdempotencyRecordModel).one()
        record.result = {"n": 2}
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
        db_session.rollback()

        record = db_session.query(IdempotencyRecordModel).one()
        db_session.delete(record)
        with pytest.raises(ImmutabilityViolationError):
            db_session.flush()
        db_session.rollback()
