"""
Tests for jobs_engine.services.registry -- JobRegistry.

Validates register() upsert and validation, list_due() eligibility and
ordering, update_schedule(), and the query helpers.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from jobs_kernel.exceptions import (
    InvalidCronExpressionError,
    InvalidJobConfigError,
    JobNotFoundError,
    UnknownJobTypeError,
)

from jobs_engine.domain.config_types import RemindersConfig
from jobs_engine.domain.types import ExecutionStatus


def _start(lock_manager, tracker, job_id, actor_id):
    execution_id = uuid4()
    assert lock_manager.acquire(job_id, execution_id)
    return tracker.start(job_id, None, actor_id)


# =============================================================================
# register()
# =============================================================================


class TestRegister:
    def test_register_creates_definition(self, registry, tenant_id, actor_id):
        job_id = registry.register(
            tenant_id=tenant_id,
            name="morning_reminders",
            job_type="reminders",
            cron_schedule="*/15 * * * *",
            config={"reminder_window_minutes": 45},
            enabled=True,
            actor_id=actor_id,
        )

        job = registry.get(job_id)
        assert job.tenant_id == tenant_id
        assert job.name == "morning_reminders"
        assert job.cron_schedule == "*/15 * * * *"
        assert job.config == RemindersConfig(reminder_window_minutes=45)
        assert job.max_retries == 3
        assert job.created_by == actor_id
        assert job.last_run_at is None
        assert job.next_run_at is None

    def test_reregister_updates_in_place(self, registry, tenant_id, actor_id):
        first = registry.register(
            tenant_id, "census", "reports", "0 6 * * *",
            {"report_types": ["census"]}, True, actor_id, max_retries=5,
        )
        second = registry.register(
            tenant_id, "census", "reports", "0 7 * * *",
            {"report_types": ["census", "staffing"]}, False, actor_id,
        )

        assert first == second
        job = registry.get(first)
        assert job.cron_schedule == "0 7 * * *"
        assert job.config.report_types == ("census", "staffing")
        assert job.enabled is False
        assert job.max_retries == 5
        assert len(registry.list_jobs(tenant_id)) == 1

    def test_same_name_in_different_tenants(self, registry, actor_id):
        a = registry.register(uuid4(), "nightly", "noop", None, None, True, actor_id)
        b = registry.register(uuid4(), "nightly", "noop", None, None, True, actor_id)
        assert a != b

    def test_config_stored_normalized(self, registry, tenant_id, actor_id, db_session):
        from jobs_engine.models.jobs import JobDefinitionModel

        job_id = registry.register(
            tenant_id, "agg", "aggregation", None, {"period_hours": 12}, True, actor_id,
        )
        stored = db_session.get(JobDefinitionModel, job_id).config
        assert stored["period_hours"] == 12
        assert isinstance(stored["aggregation_types"], list)

    def test_unknown_job_type(self, registry, tenant_id, actor_id):
        with pytest.raises(UnknownJobTypeError):
            registry.register(tenant_id, "x", "payroll", None, None, True, actor_id)

    def test_invalid_config(self, registry, tenant_id, actor_id):
        with pytest.raises(InvalidJobConfigError):
            registry.register(
                tenant_id, "x", "reminders", None,
                {"critical_threshold_minutes": 10}, True, actor_id,
            )

    def test_invalid_cron(self, registry, tenant_id, actor_id):
        with pytest.raises(InvalidCronExpressionError):
            registry.register(tenant_id, "x", "noop", "every day", None, True, actor_id)

    def test_negative_max_retries(self, registry, tenant_id, actor_id):
        with pytest.raises(ValueError):
            registry.register(
                tenant_id, "x", "noop", None, None, True, actor_id, max_retries=-1,
            )

    def test_rejected_registration_writes_nothing(self, registry, tenant_id, actor_id):
        with pytest.raises(InvalidCronExpressionError):
            registry.register(tenant_id, "x", "noop", "bad", None, True, actor_id)
        assert registry.get_by_name(tenant_id, "x") is None

    def test_logs_registration(self, registry, tenant_id, actor_id, captured_logs):
        registry.register(tenant_id, "x", "noop", None, None, True, actor_id)
        registry.register(tenant_id, "x", "noop", None, None, True, actor_id)
        messages = [r["message"] for r in captured_logs()]
        assert "job_registered" in messages
        assert "job_reregistered" in messages


# =============================================================================
# list_due()
# =============================================================================


class TestListDue:
    def test_new_jobs_are_due(self, registry, make_job):
        on_demand = make_job("on_demand")
        scheduled = make_job("scheduled", cron_schedule="0 6 * * *")
        due_ids = {job.job_id for job in registry.list_due()}
        assert due_ids == {on_demand, scheduled}

    def test_disabled_not_due(self, registry, make_job):
        make_job("off", enabled=False)
        assert registry.list_due() == ()

    def test_next_run_in_future_not_due(self, registry, make_job, clock, actor_id):
        job_id = make_job(cron_schedule="0 6 * * *")
        registry.update_schedule(job_id, clock.now() + timedelta(hours=1), actor_id)
        assert registry.list_due() == ()

        clock.advance(3600)
        assert [j.job_id for j in registry.list_due()] == [job_id]

    def test_running_execution_blocks(self, registry, make_job, lock_manager, tracker, actor_id):
        job_id = make_job()
        _start(lock_manager, tracker, job_id, actor_id)
        assert registry.list_due() == ()

    def test_null_next_run_due_after_it_ran(
        self, registry, make_job, lock_manager, tracker, actor_id, clock,
    ):
        job_id = make_job()
        execution_id = _start(lock_manager, tracker, job_id, actor_id)
        tracker.complete(execution_id, None, actor_id)
        clock.advance(3600)

        job = registry.get(job_id)
        assert job.next_run_at is None
        assert job.last_run_at is not None
        assert [j.job_id for j in registry.list_due()] == [job_id]

    def test_set_enabled_false_stops_null_next_run(
        self, registry, make_job, actor_id,
    ):
        job_id = make_job()
        registry.set_enabled(job_id, False, actor_id)
        assert registry.list_due() == ()

    def test_backing_off_not_due_until_backoff_elapses(
        self, registry, make_job, lock_manager, tracker, actor_id, clock,
    ):
        job_id = make_job(cron_schedule="* * * * *")
        execution_id = _start(lock_manager, tracker, job_id, actor_id)
        failed = tracker.fail(execution_id, "timeout", True, actor_id)
        assert failed.status == ExecutionStatus.RETRYING
        # Even with next_run_at in the past, the backoff wins.
        registry.update_schedule(job_id, clock.now() - timedelta(minutes=5), actor_id)
        assert registry.list_due() == ()

        clock.advance(60)
        assert [j.job_id for j in registry.list_due()] == [job_id]

    def test_elapsed_retry_due_regardless_of_schedule(
        self, registry, make_job, lock_manager, tracker, actor_id, clock,
    ):
        job_id = make_job(cron_schedule="0 6 * * *")
        registry.update_schedule(job_id, clock.now() + timedelta(days=1), actor_id)
        execution_id = _start(lock_manager, tracker, job_id, actor_id)
        tracker.fail(execution_id, "timeout", True, actor_id)

        clock.advance(61)
        assert [j.job_id for j in registry.list_due()] == [job_id]

    def test_ordering_nulls_first_then_next_run_then_name(
        self, registry, make_job, clock, actor_id,
    ):
        later = make_job("b_later", cron_schedule="* * * * *")
        earlier = make_job("c_earlier", cron_schedule="* * * * *")
        never_z = make_job("z_never", cron_schedule="* * * * *")
        never_a = make_job("a_never", cron_schedule="* * * * *")
        registry.update_schedule(later, clock.now() - timedelta(minutes=1), actor_id)
        registry.update_schedule(earlier, clock.now() - timedelta(minutes=10), actor_id)

        assert [j.job_id for j in registry.list_due()] == [never_a, never_z, earlier, later]

    def test_limit(self, registry, make_job):
        for i in range(5):
            make_job(f"job_{i}")
        assert len(registry.list_due(limit=3)) == 3

    def test_lists_across_tenants(self, registry, make_job):
        make_job("a", tenant=uuid4())
        make_job("b", tenant=uuid4())
        assert len(registry.list_due()) == 2


# =============================================================================
# update_schedule() and queries
# =============================================================================


class TestUpdateSchedule:
    def test_persists_next_run(self, registry, make_job, clock, actor_id):
        job_id = make_job(cron_schedule="0 6 * * *")
        target = clock.now() + timedelta(hours=18)
        registry.update_schedule(job_id, target, actor_id)
        assert registry.get(job_id).next_run_at == target

    def test_no_cron_enforcement(self, registry, make_job, clock, actor_id):
        job_id = make_job(cron_schedule="0 6 * * *")
        odd_time = clock.now() + timedelta(minutes=17)
        registry.update_schedule(job_id, odd_time, actor_id)
        assert registry.get(job_id).next_run_at == odd_time

    def test_clear_next_run(self, registry, make_job, clock, actor_id):
        job_id = make_job()
        registry.update_schedule(job_id, clock.now(), actor_id)
        registry.update_schedule(job_id, None, actor_id)
        assert registry.get(job_id).next_run_at is None

    def test_unknown_job(self, registry, clock, actor_id):
        with pytest.raises(JobNotFoundError):
            registry.update_schedule(uuid4(), clock.now(), actor_id)


class TestQueries:
    def test_get_unknown(self, registry):
        with pytest.raises(JobNotFoundError):
            registry.get(uuid4())

    def test_get_by_name(self, registry, make_job, tenant_id):
        job_id = make_job("named")
        assert registry.get_by_name(tenant_id, "named").job_id == job_id
        assert registry.get_by_name(uuid4(), "named") is None

    def test_list_jobs_filters(self, registry, make_job, tenant_id):
        make_job("on")
        make_job("off", enabled=False)
        make_job("other_tenant", tenant=uuid4())

        assert [j.name for j in registry.list_jobs(tenant_id)] == ["off", "on"]
        assert [j.name for j in registry.list_jobs(tenant_id, enabled=True)] == ["on"]

    def test_set_enabled(self, registry, make_job, actor_id):
        job_id = make_job()
        job = registry.set_enabled(job_id, False, actor_id)
        assert job.enabled is False
        assert registry.list_due() == ()
