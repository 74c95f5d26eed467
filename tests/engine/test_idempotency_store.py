"""Tests for jobs_engine.services.idempotency -- IdempotencyStore."""

from datetime import date
from uuid import UUID, uuid4

from jobs_engine.services.idempotency import IdempotencyStore

TENANT = UUID("6f1c2d3e-0000-4000-8000-000000000001")


class TestKeys:
    def test_compute_key(self):
        key = IdempotencyStore.compute_key("recurring_tasks", TENANT, "2026-02-01")
        assert key == f"recurring_tasks:{TENANT}:2026-02-01"

    def test_daily_natural_key(self):
        assert IdempotencyStore.daily_natural_key(date(2026, 2, 1)) == "2026-02-01"


class TestLookupAndRecord:
    def test_lookup_missing(self, idempotency_store):
        assert idempotency_store.lookup("nothing:here:yet") is None

    def test_record_then_lookup(self, idempotency_store, clock):
        job_id, execution_id = uuid4(), uuid4()
        key = IdempotencyStore.compute_key("reports", TENANT, "2026-W05")

        assert idempotency_store.record(key, job_id, execution_id, {"sent": 12})

        stored = idempotency_store.lookup(key)
        assert stored.job_id == job_id
        assert stored.execution_id == execution_id
        assert stored.result == {"sent": 12}
        assert stored.created_at == clock.now()

    def test_insert_if_absent(self, idempotency_store):
        key = "reports:t:2026-W05"
        first_execution = uuid4()
        assert idempotency_store.record(key, uuid4(), first_execution, {"n": 1})
        assert not idempotency_store.record(key, uuid4(), uuid4(), {"n": 2})

        stored = idempotency_store.lookup(key)
        assert stored.execution_id == first_execution
        assert stored.result == {"n": 1}

    def test_null_result(self, idempotency_store):
        idempotency_store.record("noop:t:k", uuid4(), uuid4(), None)
        assert idempotency_store.lookup("noop:t:k").result is None
