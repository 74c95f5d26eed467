"""
Tests for the engine configuration loader.

Validates EngineSettings parsing, job definition parsing, the
JOBS_DATABASE_URL override, and loading the example YAML file.
"""

from dataclasses import FrozenInstanceError
from pathlib import Path
from uuid import UUID

import pytest
import yaml

from jobs_config import (
    EngineSettings,
    JobDefinitionDef,
    compute_checksum,
    load_engine_config,
    parse_engine_settings,
    parse_job_definition,
)
from jobs_config.loader import DATABASE_URL_ENV
from jobs_kernel.exceptions import ConfigurationError

EXAMPLE_CONFIG = Path(__file__).resolve().parents[2] / "config" / "engine.example.yaml"
TENANT = "3f6d2a8e-4c1b-4f7e-9a52-0d8b1c7e5a10"


@pytest.fixture(autouse=True)
def _no_database_url_override(monkeypatch):
    monkeypatch.delenv(DATABASE_URL_ENV, raising=False)


def _write(tmp_path, data):
    path = tmp_path / "engine.yaml"
    path.write_text(yaml.safe_dump(data))
    return path


# =============================================================================
# EngineSettings
# =============================================================================


class TestParseEngineSettings:
    def test_defaults(self):
        settings = parse_engine_settings(None)
        assert settings == EngineSettings()
        assert settings.lock_ttl.total_seconds() == 300

    def test_overrides(self):
        settings = parse_engine_settings({"lock_ttl_seconds": 90, "max_workers": 2})
        assert settings.lock_ttl_seconds == 90
        assert settings.max_workers == 2

    def test_frozen(self):
        settings = EngineSettings()
        with pytest.raises(FrozenInstanceError):
            settings.due_limit = 5  # type: ignore[misc]

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="unknown settings"):
            parse_engine_settings({"lock_ttl": 90}, source="engine.yaml")

    @pytest.mark.parametrize("key,value", [
        ("lock_ttl_seconds", 0),
        ("tick_interval_seconds", -5),
        ("due_limit", "ten"),
        ("default_max_retries", -1),
        ("max_workers", 0),
        ("retry_base_delay_seconds", True),
    ])
    def test_bad_values(self, key, value):
        with pytest.raises(ConfigurationError):
            parse_engine_settings({key: value})

    def test_zero_retries_allowed(self):
        assert parse_engine_settings({"default_max_retries": 0}).default_max_retries == 0

    def test_backoff_cap_below_base(self):
        with pytest.raises(ConfigurationError, match="retry_max_delay_seconds"):
            parse_engine_settings({
                "retry_base_delay_seconds": 600,
                "retry_max_delay_seconds": 60,
            })

    def test_environment_overrides_database_url(self, monkeypatch):
        monkeypatch.setenv(DATABASE_URL_ENV, "postgresql://jobs@db/jobs")
        settings = parse_engine_settings({"database_url": "sqlite:///local.db"})
        assert settings.database_url == "postgresql://jobs@db/jobs"


# =============================================================================
# Job definitions
# =============================================================================


class TestParseJobDefinition:
    def test_minimal(self):
        job = parse_job_definition({
            "tenant_id": TENANT,
            "name": "adhoc_export",
            "job_type": "reports",
        })
        assert isinstance(job, JobDefinitionDef)
        assert job.tenant_id == UUID(TENANT)
        assert job.cron_schedule is None
        assert job.config == {}
        assert job.enabled is True
        assert job.max_retries is None

    @pytest.mark.parametrize("missing", ["tenant_id", "name", "job_type"])
    def test_missing_required(self, missing):
        data = {"tenant_id": TENANT, "name": "x", "job_type": "reports"}
        del data[missing]
        with pytest.raises(ConfigurationError, match=missing):
            parse_job_definition(data)

    def test_bad_tenant(self):
        with pytest.raises(ConfigurationError, match="invalid tenant_id"):
            parse_job_definition({"tenant_id": "acme", "name": "x", "job_type": "reports"})

    def test_config_must_be_mapping(self):
        with pytest.raises(ConfigurationError, match="must be a mapping"):
            parse_job_definition({
                "tenant_id": TENANT, "name": "x", "job_type": "reports", "config": [1],
            })


# =============================================================================
# load_engine_config
# =============================================================================


class TestLoadEngineConfig:
    def test_example_file(self):
        config = load_engine_config(EXAMPLE_CONFIG)

        assert config.settings.runner_identity == "scheduler-1"
        assert config.settings.max_workers == 4
        assert [j.name for j in config.jobs] == [
            "daily_recurring_tasks",
            "task_reminders",
            "hourly_metrics",
            "weekly_report",
            "backfill_metrics",
        ]
        assert config.jobs[3].max_retries == 5
        assert config.jobs[4].enabled is False
        assert len(config.checksum) == 64

    def test_example_jobs_register(self, db_session, clock, actor_id):
        from jobs_engine.orchestrator import JobsOrchestrator

        config = load_engine_config(EXAMPLE_CONFIG)
        orchestrator = JobsOrchestrator(db_session, settings=config.settings, clock=clock)

        job_ids = orchestrator.sync_definitions(config, actor_id)

        assert len(job_ids) == 5
        weekly = orchestrator.registry.get(job_ids[3])
        assert weekly.config.recipients == ("ops@example.com",)

    def test_duplicate_names_rejected(self, tmp_path):
        job = {"tenant_id": TENANT, "name": "dup", "job_type": "reports"}
        path = _write(tmp_path, {"jobs": [job, dict(job)]})
        with pytest.raises(ConfigurationError, match="duplicate"):
            load_engine_config(path)

    def test_same_name_in_other_tenant_allowed(self, tmp_path):
        path = _write(tmp_path, {"jobs": [
            {"tenant_id": TENANT, "name": "dup", "job_type": "reports"},
            {"tenant_id": "00000000-0000-0000-0000-000000000001", "name": "dup", "job_type": "reports"},
        ]})
        assert len(load_engine_config(path).jobs) == 2

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        config = load_engine_config(path)
        assert config.jobs == ()
        assert config.settings == EngineSettings()

    def test_error_names_source(self, tmp_path):
        path = _write(tmp_path, {"settings": {"bogus": 1}})
        with pytest.raises(ConfigurationError) as exc_info:
            load_engine_config(path)
        assert exc_info.value.source == str(path)

    def test_jobs_must_be_list(self, tmp_path):
        path = _write(tmp_path, {"jobs": {"name": "x"}})
        with pytest.raises(ConfigurationError, match="must be a list"):
            load_engine_config(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_engine_config(tmp_path / "nope.yaml")


class TestChecksum:
    def test_key_order_does_not_matter(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_content_changes_checksum(self):
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})
