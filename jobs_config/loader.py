"""
Configuration Loader (``jobs_config.loader``).

Responsibility
--------------
Loads the engine YAML file and parses it into typed ``jobs_config.schema``
dataclass instances.

File layout::

    settings:
      database_url: postgresql://jobs@localhost/jobs
      lock_ttl_seconds: 300
    jobs:
      - tenant_id: 6f1c...
        name: daily_recurring_tasks
        job_type: recurring_tasks
        cron_schedule: "0 6 * * *"
        config: {day_start_hour: 7}

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Unknown settings keys and malformed values raise ``ConfigurationError``
  naming the source file; nothing is silently ignored.
* ``JOBS_DATABASE_URL`` in the environment overrides
  ``settings.database_url``.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the raw
  document for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import dataclasses
import hashlib
import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from uuid import UUID

import yaml

from jobs_kernel.exceptions import ConfigurationError

from jobs_config.schema import EngineConfig, EngineSettings, JobDefinitionDef

DATABASE_URL_ENV = "JOBS_DATABASE_URL"

_INT_SETTINGS = frozenset({
    "lock_ttl_seconds",
    "retry_base_delay_seconds",
    "retry_max_delay_seconds",
    "default_max_retries",
    "tick_interval_seconds",
    "due_limit",
})
_POSITIVE_SETTINGS = _INT_SETTINGS - {"default_max_retries"}


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def parse_engine_settings(
    data: Mapping[str, Any] | None,
    source: str = "<settings>",
) -> EngineSettings:
    """Parse EngineSettings from a dict; missing keys take defaults."""
    data = dict(data or {})
    known = {f.name for f in dataclasses.fields(EngineSettings)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(source, f"unknown settings: {sorted(unknown)}")

    for key in _INT_SETTINGS & set(data):
        value = data[key]
        if not isinstance(value, int) or isinstance(value, bool):
            raise ConfigurationError(source, f"{key} must be an integer, got {value!r}")
        if key in _POSITIVE_SETTINGS and value <= 0:
            raise ConfigurationError(source, f"{key} must be positive, got {value}")
        if value < 0:
            raise ConfigurationError(source, f"{key} must be >= 0, got {value}")

    max_workers = data.get("max_workers")
    if max_workers is not None and (
        not isinstance(max_workers, int) or isinstance(max_workers, bool) or max_workers <= 0
    ):
        raise ConfigurationError(
            source, f"max_workers must be a positive integer, got {max_workers!r}"
        )

    settings = EngineSettings(**data)
    if settings.retry_max_delay_seconds < settings.retry_base_delay_seconds:
        raise ConfigurationError(
            source, "retry_max_delay_seconds must be >= retry_base_delay_seconds"
        )

    env_url = os.environ.get(DATABASE_URL_ENV)
    if env_url:
        settings = dataclasses.replace(settings, database_url=env_url)
    return settings


def parse_job_definition(
    data: Mapping[str, Any],
    source: str = "<jobs>",
) -> JobDefinitionDef:
    """Parse a JobDefinitionDef from a dict.

    Job-type-specific config is validated later, by ``register()``.
    """
    for key in ("tenant_id", "name", "job_type"):
        if key not in data:
            raise ConfigurationError(source, f"job definition missing '{key}'")
    try:
        tenant_id = UUID(str(data["tenant_id"]))
    except ValueError as exc:
        raise ConfigurationError(
            source, f"invalid tenant_id {data['tenant_id']!r}"
        ) from exc

    config = data.get("config") or {}
    if not isinstance(config, Mapping):
        raise ConfigurationError(source, f"config for job '{data['name']}' must be a mapping")

    return JobDefinitionDef(
        tenant_id=tenant_id,
        name=str(data["name"]),
        job_type=str(data["job_type"]),
        cron_schedule=data.get("cron_schedule"),
        config=dict(config),
        enabled=bool(data.get("enabled", True)),
        max_retries=data.get("max_retries"),
    )


def load_engine_config(path: Path) -> EngineConfig:
    """Load and parse the engine configuration file at ``path``."""
    path = Path(path)
    data = load_yaml_file(path)
    source = str(path)
    if not isinstance(data, Mapping):
        raise ConfigurationError(source, "top level must be a mapping")

    jobs_data = data.get("jobs") or []
    if not isinstance(jobs_data, list):
        raise ConfigurationError(source, "'jobs' must be a list")

    jobs = tuple(parse_job_definition(j, source) for j in jobs_data)
    names = [(j.tenant_id, j.name) for j in jobs]
    if len(names) != len(set(names)):
        raise ConfigurationError(source, "duplicate job name within a tenant")

    return EngineConfig(
        settings=parse_engine_settings(data.get("settings"), source),
        jobs=jobs,
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
