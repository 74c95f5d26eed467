"""
Job engine configuration schema.

Defines the human-authored engine configuration: runtime settings for the
engine plus declarative job definitions.  YAML files are parsed into these
types by ``jobs_config.loader``; ``JobsOrchestrator`` consumes them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any
from uuid import UUID

# ---------------------------------------------------------------------------
# Engine settings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineSettings:
    """Runtime knobs for the engine."""

    database_url: str = "sqlite:///jobs.db"
    lock_ttl_seconds: int = 300
    retry_base_delay_seconds: int = 60
    retry_max_delay_seconds: int = 3600
    default_max_retries: int = 3
    tick_interval_seconds: int = 60
    due_limit: int = 100
    max_workers: int | None = None  # None = run bodies inline
    runner_identity: str = "system"
    log_level: str = "INFO"

    @property
    def lock_ttl(self) -> timedelta:
        return timedelta(seconds=self.lock_ttl_seconds)


# ---------------------------------------------------------------------------
# Declarative job definitions
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class JobDefinitionDef:
    """A job declared in configuration, registered via ``register()``."""

    tenant_id: UUID
    name: str
    job_type: str
    cron_schedule: str | None = None
    config: dict[str, Any] = field(default_factory=dict)
    enabled: bool = True
    max_retries: int | None = None


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration loaded from one YAML file."""

    settings: EngineSettings
    jobs: tuple[JobDefinitionDef, ...] = ()
    checksum: str = ""
