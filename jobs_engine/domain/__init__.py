"""
jobs_engine.domain -- Pure types, retry policy, cron evaluation and typed
job configuration.

ZERO I/O.  All types are frozen dataclasses.
"""

from jobs_engine.domain.config_types import (
    AggregationConfig,
    ConfigDecoderRegistry,
    EmptyConfig,
    RecurringTasksConfig,
    RemindersConfig,
    ReportsConfig,
    default_config_registry,
)
from jobs_engine.domain.retry import RetryDecision, RetryPolicy
from jobs_engine.domain.schedule import CronSpec, next_fire_time, parse_cron
from jobs_engine.domain.types import (
    DeadLetterEntry,
    EventType,
    Execution,
    ExecutionEvent,
    ExecutionStatus,
    IdempotencyRecord,
    JobDefinition,
    JobRunResult,
    Lock,
    LogEntry,
    LogLevel,
    TickResult,
)

__all__ = [
    "AggregationConfig",
    "ConfigDecoderRegistry",
    "CronSpec",
    "DeadLetterEntry",
    "EmptyConfig",
    "EventType",
    "Execution",
    "ExecutionEvent",
    "ExecutionStatus",
    "IdempotencyRecord",
    "JobDefinition",
    "JobRunResult",
    "Lock",
    "LogEntry",
    "LogLevel",
    "RecurringTasksConfig",
    "RemindersConfig",
    "ReportsConfig",
    "RetryDecision",
    "RetryPolicy",
    "TickResult",
    "default_config_registry",
    "next_fire_time",
    "parse_cron",
]
