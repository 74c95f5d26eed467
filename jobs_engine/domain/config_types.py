"""
Typed job configuration and the job_type-keyed decoder registry.

Contract:
    Every job_type has exactly one config dataclass.  ``register()`` on the
    JobRegistry decodes the raw mapping through ``ConfigDecoderRegistry``
    before anything is written; the database stores the normalized mapping
    (``encode()`` of the decoded value) and ``JobDefinition.config`` always
    carries the typed value.

Decoding rules:
    - Unknown keys are rejected.
    - Missing keys take the dataclass default; a field without a default is
      required.
    - Values are type-checked against the field annotation (``bool``,
      ``int``, ``str``, ``tuple[str, ...]``).  ``bool`` is not accepted where
      ``int`` is expected.
    - ``validate()`` on the dataclass (when defined) checks cross-field
      rules and returns an error string or None.

Architecture: jobs_engine/domain.  ZERO I/O.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, get_args, get_origin, get_type_hints

from jobs_kernel.exceptions import InvalidJobConfigError, UnknownJobTypeError


# =============================================================================
# Built-in job type configs
# =============================================================================


@dataclass(frozen=True)
class EmptyConfig:
    """Config for job types that take no settings."""


@dataclass(frozen=True)
class RecurringTasksConfig:
    """Daily generation of recurring care tasks."""

    generate_medication_tasks: bool = True
    generate_meal_tasks: bool = True
    day_start_hour: int = 8

    def validate(self) -> str | None:
        if not 0 <= self.day_start_hour <= 23:
            return f"day_start_hour must be within 0-23, got {self.day_start_hour}"
        return None


@dataclass(frozen=True)
class RemindersConfig:
    """Upcoming / overdue / critical reminder thresholds, in minutes."""

    reminder_window_minutes: int = 30
    overdue_threshold_minutes: int = 60
    critical_threshold_minutes: int = 240

    def validate(self) -> str | None:
        for name in (
            "reminder_window_minutes",
            "overdue_threshold_minutes",
            "critical_threshold_minutes",
        ):
            if getattr(self, name) <= 0:
                return f"{name} must be positive"
        if self.critical_threshold_minutes <= self.overdue_threshold_minutes:
            return (
                "critical_threshold_minutes must exceed overdue_threshold_minutes"
            )
        return None


AGGREGATION_TYPES = frozenset({"task_completion", "staffing_hours", "quality_score"})


@dataclass(frozen=True)
class AggregationConfig:
    """Periodic metric aggregation."""

    aggregation_types: tuple[str, ...] = tuple(sorted(AGGREGATION_TYPES))
    period_hours: int = 24

    def validate(self) -> str | None:
        if not self.aggregation_types:
            return "aggregation_types must not be empty"
        unknown = set(self.aggregation_types) - AGGREGATION_TYPES
        if unknown:
            return f"unknown aggregation types: {sorted(unknown)}"
        if self.period_hours <= 0:
            return f"period_hours must be positive, got {self.period_hours}"
        return None


@dataclass(frozen=True)
class ReportsConfig:
    """Scheduled report generation and delivery."""

    report_types: tuple[str, ...]
    recipients: tuple[str, ...] = ()

    def validate(self) -> str | None:
        if not self.report_types:
            return "report_types must not be empty"
        return None


# =============================================================================
# Decoding
# =============================================================================


def _check_value(expected: Any, value: Any) -> bool:
    origin = get_origin(expected)
    if origin is tuple:
        args = get_args(expected)
        item_type = args[0] if args else object
        return isinstance(value, (list, tuple)) and all(
            _check_value(item_type, item) for item in value
        )
    if expected is int:
        return isinstance(value, int) and not isinstance(value, bool)
    if expected is Any or expected is object:
        return True
    return isinstance(value, expected)


def decode_config(job_type: str, config_cls: type, raw: Mapping[str, Any] | None) -> Any:
    """Decode ``raw`` into an instance of the dataclass ``config_cls``.

    Raises:
        InvalidJobConfigError: On unknown keys, missing required keys,
            wrong value types, or a failed ``validate()``.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise InvalidJobConfigError(
            job_type, f"config must be a mapping, got {type(raw).__name__}"
        )

    hints = get_type_hints(config_cls)
    fields = {f.name: f for f in dataclasses.fields(config_cls)}

    unknown = set(raw) - set(fields)
    if unknown:
        raise InvalidJobConfigError(job_type, f"unknown keys: {sorted(unknown)}")

    kwargs: dict[str, Any] = {}
    for name, f in fields.items():
        if name not in raw:
            if (
                f.default is dataclasses.MISSING
                and f.default_factory is dataclasses.MISSING
            ):
                raise InvalidJobConfigError(job_type, f"missing required key '{name}'")
            continue
        value = raw[name]
        if not _check_value(hints[name], value):
            raise InvalidJobConfigError(
                job_type,
                f"'{name}' has wrong type {type(value).__name__}",
            )
        if get_origin(hints[name]) is tuple:
            value = tuple(value)
        kwargs[name] = value

    config = config_cls(**kwargs)

    validate = getattr(config, "validate", None)
    if validate is not None:
        error = validate()
        if error:
            raise InvalidJobConfigError(job_type, error)

    return config


def encode_config(config: Any) -> dict[str, Any]:
    """Normalized JSON-safe mapping for a decoded config value."""
    result: dict[str, Any] = {}
    for f in dataclasses.fields(config):
        value = getattr(config, f.name)
        result[f.name] = list(value) if isinstance(value, tuple) else value
    return result


class ConfigDecoderRegistry:
    """Registry mapping job_type strings to config dataclasses.

    Contract:
        - ``register()`` adds a job type; raises ValueError on duplicate.
        - ``decode()`` raises ``UnknownJobTypeError`` for unregistered types
          and ``InvalidJobConfigError`` for bad configs.
    """

    def __init__(self) -> None:
        self._types: dict[str, type] = {}

    def register(self, job_type: str, config_cls: type) -> None:
        if not dataclasses.is_dataclass(config_cls):
            raise TypeError(f"{config_cls!r} is not a dataclass")
        if job_type in self._types:
            raise ValueError(f"Job type '{job_type}' is already registered")
        self._types[job_type] = config_cls

    def config_type(self, job_type: str) -> type:
        try:
            return self._types[job_type]
        except KeyError:
            raise UnknownJobTypeError(job_type, self.list_job_types()) from None

    def decode(self, job_type: str, raw: Mapping[str, Any] | None) -> Any:
        return decode_config(job_type, self.config_type(job_type), raw)

    def list_job_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._types))

    def __contains__(self, job_type: str) -> bool:
        return job_type in self._types

    def __len__(self) -> int:
        return len(self._types)


def default_config_registry() -> ConfigDecoderRegistry:
    """Registry pre-loaded with the four standard job types."""
    registry = ConfigDecoderRegistry()
    registry.register("recurring_tasks", RecurringTasksConfig)
    registry.register("reminders", RemindersConfig)
    registry.register("aggregation", AggregationConfig)
    registry.register("reports", ReportsConfig)
    return registry
