"""
Idempotency key generation utilities.

Idempotency keys ensure that re-firing the same logical unit of work
(duplicate trigger tick, manual re-trigger, retry after a transient
failure) produces its side effects at most once.
"""

from datetime import date
from uuid import UUID


def generate_idempotency_key(
    job_type: str,
    tenant_id: UUID | str,
    natural_key: str,
) -> str:
    """
    Generate an idempotency key for one logical unit of job work.

    Format: job_type:tenant_id:natural_key

    The natural key is job-type specific: a once-daily batch uses the
    calendar date, a per-period aggregation uses the period start, and so on.

    Example:
        >>> generate_idempotency_key("recurring_tasks", tenant, "2026-01-25")
        "recurring_tasks:550e8400-e29b-41d4-a716-446655440000:2026-01-25"
    """
    if not natural_key:
        raise ValueError("natural_key must be a non-empty string")
    return f"{job_type}:{tenant_id}:{natural_key}"


def parse_idempotency_key(key: str) -> tuple[str, str, str]:
    """
    Parse an idempotency key into (job_type, tenant_id, natural_key).

    Raises:
        ValueError: If key format is invalid.
    """
    parts = key.split(":", 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid idempotency key format: {key}")
    return parts[0], parts[1], parts[2]


def daily_natural_key(on_date: date) -> str:
    """Natural key for a once-per-calendar-day batch."""
    return on_date.isoformat()
