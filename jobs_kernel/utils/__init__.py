"""Kernel utilities."""

from jobs_kernel.utils.idempotency import (
    daily_natural_key,
    generate_idempotency_key,
    parse_idempotency_key,
)

__all__ = [
    "daily_natural_key",
    "generate_idempotency_key",
    "parse_idempotency_key",
]
