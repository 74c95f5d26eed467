"""Tests for jobs_kernel.utils.idempotency."""

from datetime import date
from uuid import UUID

import pytest

from jobs_kernel.utils.idempotency import (
    daily_natural_key,
    generate_idempotency_key,
    parse_idempotency_key,
)

TENANT = UUID("550e8400-e29b-41d4-a716-446655440000")


def test_key_format():
    key = generate_idempotency_key("recurring_tasks", TENANT, "2026-01-25")
    assert key == "recurring_tasks:550e8400-e29b-41d4-a716-446655440000:2026-01-25"


def test_same_inputs_same_key():
    assert generate_idempotency_key("reports", TENANT, "w5") == generate_idempotency_key(
        "reports", str(TENANT), "w5"
    )


def test_empty_natural_key_rejected():
    with pytest.raises(ValueError):
        generate_idempotency_key("reports", TENANT, "")


def test_parse_keeps_colons_in_natural_key():
    key = generate_idempotency_key("aggregation", TENANT, "2026-01-25T06:00")
    assert parse_idempotency_key(key) == (
        "aggregation",
        str(TENANT),
        "2026-01-25T06:00",
    )


@pytest.mark.parametrize("bad", ["", "only-one-part", "a:b", "a::c"])
def test_parse_rejects_malformed(bad):
    with pytest.raises(ValueError):
        parse_idempotency_key(bad)


def test_daily_natural_key():
    assert daily_natural_key(date(2026, 1, 25)) == "2026-01-25"
