"""Tests for jobs_kernel.domain.clock."""

from datetime import datetime, timedelta, timezone

from jobs_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    """The clock tests and the trigger use in place of wall time."""

    def test_returns_fixed_time(self):
        fixed = datetime(2026, 3, 1, 6, 0, 0, tzinfo=timezone.utc)
        clock = DeterministicClock(fixed_time=fixed)
        assert clock.now() == fixed
        assert clock.now() == fixed

    def test_default_time_is_timezone_aware(self):
        clock = DeterministicClock()
        assert clock.now().tzinfo is not None

    def test_advance(self):
        fixed = datetime(2026, 3, 1, 6, 0, 0, tzinfo=timezone.utc)
        clock = DeterministicClock(fixed_time=fixed)
        clock.advance(90)
        assert clock.now() == fixed + timedelta(seconds=90)

    def test_tick_advances_one_second(self):
        fixed = datetime(2026, 3, 1, 6, 0, 0, tzinfo=timezone.utc)
        clock = DeterministicClock(fixed_time=fixed)
        assert clock.tick() == fixed + timedelta(seconds=1)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(500)
        target = datetime(2027, 1, 1, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_now_utc_normalizes(self):
        plus_two = timezone(timedelta(hours=2))
        clock = DeterministicClock(fixed_time=datetime(2026, 3, 1, 8, 0, tzinfo=plus_two))
        assert clock.now_utc() == datetime(2026, 3, 1, 6, 0, tzinfo=timezone.utc)
        assert clock.now_utc().utcoffset() == timedelta(0)


class TestSystemClock:
    def test_now_is_utc(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)
