"""Tests for the injectable clock."""

from datetime import datetime, timedelta, timezone

from billing_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:
    def test_default_time(self):
        clock = DeterministicClock()
        assert clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)

    def test_repeated_calls_are_stable(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()

    def test_advance(self):
        clock = DeterministicClock()
        start = clock.now()
        clock.advance(90)
        assert clock.now() - start == timedelta(seconds=90)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(10)
        target = datetime(2025, 6, 30, tzinfo=timezone.utc)
        clock.set_time(target)
        assert clock.now() == target

    def test_now_utc_normalizes_offset(self):
        plus_two = timezone(timedelta(hours=2))
        clock = DeterministicClock(datetime(2024, 1, 1, 14, 0, tzinfo=plus_two))
        assert clock.now_utc() == datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        assert clock.now_utc().tzinfo == timezone.utc


class TestSystemClock:
    def test_returns_aware_utc(self):
        now = SystemClock().now_utc()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)
