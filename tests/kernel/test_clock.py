"""Tests for the injectable clocks."""

from datetime import UTC, date, datetime, timedelta, timezone

from cashflow_kernel.domain.clock import DeterministicClock, SystemClock, ensure_utc


class TestDeterministicClock:
    def test_default_time(self):
        clock = DeterministicClock()
        assert clock.now() == datetime(2024, 1, 15, 12, 0, tzinfo=UTC)
        assert clock.today() == date(2024, 1, 15)

    def test_naive_time_is_taken_as_utc(self):
        clock = DeterministicClock(datetime(2024, 3, 1, 8, 30))
        assert clock.now().tzinfo is UTC

    def test_advance_days(self):
        clock = DeterministicClock(datetime(2024, 1, 31, tzinfo=UTC))
        clock.advance_days(1)
        assert clock.today() == date(2024, 2, 1)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(3600)
        clock.set_time(datetime(2025, 6, 1, tzinfo=UTC))
        assert clock.now() == datetime(2025, 6, 1, tzinfo=UTC)


class TestSystemClock:
    def test_now_is_aware_utc(self):
        now = SystemClock().now()
        assert now.tzinfo is not None
        assert now.utcoffset() == timedelta(0)


class TestEnsureUtc:
    def test_naive(self):
        assert ensure_utc(datetime(2024, 1, 1, 9)) == datetime(2024, 1, 1, 9, tzinfo=UTC)

    def test_converts_offset(self):
        plus_two = timezone(timedelta(hours=2))
        converted = ensure_utc(datetime(2024, 1, 1, 9, tzinfo=plus_two))
        assert converted == datetime(2024, 1, 1, 7, tzinfo=UTC)
        assert converted.utcoffset() == timedelta(0)
