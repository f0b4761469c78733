"""
Tests for the server time source.
"""

from datetime import datetime, timezone

from bulletin.clock import FixedClock, SystemClock


class TestSystemClock:
    """Tests for SystemClock."""

    def test_now_is_naive_school_local(self):
        clock = SystemClock("Asia/Manila")

        now = clock.now()
        aware = clock.aware_now()

        assert now.tzinfo is None
        assert aware.utcoffset().total_seconds() == 8 * 3600
        assert abs((aware.replace(tzinfo=None) - now).total_seconds()) < 5

    def test_to_local_converts_aware_values(self):
        clock = SystemClock("Asia/Manila")

        local = clock.to_local(datetime(2025, 9, 4, 23, 0, tzinfo=timezone.utc))

        assert local == datetime(2025, 9, 5, 7, 0)
        assert local.tzinfo is None

    def test_to_local_keeps_naive_values(self):
        value = datetime(2025, 9, 5, 7, 0)

        assert SystemClock("Asia/Manila").to_local(value) is value


class TestFixedClock:
    """Tests for FixedClock."""

    def test_advance_and_set(self):
        clock = FixedClock(datetime(2025, 6, 2, 9, 0))

        clock.advance(hours=2, minutes=30)
        assert clock.now() == datetime(2025, 6, 2, 11, 30)

        clock.set(datetime(2026, 1, 1))
        assert clock.now() == datetime(2026, 1, 1)


class TestSchoolLocalHelpers:
    """Tests for to_school_local() and school_now()."""

    def test_to_school_local_uses_configured_zone(self):
        from bulletin.clock import to_school_local

        assert to_school_local(datetime(2025, 6, 2, 2, 0, tzinfo=timezone.utc)) == datetime(2025, 6, 2, 10, 0)

    def test_school_now_is_naive(self):
        from bulletin.clock import school_now

        assert school_now().tzinfo is None
