"""Tests for payout_kernel.domain.clock."""

from datetime import datetime, timedelta

from payout_kernel.domain.clock import DeterministicClock, SystemClock


def test_system_clock_is_utc_aware():
    assert SystemClock().now().tzinfo is not None


def test_deterministic_clock_is_stable_until_advanced():
    start = datetime(2024, 1, 10, 12, 0)
    clock = DeterministicClock(start)
    assert clock.now() == clock.now() == start

    clock.advance(30)
    assert clock.now() == start + timedelta(seconds=30)

    clock.advance_hours(2)
    assert clock.now() == start + timedelta(hours=2, seconds=30)


def test_set_time_resets_advance():
    clock = DeterministicClock(datetime(2024, 1, 1))
    clock.advance(100)
    clock.set_time(datetime(2024, 6, 1))
    assert clock.now() == datetime(2024, 6, 1)
