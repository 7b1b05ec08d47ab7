"""DeterministicClock behaviour relied on by the service tests."""

from datetime import UTC, datetime, timedelta

from shopfloor_kernel.domain.clock import DeterministicClock, SystemClock


def test_default_fixed_time():
    clock = DeterministicClock()
    assert clock.now() == datetime(2024, 1, 1, 12, 0, tzinfo=UTC)
    assert clock.now() == clock.now()


def test_advance_and_tick():
    clock = DeterministicClock()
    start = clock.now()
    clock.advance(30)
    assert clock.now() == start + timedelta(seconds=30)
    clock.advance_hours(2)
    assert clock.now() == start + timedelta(hours=2, seconds=30)
    assert clock.tick() == start + timedelta(hours=2, seconds=31)


def test_set_time():
    clock = DeterministicClock()
    target = datetime(2025, 6, 1, tzinfo=UTC)
    clock.set_time(target)
    assert clock.now() == target


def test_system_clock_is_timezone_aware():
    assert SystemClock().now().tzinfo is not None
