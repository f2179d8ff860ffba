"""Unit tests for the metrics TTL cache."""
from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch

import pytest

from capture_core.metrics.cache import MetricsCache
from capture_core.metrics.engine import compute_metrics


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 2, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def cache(clock):
    return MetricsCache(ttl=timedelta(hours=48), clock=clock)


def empty_result(start: datetime, end: datetime):
    return compute_metrics(
        [],
        [],
        guest_skus=[],
        wedding_tag_id=None,
        start=start,
        end=end,
        generated_at=datetime(2025, 2, 1, tzinfo=timezone.utc),
    )


JAN_START = datetime(2025, 1, 1, tzinfo=timezone.utc)
JAN_END = datetime(2025, 1, 31, 23, 59, 59, tzinfo=timezone.utc)


def test_make_key_uses_calendar_days():
    """Test keys depend on the UTC day, not the time of day."""
    key = MetricsCache.make_key(JAN_START, JAN_END)

    assert key == "analytics:2025-01-01:2025-01-31"
    assert MetricsCache.make_key(date(2025, 1, 1), date(2025, 1, 31)) == key


def test_get_returns_fresh_entry(cache, clock):
    """Test a stored result is returned within the TTL."""
    result = empty_result(JAN_START, JAN_END)
    cache.set(JAN_START, JAN_END, result)

    clock.advance(hours=47)

    assert cache.get(date(2025, 1, 1), date(2025, 1, 31)) == result


def test_get_expired_entry_misses_and_deletes(cache, clock):
    """Test an entry past its TTL is removed on read."""
    cache.set(JAN_START, JAN_END, empty_result(JAN_START, JAN_END))

    clock.advance(hours=48, seconds=1)

    assert cache.get(JAN_START, JAN_END) is None
    assert len(cache) == 0


def test_clear_targets_one_key(cache):
    """Test clear removes only the requested range."""
    feb_start = datetime(2025, 2, 1, tzinfo=timezone.utc)
    feb_end = datetime(2025, 2, 28, tzinfo=timezone.utc)
    cache.set(JAN_START, JAN_END, empty_result(JAN_START, JAN_END))
    cache.set(feb_start, feb_end, empty_result(feb_start, feb_end))

    assert cache.clear(JAN_START, JAN_END) is True
    assert cache.clear(JAN_START, JAN_END) is False
    assert cache.get(JAN_START, JAN_END) is None
    assert cache.get(feb_start, feb_end) is not None


def test_clear_all(cache):
    """Test clear_all empties the cache and reports the count."""
    cache.set(JAN_START, JAN_END, empty_result(JAN_START, JAN_END))
    cache.set(JAN_START, JAN_START, empty_result(JAN_START, JAN_START))

    assert cache.clear_all() == 2
    assert len(cache) == 0


def test_cleanup_removes_only_expired(cache, clock):
    """Test cleanup sweeps expired entries and keeps fresh ones."""
    cache.set(JAN_START, JAN_END, empty_result(JAN_START, JAN_END))
    clock.advance(hours=24)
    cache.set(JAN_START, JAN_START, empty_result(JAN_START, JAN_START))
    clock.advance(hours=25)

    assert cache.cleanup() == 1
    assert len(cache) == 1
    assert cache.get(JAN_START, JAN_START) is not None


def test_stats_reports_age_and_expiry(cache, clock):
    """Test stats lists each entry with its age in minutes."""
    cache.set(JAN_START, JAN_END, empty_result(JAN_START, JAN_END))
    clock.advance(minutes=90)

    stats = cache.stats()

    assert stats["total_entries"] == 1
    entry = stats["entries"][0]
    assert entry["key"] == "analytics:2025-01-01:2025-01-31"
    assert entry["age_minutes"] == 90
    assert entry["expires_at"] == "2025-02-03T09:00:00+00:00"


@pytest.mark.asyncio
async def test_run_periodic_cleanup_repeats(cache):
    """Test the cleanup loop keeps sweeping after each interval."""
    calls = []

    def fake_cleanup():
        calls.append(1)
        if len(calls) == 2:
            raise RuntimeError("stop")
        return 0

    with patch.object(cache, "cleanup", side_effect=fake_cleanup):
        with pytest.raises(RuntimeError, match="stop"):
            await cache.run_periodic_cleanup(interval=0)

    assert len(calls) == 2
