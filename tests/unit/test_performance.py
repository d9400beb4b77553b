"""
Unit tests for the calculation cache and monitor.
"""

from datetime import date, datetime, timedelta
from decimal import Decimal

import pytest

from src.core.config import CoverageSettings
from src.core.enums import ErrorCategory, HealthStatus
from src.schemas.calculation import CalculationEvent, ErrorEvent
from src.services.performance.cache import (
    CacheConfig,
    CalculationCache,
    create_calculation_cache,
    make_calculation_key,
)
from src.services.performance.monitor import CalculationMonitor, create_calculation_monitor

START = datetime(2025, 6, 1, 12, 0)


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock()


# =============================================================================
# Cache
# =============================================================================


@pytest.mark.unit
class TestCalculationCache:
    """Tests for LRU and TTL behaviour."""

    def test_set_and_get(self, clock):
        """Test basic set and get."""
        cache = CalculationCache(clock=clock)
        cache.set("a", 1)

        assert cache.get("a") == 1
        assert cache.get("missing") is None

    def test_entry_expires(self, clock):
        """Test entries are dropped after their TTL."""
        cache = CalculationCache(CacheConfig(default_ttl=60), clock=clock)
        cache.set("a", 1)

        clock.advance(seconds=59)
        assert cache.get("a") == 1

        clock.advance(seconds=1)
        assert cache.get("a") is None
        assert cache.get_stats().expirations == 1

    def test_least_recently_used_evicted(self, clock):
        """Test capacity evicts the entry not read for longest."""
        cache = CalculationCache(CacheConfig(max_items=2), clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")
        cache.set("c", 3)

        assert cache.get("b") is None
        assert cache.get("a") == 1
        assert cache.get("c") == 3
        assert cache.get_stats().evictions == 1

    def test_delete_and_clear(self, clock):
        """Test delete and clear."""
        cache = CalculationCache(clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.delete("a") is True
        assert cache.delete("a") is False

        cache.clear()
        assert cache.size() == 0

    def test_cleanup_expired(self, clock):
        """Test bulk removal of expired entries."""
        cache = CalculationCache(clock=clock)
        cache.set("short", 1, ttl=10)
        cache.set("long", 2, ttl=1000)

        clock.advance(seconds=30)

        assert cache.cleanup_expired() == 1
        assert cache.size() == 1

    def test_stats(self, clock):
        """Test hit rate and reset."""
        cache = CalculationCache(clock=clock)
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("b")

        stats = cache.get_stats()
        assert stats.hits == 2
        assert stats.misses == 1
        assert stats.hit_rate == pytest.approx(66.666, rel=1e-3)

        cache.reset_stats()
        assert cache.get_stats().hits == 0

    @pytest.mark.asyncio
    async def test_get_or_compute(self, clock):
        """Test factory runs once per key."""
        cache = CalculationCache(clock=clock)
        calls = []

        async def factory():
            calls.append(1)
            return Decimal("270000")

        first = await cache.get_or_compute("k", factory)
        second = await cache.get_or_compute("k", factory)

        assert first == second == Decimal("270000")
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_get_or_compute_sync_factory(self, clock):
        """Test plain callables are accepted."""
        cache = CalculationCache(clock=clock)

        value = await cache.get_or_compute("k", lambda: "value")

        assert value == "value"
        assert cache.get("k") == "value"

    def test_calculation_key(self):
        """Test equal amounts with different scale share a key."""
        first = make_calculation_key(1, 10, Decimal("1000.00"), Decimal("700"), date(2025, 6, 1))
        second = make_calculation_key(1, 10, Decimal("1000"), Decimal("700.0"), date(2025, 6, 1))
        other_day = make_calculation_key(1, 10, Decimal("1000"), Decimal("700"), date(2025, 6, 2))

        assert first == second
        assert first != other_day

    def test_factory_uses_settings(self):
        """Test cache sizing from settings."""
        settings = CoverageSettings(_env_file=None, CACHE_TTL_SECONDS=60, CACHE_MAX_ITEMS=5)

        cache = create_calculation_cache(settings)

        assert cache.config.default_ttl == 60
        assert cache.config.max_items == 5


# =============================================================================
# Monitor
# =============================================================================


def calculation(duration_ms=100.0, success=True, timestamp=START):
    return CalculationEvent(
        patient_id=1,
        service_id=10,
        service_amount=Decimal("1000"),
        duration_ms=duration_ms,
        success=success,
        timestamp=timestamp,
    )


def error(error_type="not_found", timestamp=START):
    return ErrorEvent(
        error_type=error_type,
        error_message="active primary insurance not found",
        category=ErrorCategory.NOT_FOUND,
        patient_id=1,
        timestamp=timestamp,
    )


@pytest.mark.unit
class TestCalculationMonitor:
    """Tests for event recording, reports and health."""

    def test_ring_buffers_are_bounded(self, clock):
        """Test oldest events are dropped at capacity."""
        monitor = CalculationMonitor(max_calculation_events=3, max_error_events=2, clock=clock)
        for i in range(5):
            monitor.record_calculation(calculation(duration_ms=float(i)))
            monitor.record_error(error())

        assert [e.duration_ms for e in monitor.recent_calculations()] == [2.0, 3.0, 4.0]
        assert len(monitor.recent_errors()) == 2

    def test_performance_report(self, clock):
        """Test aggregates over the window."""
        monitor = CalculationMonitor(clock=clock)
        monitor.record_calculation(calculation(100.0))
        monitor.record_calculation(calculation(300.0))
        monitor.record_calculation(calculation(200.0, success=False))
        monitor.record_calculation(calculation(900.0, timestamp=START - timedelta(days=2)))
        monitor.record_error(error("not_found"))
        monitor.record_error(error("validation"))
        monitor.record_error(error("validation"))

        report = monitor.get_performance_report()

        assert report.total_calculations == 3
        assert report.successful_calculations == 2
        assert report.failed_calculations == 1
        assert report.success_rate == pytest.approx(66.666, rel=1e-3)
        assert report.average_duration_ms == pytest.approx(200.0)
        assert report.min_duration_ms == 100.0
        assert report.max_duration_ms == 300.0
        assert report.error_breakdown == {"not_found": 1, "validation": 2}

    def test_empty_report(self, clock):
        """Test report with no events."""
        report = CalculationMonitor(clock=clock).get_performance_report()

        assert report.total_calculations == 0
        assert report.success_rate == 0.0

    @pytest.mark.parametrize(
        "errors,expected",
        [(0, HealthStatus.HEALTHY), (5, HealthStatus.HEALTHY),
         (6, HealthStatus.WARNING), (11, HealthStatus.CRITICAL)],
    )
    def test_health_from_error_count(self, clock, errors, expected):
        """Test error thresholds over the last hour."""
        monitor = CalculationMonitor(clock=clock)
        for _ in range(errors):
            monitor.record_error(error())

        assert monitor.get_health_status().status == expected

    def test_old_errors_do_not_count(self, clock):
        """Test errors older than an hour are ignored."""
        monitor = CalculationMonitor(clock=clock)
        for _ in range(20):
            monitor.record_error(error(timestamp=START - timedelta(hours=2)))

        assert monitor.get_health_status().status == HealthStatus.HEALTHY

    def test_slow_average_is_warning(self, clock):
        """Test slow calculations degrade health."""
        monitor = CalculationMonitor(slow_threshold_ms=1000.0, clock=clock)
        monitor.record_calculation(calculation(1500.0))

        health = monitor.get_health_status()

        assert health.status == HealthStatus.WARNING
        assert health.issues

    def test_clear(self, clock):
        """Test clear drops all events."""
        monitor = CalculationMonitor(clock=clock)
        monitor.record_calculation(calculation())
        monitor.record_error(error())

        monitor.clear()

        assert monitor.recent_calculations() == []
        assert monitor.recent_errors() == []

    def test_factory_uses_settings(self):
        """Test monitor sizing from settings."""
        settings = CoverageSettings(_env_file=None, MONITOR_MAX_CALCULATION_EVENTS=2)
        monitor = create_calculation_monitor(settings)

        for _ in range(3):
            monitor.record_calculation(calculation())

        assert len(monitor.recent_calculations()) == 2
