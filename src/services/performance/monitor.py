"""
Calculation Monitoring Service.
Source: Design Document Section 4.8 - Calculation monitor
Verified: 2025-12-18

Collects calculation and error events in bounded ring buffers and derives
performance reports and a health status from them. Recording is
fire-and-forget: it never raises into the calculation that reports.
"""

import logging
import threading
from collections import Counter, deque
from datetime import datetime, timedelta
from typing import Callable, Optional

from src.core.config import CoverageSettings, get_coverage_settings
from src.core.enums import HealthStatus
from src.schemas.calculation import (
    CalculationEvent,
    ErrorEvent,
    PerformanceReport,
    SystemHealthStatus,
)

logger = logging.getLogger(__name__)

CRITICAL_ERRORS_PER_HOUR = 10
WARNING_ERRORS_PER_HOUR = 5


class CalculationMonitor:
    """Thread-safe collector for calculation events."""

    def __init__(
        self,
        max_calculation_events: int = 1000,
        max_error_events: int = 500,
        slow_threshold_ms: float = 5000.0,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._calculations: deque[CalculationEvent] = deque(maxlen=max_calculation_events)
        self._errors: deque[ErrorEvent] = deque(maxlen=max_error_events)
        self._slow_threshold_ms = slow_threshold_ms
        self._clock = clock or datetime.now
        self._lock = threading.Lock()

    # =========================================================================
    # Recording
    # =========================================================================

    def record_calculation(self, event: CalculationEvent) -> None:
        """Record a completed calculation."""
        try:
            with self._lock:
                self._calculations.append(event)
            if event.duration_ms > self._slow_threshold_ms:
                logger.warning(
                    f"Slow calculation for patient {event.patient_id}, "
                    f"service {event.service_id}: {event.duration_ms:.1f}ms"
                )
        except Exception:
            logger.exception("Failed to record calculation event")

    def record_error(self, event: ErrorEvent) -> None:
        """Record a failed calculation."""
        try:
            with self._lock:
                self._errors.append(event)
            logger.warning(
                f"Calculation error [{event.error_type}] patient={event.patient_id} "
                f"service={event.service_id}: {event.error_message}"
            )
        except Exception:
            logger.exception("Failed to record error event")

    # =========================================================================
    # Reports
    # =========================================================================

    def get_performance_report(self, window: timedelta = timedelta(hours=24)) -> PerformanceReport:
        """Aggregate events recorded within ``window`` of now."""
        window_end = self._clock()
        window_start = window_end - window

        with self._lock:
            calculations = [e for e in self._calculations if e.timestamp >= window_start]
            errors = [e for e in self._errors if e.timestamp >= window_start]

        total = len(calculations)
        successful = sum(1 for e in calculations if e.success)
        durations = [e.duration_ms for e in calculations]

        return PerformanceReport(
            window_start=window_start,
            window_end=window_end,
            total_calculations=total,
            successful_calculations=successful,
            failed_calculations=total - successful,
            success_rate=(successful / total * 100) if total else 0.0,
            average_duration_ms=(sum(durations) / total) if total else 0.0,
            min_duration_ms=min(durations) if durations else 0.0,
            max_duration_ms=max(durations) if durations else 0.0,
            total_errors=len(errors),
            error_rate=(len(errors) / total * 100) if total else 0.0,
            error_breakdown=dict(Counter(e.error_type for e in errors)),
        )

    def get_health_status(self) -> SystemHealthStatus:
        """Health over the last hour of errors and the recent average duration."""
        now = self._clock()
        hour_ago = now - timedelta(hours=1)

        with self._lock:
            recent_errors = sum(1 for e in self._errors if e.timestamp >= hour_ago)
            durations = [e.duration_ms for e in self._calculations]

        average = (sum(durations) / len(durations)) if durations else 0.0
        status = HealthStatus.HEALTHY
        issues: list[str] = []

        if recent_errors > CRITICAL_ERRORS_PER_HOUR:
            status = HealthStatus.CRITICAL
            issues.append(f"{recent_errors} errors in the last hour")
        elif recent_errors > WARNING_ERRORS_PER_HOUR:
            status = HealthStatus.WARNING
            issues.append(f"{recent_errors} errors in the last hour")

        if average > self._slow_threshold_ms:
            if status == HealthStatus.HEALTHY:
                status = HealthStatus.WARNING
            issues.append(f"average calculation time {average:.0f}ms")

        return SystemHealthStatus(
            status=status,
            recent_errors=recent_errors,
            average_duration_ms=average,
            issues=issues,
            checked_at=now,
        )

    def recent_calculations(self, limit: int = 100) -> list[CalculationEvent]:
        with self._lock:
            return list(self._calculations)[-limit:]

    def recent_errors(self, limit: int = 100) -> list[ErrorEvent]:
        with self._lock:
            return list(self._errors)[-limit:]

    def clear(self) -> None:
        """Drop all recorded events."""
        with self._lock:
            self._calculations.clear()
            self._errors.clear()


# =============================================================================
# Factory Functions
# =============================================================================


def create_calculation_monitor(settings: CoverageSettings | None = None) -> CalculationMonitor:
    """Create a CalculationMonitor sized from settings."""
    settings = settings or get_coverage_settings()
    return CalculationMonitor(
        max_calculation_events=settings.MONITOR_MAX_CALCULATION_EVENTS,
        max_error_events=settings.MONITOR_MAX_ERROR_EVENTS,
        slow_threshold_ms=settings.MONITOR_SLOW_THRESHOLD_MS,
    )
