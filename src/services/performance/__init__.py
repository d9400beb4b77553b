"""
Performance Services.
Source: Design Document Section 4.7 / 4.8
Verified: 2025-12-18

Provides calculation memoization and calculation monitoring.
"""

from src.services.performance.cache import (
    CacheConfig,
    CacheStats,
    CalculationCache,
    create_calculation_cache,
    make_calculation_key,
)
from src.services.performance.monitor import (
    CalculationMonitor,
    create_calculation_monitor,
)


__all__ = [
    # Cache
    "CacheConfig",
    "CacheStats",
    "CalculationCache",
    "create_calculation_cache",
    "make_calculation_key",
    # Monitor
    "CalculationMonitor",
    "create_calculation_monitor",
]
