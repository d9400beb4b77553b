"""
Services Layer for the Coverage Calculation Engine.

Exports coverage calculation and performance services.
"""

from src.services.coverage import (
    BusinessRuleEngine,
    CombinedInsuranceCalculator,
    InMemoryInsuranceData,
    InMemoryRuleRepository,
    PrimaryCoverageCalculator,
    SupplementaryCoverageCalculator,
    TariffValidator,
    create_combined_insurance_calculator,
)
from src.services.performance import (
    CalculationCache,
    CalculationMonitor,
    create_calculation_cache,
    create_calculation_monitor,
)

__all__ = [
    # Coverage
    "BusinessRuleEngine",
    "CombinedInsuranceCalculator",
    "InMemoryInsuranceData",
    "InMemoryRuleRepository",
    "PrimaryCoverageCalculator",
    "SupplementaryCoverageCalculator",
    "TariffValidator",
    "create_combined_insurance_calculator",
    # Performance
    "CalculationCache",
    "CalculationMonitor",
    "create_calculation_cache",
    "create_calculation_monitor",
]
