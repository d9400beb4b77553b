"""
Insurance Coverage Calculation Services.
Source: Design Document Section 4 - Component Design
Verified: 2025-12-18

Exports the rule engine, coverage calculators, combined orchestrator,
tariff validation and tariff pricing.
"""

from src.services.coverage.data_access import (
    InMemoryInsuranceData,
    InMemoryRuleRepository,
    InsuranceDataAccessor,
    RuleRepository,
)
from src.services.coverage.rule_language import (
    CompiledRule,
    NumericRange,
    RuleAction,
    RuleCondition,
    compile_rule,
)
from src.services.coverage.rule_engine import (
    BusinessRuleEngine,
    create_business_rule_engine,
)
from src.services.coverage.primary_calculator import PrimaryCoverageCalculator
from src.services.coverage.supplementary_calculator import SupplementaryCoverageCalculator
from src.services.coverage.orchestrator import (
    CombinedInsuranceCalculator,
    create_combined_insurance_calculator,
)
from src.services.coverage.tariff_validator import TariffValidator
from src.services.coverage.tariff_pricing import (
    build_tariff,
    calculate_tariff_price,
    split_tariff_shares,
)


__all__ = [
    # Data access
    "InMemoryInsuranceData",
    "InMemoryRuleRepository",
    "InsuranceDataAccessor",
    "RuleRepository",
    # Rule language
    "CompiledRule",
    "NumericRange",
    "RuleAction",
    "RuleCondition",
    "compile_rule",
    # Rule engine
    "BusinessRuleEngine",
    "create_business_rule_engine",
    # Calculators
    "PrimaryCoverageCalculator",
    "SupplementaryCoverageCalculator",
    "CombinedInsuranceCalculator",
    "create_combined_insurance_calculator",
    # Tariffs
    "TariffValidator",
    "build_tariff",
    "calculate_tariff_price",
    "split_tariff_shares",
]
