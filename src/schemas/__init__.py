"""
Pydantic Schemas for the Coverage Calculation Engine.

This module exports reference-data, result and event schemas.
"""

from src.schemas.common import ServiceResult
from src.schemas.insurance import (
    BusinessRule,
    InsuranceCalculationContext,
    InsurancePlan,
    InsuranceTariff,
    MedicalService,
    Patient,
    PatientInsurance,
    PlanService,
)
from src.schemas.calculation import (
    AdvancedCalculationResult,
    BusinessRuleValidation,
    CalculationAdjustments,
    CalculationEvent,
    CalculationResult,
    CombinedCalculationResult,
    ErrorEvent,
    PerformanceReport,
    RuleOverrides,
    SupplementaryCalculationResult,
    SystemHealthStatus,
    TariffShares,
    TariffValidationResult,
)

__all__ = [
    "ServiceResult",
    # Reference data
    "BusinessRule",
    "InsuranceCalculationContext",
    "InsurancePlan",
    "InsuranceTariff",
    "MedicalService",
    "Patient",
    "PatientInsurance",
    "PlanService",
    # Results
    "AdvancedCalculationResult",
    "BusinessRuleValidation",
    "CalculationAdjustments",
    "CalculationEvent",
    "CalculationResult",
    "CombinedCalculationResult",
    "ErrorEvent",
    "PerformanceReport",
    "RuleOverrides",
    "SupplementaryCalculationResult",
    "SystemHealthStatus",
    "TariffShares",
    "TariffValidationResult",
]
