"""
Pydantic Schemas for Coverage Calculation Results.
Source: Design Document Section 3 - Data Model
Verified: 2025-12-18
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from src.core.enums import ErrorCategory, HealthStatus
from src.core.money import ZERO


# =============================================================================
# Rule Engine Results
# =============================================================================


class RuleOverrides(BaseModel):
    """Effects produced by the first matching business rule."""

    matched: bool = False
    rule_id: Optional[int] = None
    rule_name: Optional[str] = None

    coverage_percent: Optional[Decimal] = None
    deductible: Optional[Decimal] = None
    max_payment: Optional[Decimal] = None
    is_valid: Optional[bool] = None
    error_message: Optional[str] = None
    supplementary_applicable: Optional[bool] = None

    @property
    def has_effect(self) -> bool:
        """True when at least one action wrote a value."""
        return any(
            value is not None
            for value in (
                self.coverage_percent,
                self.deductible,
                self.max_payment,
                self.is_valid,
                self.supplementary_applicable,
            )
        )


class BusinessRuleValidation(BaseModel):
    """Aggregate of all matching validation rules."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    applied_rules: list[str] = Field(default_factory=list)


# =============================================================================
# Calculation Results
# =============================================================================


class CalculationResult(BaseModel):
    """Primary insurance coverage for one service amount."""

    total_amount: Decimal
    deductible_amount: Decimal
    coverable_amount: Decimal
    coverage_percent: Decimal
    insurance_coverage: Decimal
    patient_payment: Decimal
    plan_id: Optional[int] = None


class SupplementaryCalculationResult(BaseModel):
    """Supplementary coverage applied to what primary leaves."""

    service_amount: Decimal
    primary_coverage: Decimal
    supplementary_coverage: Decimal = ZERO
    final_patient_share: Decimal
    total_coverage: Decimal
    calculation_date: date
    is_fully_covered: bool = False
    supplementary_coverage_percent: Optional[Decimal] = None
    max_payment_applied: bool = False


class CombinedCalculationResult(BaseModel):
    """Primary plus optional supplementary result for one service."""

    patient_id: int
    service_id: int
    service_amount: Decimal
    calculation_date: date

    primary_plan_id: int
    primary_coverage: Decimal
    primary_coverage_percent: Decimal
    deductible_amount: Decimal = ZERO

    supplementary_plan_id: Optional[int] = None
    supplementary_coverage: Decimal = ZERO
    supplementary_coverage_percent: Decimal = ZERO

    final_patient_share: Decimal
    total_coverage: Decimal
    has_supplementary: bool = False
    is_fully_covered: bool = False
    notes: str = ""


class CalculationAdjustments(BaseModel):
    """Caller-supplied adjustments for advanced calculation."""

    discount_percent: Decimal = Field(default=ZERO, ge=0, le=100)
    max_patient_payment: Optional[Decimal] = Field(None, ge=0)


class AdvancedCalculationResult(CombinedCalculationResult):
    """Combined result after adjustments, with coverage analytics."""

    discount_amount: Decimal = ZERO
    adjusted_patient_share: Decimal = ZERO
    total_coverage_percent: Decimal = ZERO
    patient_share_percent: Decimal = ZERO
    patient_savings: Decimal = ZERO


# =============================================================================
# Tariff Validation
# =============================================================================


class TariffValidationResult(BaseModel):
    """Outcome of one or more tariff rule groups."""

    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        return "; ".join(self.errors)

    def merge(self, other: "TariffValidationResult") -> "TariffValidationResult":
        errors = self.errors + other.errors
        return TariffValidationResult(is_valid=not errors, errors=errors)


class TariffShares(BaseModel):
    """Patient / insurer split of a tariff price."""

    tariff_price: Decimal
    patient_share: Decimal
    insurer_share: Decimal


# =============================================================================
# Monitoring
# =============================================================================


class CalculationEvent(BaseModel):
    """One completed calculation, successful or not."""

    patient_id: int
    service_id: int
    service_amount: Decimal
    primary_coverage: Decimal = ZERO
    supplementary_coverage: Decimal = ZERO
    final_patient_share: Decimal = ZERO
    duration_ms: float = 0.0
    success: bool = True
    error_message: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class ErrorEvent(BaseModel):
    """A failed calculation."""

    error_type: str
    error_message: str
    category: Optional[ErrorCategory] = None
    patient_id: Optional[int] = None
    service_id: Optional[int] = None
    timestamp: datetime = Field(default_factory=datetime.now)


class PerformanceReport(BaseModel):
    """Aggregated calculation statistics over a time window."""

    window_start: datetime
    window_end: datetime
    total_calculations: int = 0
    successful_calculations: int = 0
    failed_calculations: int = 0
    success_rate: float = 0.0
    average_duration_ms: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    total_errors: int = 0
    error_rate: float = 0.0
    error_breakdown: dict[str, int] = Field(default_factory=dict)


class SystemHealthStatus(BaseModel):
    """Health snapshot derived from recent events."""

    status: HealthStatus = HealthStatus.HEALTHY
    recent_errors: int = 0
    average_duration_ms: float = 0.0
    issues: list[str] = Field(default_factory=list)
    checked_at: datetime = Field(default_factory=datetime.now)
