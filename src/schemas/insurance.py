"""
Pydantic Schemas for Insurance Reference Data.
Source: Design Document Section 3 - Data Model
Verified: 2025-12-18

Records supplied by the data accessors: plans, patient policies,
plan-service configuration, tariffs, business rules, and the calculation
context passed through rule evaluation.
"""

import json
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from src.core.enums import BusinessRuleType, Gender, InsuranceType


# =============================================================================
# Plans and Policies
# =============================================================================


class InsurancePlan(BaseModel):
    """Insurance plan with default coverage parameters."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., gt=0)
    name: str = Field(default="", description="Plan name")
    insurance_type: InsuranceType = Field(default=InsuranceType.PRIMARY)
    coverage_percent: Decimal = Field(..., ge=0, le=100, description="Default coverage %")
    deductible: Decimal = Field(default=Decimal("0"), ge=0, description="Deductible amount")
    valid_from: Optional[date] = Field(None, description="Validity start")
    valid_to: Optional[date] = Field(None, description="Validity end")
    is_active: bool = Field(default=True)

    def is_valid_on(self, as_of: date) -> bool:
        """Check the plan is active with the date inside its validity window."""
        if not self.is_active:
            return False
        if self.valid_from and as_of < self.valid_from:
            return False
        if self.valid_to and as_of > self.valid_to:
            return False
        return True


class PatientInsurance(BaseModel):
    """Link between a patient and an insurance plan."""

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., gt=0)
    patient_id: int = Field(..., gt=0)
    plan_id: int = Field(..., gt=0)
    policy_number: str = Field(default="")
    is_primary: bool = Field(default=True)
    start_date: date
    end_date: Optional[date] = Field(None, description="None means open-ended")
    is_active: bool = Field(default=True)

    def is_active_on(self, as_of: date) -> bool:
        """Active flag set and date inside ``[start_date, end_date]``."""
        if not self.is_active or as_of < self.start_date:
            return False
        return self.end_date is None or as_of <= self.end_date


class PlanService(BaseModel):
    """Per-service configuration of a plan."""

    model_config = ConfigDict(from_attributes=True)

    plan_id: int = Field(..., gt=0)
    service_id: int = Field(..., gt=0)
    is_covered: bool = Field(default=True)
    coverage_override: Optional[Decimal] = Field(
        None, ge=0, le=100, description="Overrides plan coverage % for this service"
    )


# =============================================================================
# Tariffs
# =============================================================================


class InsuranceTariff(BaseModel):
    """
    Price and share configuration for a (plan, service) pair.

    Share fields are not range-constrained here; the tariff validator
    reports violations so callers can decide what to do with them.
    ``service_id == 0`` applies to every service of the plan.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., gt=0)
    plan_id: int = Field(..., gt=0)
    service_id: int = Field(default=0, ge=0)
    insurance_type: InsuranceType = Field(default=InsuranceType.PRIMARY)

    tariff_price: Decimal
    patient_share: Decimal = Decimal("0")
    insurer_share: Decimal = Decimal("0")

    # Supplementary only
    supplementary_coverage_percent: Optional[Decimal] = Field(None, ge=0, le=100)
    supplementary_max_payment: Optional[Decimal] = Field(None, ge=0)

    is_active: bool = True
    is_deleted: bool = False
    created_at: datetime = Field(default_factory=datetime.now)
    updated_at: Optional[datetime] = None

    @property
    def is_wildcard(self) -> bool:
        return self.service_id == 0


# =============================================================================
# Patients and Services
# =============================================================================


class Patient(BaseModel):
    """Patient attributes used by rule conditions."""

    id: int = Field(..., gt=0)
    birth_year: Optional[int] = Field(None, ge=1850)
    gender: Optional[Gender] = None


class MedicalService(BaseModel):
    """A billable medical service."""

    id: int = Field(..., gt=0)
    name: str = ""
    category_id: Optional[int] = None


# =============================================================================
# Business Rules
# =============================================================================


class BusinessRule(BaseModel):
    """
    Stored business rule.

    ``conditions`` and ``actions`` are keyed maps as kept in the rule store;
    JSON text is accepted and parsed. They are compiled into typed rule
    parts by the rule language before evaluation.
    """

    model_config = ConfigDict(from_attributes=True)

    id: int = Field(..., gt=0)
    name: str
    rule_type: BusinessRuleType
    priority: int = Field(default=0, description="Higher is evaluated first")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_active: bool = True

    insurance_plan_id: Optional[int] = Field(None, description="None applies to all plans")
    service_category_id: Optional[int] = Field(
        None, description="None applies to all categories"
    )

    conditions: dict[str, Any] = Field(default_factory=dict)
    actions: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    @field_validator("conditions", "actions", mode="before")
    @classmethod
    def parse_json_payload(cls, v: Any) -> Any:
        """Accept JSON text as stored by rule editors."""
        if v is None or v == "":
            return {}
        if isinstance(v, str):
            return json.loads(v)
        return v

    def is_effective_on(self, as_of: date) -> bool:
        """Date within ``[start_date, end_date]``; missing bounds are open."""
        if self.start_date and as_of < self.start_date:
            return False
        if self.end_date and as_of > self.end_date:
            return False
        return True

    def applies_to(self, plan_id: Optional[int], service_category_id: Optional[int]) -> bool:
        """Scope check against plan and service category."""
        if self.insurance_plan_id is not None and self.insurance_plan_id != plan_id:
            return False
        if (
            self.service_category_id is not None
            and self.service_category_id != service_category_id
        ):
            return False
        return True


# =============================================================================
# Calculation Context
# =============================================================================


class InsuranceCalculationContext(BaseModel):
    """Read-only inputs for rule evaluation."""

    model_config = ConfigDict(frozen=True)

    service_amount: Decimal
    calculation_date: date
    plan: Optional[InsurancePlan] = None
    plan_service: Optional[PlanService] = None
    patient: Optional[Patient] = None
    service: Optional[MedicalService] = None
    service_category_id: Optional[int] = None

    @property
    def plan_id(self) -> Optional[int]:
        return self.plan.id if self.plan else None

    @property
    def category_id(self) -> Optional[int]:
        if self.service_category_id is not None:
            return self.service_category_id
        return self.service.category_id if self.service else None
