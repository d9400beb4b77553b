"""
Core Enumerations for the Coverage Calculation Engine.
Source: Design Document Section 3 - Data Model
Verified: 2025-12-18
"""

from enum import Enum


# =============================================================================
# Insurance Enums
# =============================================================================


class InsuranceType(str, Enum):
    """Insurance plan / tariff type."""

    PRIMARY = "primary"  # Base plan, applied first
    SUPPLEMENTARY = "supplementary"  # Covers part of what primary leaves


class Gender(str, Enum):
    """Patient gender as stored on the patient record."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


# =============================================================================
# Business Rule Enums
# =============================================================================


class BusinessRuleType(str, Enum):
    """Rule families evaluated by the business rule engine."""

    COVERAGE_PERCENT = "coverage_percent"
    DEDUCTIBLE = "deductible"
    PAYMENT_LIMIT = "payment_limit"
    SUPPLEMENTARY_INSURANCE = "supplementary_insurance"
    VALIDATION = "validation"


class ConditionKind(str, Enum):
    """Condition keys understood by the rule language."""

    PATIENT_AGE = "patient_age"  # Numeric
    SERVICE_AMOUNT = "service_amount"  # Numeric
    PATIENT_GENDER = "patient_gender"  # Equality
    SERVICE_CATEGORY = "service_category"  # Equality
    INSURANCE_PLAN = "insurance_plan"  # Equality
    UNKNOWN = "unknown"


class ActionKind(str, Enum):
    """Action keys understood by the rule language."""

    SET_COVERAGE_PERCENT = "set_coverage_percent"
    SET_DEDUCTIBLE = "set_deductible"
    SET_MAX_PAYMENT = "set_max_payment"
    VALIDATE_PAYMENT_LIMIT = "validate_payment_limit"
    SET_SUPPLEMENTARY_APPLICABLE = "set_supplementary_applicable"
    UNKNOWN = "unknown"


class UnknownKindPolicy(str, Enum):
    """How unrecognised condition/action keys are handled."""

    PERMISSIVE = "permissive"  # Log and treat as satisfied / ignore
    REJECT = "reject"  # Rule never matches


# =============================================================================
# Result / Monitoring Enums
# =============================================================================


class ErrorCategory(str, Enum):
    """Error taxonomy carried on failed service results."""

    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    RULE_EVALUATION = "rule_evaluation"
    INVARIANT = "invariant"
    SYSTEM = "system"


class HealthStatus(str, Enum):
    """Calculation subsystem health."""

    HEALTHY = "healthy"
    WARNING = "warning"
    CRITICAL = "critical"
