"""
Coverage Engine Configuration
Settings for the insurance coverage calculation engine.
Source: Design Document Section 9 - Configuration
Verified: 2025-12-18
"""

from decimal import Decimal
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.core.enums import UnknownKindPolicy


class CoverageSettings(BaseSettings):
    """
    Coverage engine configuration settings.

    Values are read from the environment (prefix ``COVERAGE_``) and an
    optional ``.env`` file.
    Source: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
    Verified: 2025-12-18
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_prefix="COVERAGE_",
    )

    # =========================================================================
    # Rule Engine
    # =========================================================================
    UNKNOWN_CONDITION_POLICY: UnknownKindPolicy = Field(
        default=UnknownKindPolicy.PERMISSIVE,
        description="Handling of unrecognised rule condition keys",
    )
    UNKNOWN_ACTION_POLICY: UnknownKindPolicy = Field(
        default=UnknownKindPolicy.PERMISSIVE,
        description="Handling of unrecognised rule action keys",
    )
    APPLY_BUSINESS_RULES: bool = Field(
        default=True,
        description="Let the rule engine override plan coverage and deductible",
    )

    # =========================================================================
    # Calculation
    # =========================================================================
    REQUIRE_SUPPLEMENTARY_TARIFF: bool = Field(
        default=True,
        description="Fail when a supplementary policy has no tariff for the service; "
        "otherwise the patient stays liable for the remaining amount",
    )
    FUTURE_DATE_TOLERANCE_DAYS: int = Field(
        default=1,
        ge=0,
        description="How far in the future a calculation date may be",
    )
    MAX_SERVICE_AMOUNT: Decimal = Field(
        default=Decimal("100000000"),
        gt=0,
        description="Upper bound for a single service amount",
    )

    # =========================================================================
    # Cache Configuration
    # =========================================================================
    CACHE_ENABLED: bool = Field(
        default=True,
        description="Memoize supplementary calculations",
    )
    CACHE_TTL_SECONDS: int = Field(
        default=900,
        ge=1,
        description="Calculation cache TTL (15 min)",
    )
    CACHE_MAX_ITEMS: int = Field(
        default=1000,
        ge=1,
        description="Maximum cached calculations",
    )

    # =========================================================================
    # Monitoring Configuration
    # =========================================================================
    MONITOR_MAX_CALCULATION_EVENTS: int = Field(default=1000, ge=1)
    MONITOR_MAX_ERROR_EVENTS: int = Field(default=500, ge=1)
    MONITOR_SLOW_THRESHOLD_MS: float = Field(
        default=5000.0,
        gt=0,
        description="Average duration above which health degrades to warning",
    )

    # =========================================================================
    # Logging
    # =========================================================================
    LOG_LEVEL: str = Field(default="INFO")
    LOG_JSON: bool = Field(default=False)
    LOG_FILE: Optional[str] = Field(default=None)

    # =========================================================================
    # Validators
    # =========================================================================
    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalise and check the log level name."""
        level = v.upper()
        if level not in {"TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    @property
    def rejects_unknown_conditions(self) -> bool:
        return self.UNKNOWN_CONDITION_POLICY == UnknownKindPolicy.REJECT

    @property
    def rejects_unknown_actions(self) -> bool:
        return self.UNKNOWN_ACTION_POLICY == UnknownKindPolicy.REJECT


# Singleton instance
_coverage_settings: Optional[CoverageSettings] = None


def get_coverage_settings() -> CoverageSettings:
    """
    Get cached coverage settings instance.

    Returns:
        CoverageSettings instance
    """
    global _coverage_settings
    if _coverage_settings is None:
        _coverage_settings = CoverageSettings()
    return _coverage_settings
