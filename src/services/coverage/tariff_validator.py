"""
Tariff Validator.

Checks the financial invariants tariffs must satisfy before and after
persistence:
- Financial rules (price, share ranges, share sum)
- Business rules (uniqueness, timestamps, deleted/active consistency)
- Rounding rules (2-decimal precision)

Violations are reported, never corrected.

Source: Design Document Section 4.5 - Financial Invariant Validator
Verified: 2025-12-18
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from src.core.enums import ErrorCategory
from src.core.money import HUNDRED, MONEY_TOLERANCE, ZERO, is_money_precision
from src.schemas.calculation import TariffValidationResult
from src.schemas.common import ServiceResult
from src.schemas.insurance import InsuranceTariff
from src.services.coverage.data_access import InsuranceDataAccessor

logger = logging.getLogger(__name__)


def _as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken as local time."""
    return value.astimezone(timezone.utc)


class TariffValidator:
    """Validates tariffs against financial, business and rounding rules."""

    def __init__(
        self,
        data: Optional[InsuranceDataAccessor] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Args:
            data: Accessor used for the duplicate check; skipped when None
            clock: Source of "now" for timestamp checks
        """
        self.data = data
        self._now = clock or datetime.now

    # =========================================================================
    # Rule Groups
    # =========================================================================

    def validate_financial_rules(
        self, tariff: InsuranceTariff
    ) -> ServiceResult[TariffValidationResult]:
        """Price positive, shares in range, shares sum to price."""
        errors: list[str] = []
        price = tariff.tariff_price

        if price <= ZERO:
            errors.append("tariff price must be greater than zero")
        if tariff.patient_share < ZERO:
            errors.append("patient share must not be negative")
        if tariff.insurer_share < ZERO:
            errors.append("insurer share must not be negative")

        if price > ZERO:
            if tariff.patient_share > price:
                errors.append("patient share must not exceed tariff price")
            if tariff.insurer_share > price:
                errors.append("insurer share must not exceed tariff price")

            patient_percent = tariff.patient_share / price * HUNDRED
            if not ZERO <= patient_percent <= HUNDRED:
                errors.append("patient share percent must be between 0 and 100")

        difference = abs(tariff.patient_share + tariff.insurer_share - price)
        if difference > MONEY_TOLERANCE:
            errors.append(
                f"patient share plus insurer share must equal tariff price "
                f"(difference {difference})"
            )

        return self._result(errors)

    async def validate_business_rules(
        self, tariff: InsuranceTariff
    ) -> ServiceResult[TariffValidationResult]:
        """Uniqueness per (plan, service), sane timestamps, deleted tariffs inactive."""
        errors: list[str] = []
        now = _as_utc(self._now())

        if self.data is not None:
            try:
                existing = await self.data.find_tariffs(tariff.plan_id, tariff.service_id)
            except Exception:
                logger.exception(f"Error checking duplicate tariffs for tariff {tariff.id}")
                return ServiceResult.fail("error validating tariff", ErrorCategory.SYSTEM)

            duplicates = [t for t in existing if t.id != tariff.id and not t.is_deleted]
            if duplicates and not tariff.is_deleted:
                errors.append(
                    f"a tariff for plan {tariff.plan_id} and service {tariff.service_id} "
                    f"already exists"
                )

        created_at = _as_utc(tariff.created_at)
        updated_at = _as_utc(tariff.updated_at) if tariff.updated_at is not None else None

        if created_at > now:
            errors.append("created date must not be in the future")
        if updated_at is not None:
            if updated_at > now:
                errors.append("updated date must not be in the future")
            if updated_at < created_at:
                errors.append("updated date must not be before created date")
        if tariff.is_deleted and tariff.is_active:
            errors.append("a deleted tariff cannot be active")

        return self._result(errors)

    def validate_rounding_rules(
        self, tariff: InsuranceTariff
    ) -> ServiceResult[TariffValidationResult]:
        """All monetary fields already at 2-decimal precision."""
        fields = {
            "tariff price": tariff.tariff_price,
            "patient share": tariff.patient_share,
            "insurer share": tariff.insurer_share,
        }
        errors = [
            f"{name} must have at most 2 decimal places"
            for name, value in fields.items()
            if not is_money_precision(value)
        ]
        return self._result(errors)

    async def validate_all(self, tariff: InsuranceTariff) -> ServiceResult[TariffValidationResult]:
        """Run all three groups and union their errors."""
        business = await self.validate_business_rules(tariff)
        if business.error_category == ErrorCategory.SYSTEM:
            return business

        errors: list[str] = []
        for group in (
            self.validate_financial_rules(tariff),
            business,
            self.validate_rounding_rules(tariff),
        ):
            errors.extend(group.data.errors)

        if errors:
            logger.info(f"Tariff {tariff.id} failed validation: {'; '.join(errors)}")
        return self._result(errors)

    validate = validate_all

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _result(errors: list[str]) -> ServiceResult[TariffValidationResult]:
        result = TariffValidationResult(is_valid=not errors, errors=errors)
        if errors:
            return ServiceResult.fail(
                result.message, ErrorCategory.INVARIANT, errors=errors, data=result
            )
        return ServiceResult.ok(result)
