"""
Primary Coverage Calculator.

Calculates primary insurance coverage for a service amount:
- Deductible application
- Coverable amount
- Coverage percent selection (rule override, plan service, plan)
- Insurance coverage and patient payment

Source: Design Document Section 4.2 - Primary Coverage Calculator
Verified: 2025-12-18
"""

import logging
from decimal import Decimal
from typing import Optional

from src.core.enums import ErrorCategory
from src.core.money import HUNDRED, ZERO, clamp, non_negative, percent_of, to_money
from src.schemas.calculation import CalculationResult
from src.schemas.common import ServiceResult
from src.schemas.insurance import InsurancePlan, PlanService

logger = logging.getLogger(__name__)


class PrimaryCoverageCalculator:
    """
    Pure calculator for primary insurance coverage.

    Identical inputs always produce identical results; nothing is read or
    stored outside the arguments.
    """

    def calculate_coverage(
        self,
        service_amount: Decimal,
        plan: Optional[InsurancePlan],
        plan_service: Optional[PlanService] = None,
        coverage_percent: Optional[Decimal] = None,
        deductible: Optional[Decimal] = None,
    ) -> ServiceResult[CalculationResult]:
        """
        Calculate primary coverage.

        Args:
            service_amount: Amount billed for the service
            plan: Primary insurance plan
            plan_service: Optional per-service plan configuration
            coverage_percent: Rule engine override, supersedes plan and plan service
            deductible: Rule engine override for the plan deductible

        Returns:
            Result with the primary CalculationResult
        """
        if plan is None:
            return ServiceResult.fail("insurance not found", ErrorCategory.NOT_FOUND)
        if plan_service is not None and not plan_service.is_covered:
            return ServiceResult.fail("configuration not found", ErrorCategory.NOT_FOUND)
        if service_amount < ZERO:
            return ServiceResult.fail(
                "service amount must not be negative", ErrorCategory.VALIDATION
            )

        amount = to_money(service_amount)
        percent = self.select_coverage_percent(plan, plan_service, coverage_percent)
        deductible_applied, coverable = self.apply_deductible(
            amount, plan.deductible if deductible is None else deductible
        )
        insurance_coverage, remaining = self.split_coverage(coverable, percent)
        logger.debug(
            f"Primary coverage plan={plan.id} amount={amount} percent={percent} "
            f"coverage={insurance_coverage}"
        )

        return ServiceResult.ok(
            CalculationResult(
                total_amount=amount,
                deductible_amount=deductible_applied,
                coverable_amount=coverable,
                coverage_percent=percent,
                insurance_coverage=insurance_coverage,
                patient_payment=to_money(deductible_applied + remaining),
                plan_id=plan.id,
            )
        )

    @staticmethod
    def select_coverage_percent(
        plan: InsurancePlan,
        plan_service: Optional[PlanService] = None,
        override: Optional[Decimal] = None,
    ) -> Decimal:
        """Rule override, then plan-service override, then plan default; clamped to 0-100."""
        if override is not None:
            percent = override
        elif plan_service is not None and plan_service.coverage_override is not None:
            percent = plan_service.coverage_override
        else:
            percent = plan.coverage_percent
        return clamp(percent, ZERO, HUNDRED)

    @staticmethod
    def apply_deductible(amount: Decimal, deductible: Decimal) -> tuple[Decimal, Decimal]:
        """
        Apply the deductible to an amount.

        Returns:
            Tuple of (deductible_applied, coverable_amount)
        """
        deductible_applied = min(amount, non_negative(to_money(deductible)))
        coverable = non_negative(amount - deductible_applied)
        return to_money(deductible_applied), to_money(coverable)

    @staticmethod
    def split_coverage(coverable: Decimal, percent: Decimal) -> tuple[Decimal, Decimal]:
        """
        Split a coverable amount by coverage percent.

        Returns:
            Tuple of (insurance_coverage, patient_remainder)
        """
        insurance_coverage = percent_of(coverable, percent)
        return insurance_coverage, to_money(coverable - insurance_coverage)
