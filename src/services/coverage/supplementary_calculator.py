"""
Supplementary Coverage Calculator.

Supplementary insurance covers a share of what the patient still owes
after primary coverage, never of the original service amount. When
primary coverage already reaches the service amount the supplementary
tariff is not consulted at all.

Source: Design Document Section 4.3 - Supplementary Coverage Calculator
Verified: 2025-12-18
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from src.core.enums import ErrorCategory
from src.core.money import ZERO, non_negative, percent_of, to_money
from src.schemas.calculation import SupplementaryCalculationResult
from src.schemas.common import ServiceResult
from src.schemas.insurance import InsuranceTariff

logger = logging.getLogger(__name__)

TARIFF_NOT_DEFINED = "supplementary tariff not defined for this service"


class SupplementaryCoverageCalculator:
    """Calculator for supplementary coverage on the primary remainder."""

    def calculate_supplementary(
        self,
        service_amount: Decimal,
        primary_coverage: Decimal,
        tariff: Optional[InsuranceTariff],
        calculation_date: Optional[date] = None,
        coverage_percent: Optional[Decimal] = None,
        max_payment: Optional[Decimal] = None,
    ) -> ServiceResult[SupplementaryCalculationResult]:
        """
        Calculate supplementary coverage.

        Args:
            service_amount: Amount billed for the service
            primary_coverage: Insurance coverage from the primary calculation
            tariff: Supplementary tariff for the service
            calculation_date: Date of calculation (defaults to today)
            coverage_percent: Rule override for the tariff coverage percent
            max_payment: Rule override for the tariff max payment

        Returns:
            Result with the SupplementaryCalculationResult
        """
        calculation_date = calculation_date or date.today()
        amount = to_money(service_amount)
        primary = to_money(primary_coverage)
        remaining = to_money(amount - primary)

        if remaining <= ZERO:
            logger.debug(f"Primary coverage {primary} covers full amount {amount}")
            return ServiceResult.ok(
                SupplementaryCalculationResult(
                    service_amount=amount,
                    primary_coverage=primary,
                    supplementary_coverage=ZERO,
                    final_patient_share=non_negative(remaining),
                    total_coverage=primary,
                    calculation_date=calculation_date,
                    is_fully_covered=True,
                ),
                "primary covers full amount",
            )

        if tariff is None:
            return ServiceResult.fail(TARIFF_NOT_DEFINED, ErrorCategory.NOT_FOUND)

        percent = coverage_percent
        if percent is None:
            percent = tariff.supplementary_coverage_percent or ZERO
        cap = max_payment if max_payment is not None else tariff.supplementary_max_payment

        supplementary, capped = self.apply_coverage(remaining, percent, cap)
        final_share = non_negative(to_money(remaining - supplementary))

        return ServiceResult.ok(
            SupplementaryCalculationResult(
                service_amount=amount,
                primary_coverage=primary,
                supplementary_coverage=supplementary,
                final_patient_share=final_share,
                total_coverage=to_money(primary + supplementary),
                calculation_date=calculation_date,
                is_fully_covered=final_share == ZERO,
                supplementary_coverage_percent=percent,
                max_payment_applied=capped,
            )
        )

    def remaining_only(
        self,
        service_amount: Decimal,
        primary_coverage: Decimal,
        calculation_date: Optional[date] = None,
    ) -> SupplementaryCalculationResult:
        """Result leaving the patient liable for everything primary did not cover."""
        amount = to_money(service_amount)
        primary = to_money(primary_coverage)
        remaining = non_negative(to_money(amount - primary))
        return SupplementaryCalculationResult(
            service_amount=amount,
            primary_coverage=primary,
            supplementary_coverage=ZERO,
            final_patient_share=remaining,
            total_coverage=primary,
            calculation_date=calculation_date or date.today(),
            is_fully_covered=remaining == ZERO,
        )

    @staticmethod
    def apply_coverage(
        remaining: Decimal,
        percent: Decimal,
        max_payment: Optional[Decimal] = None,
    ) -> tuple[Decimal, bool]:
        """
        Supplementary share of the remaining amount.

        Returns:
            Tuple of (supplementary_coverage, max_payment_applied)
        """
        coverage = min(percent_of(remaining, percent), remaining)
        if max_payment is not None and coverage > max_payment:
            return to_money(max_payment), True
        return coverage, False
