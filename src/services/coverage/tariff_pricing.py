"""
Tariff Pricing.

Derives tariff prices from a base price and multiplicative factors, and
splits a price into patient and insurer shares.

Source: Design Document Section 4.6 - Tariff pricing
Verified: 2025-12-18
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import ValidationError

from src.core.enums import ErrorCategory, InsuranceType
from src.core.money import HUNDRED, ZERO, percent_of, to_currency_unit, to_decimal, to_money
from src.schemas.calculation import TariffShares
from src.schemas.common import ServiceResult
from src.schemas.insurance import InsuranceTariff
from src.utils.errors import CoverageEngineError, InvalidInputError


def _finite(value, name: str) -> Decimal:
    try:
        number = to_decimal(value)
    except (ValueError, TypeError) as e:
        raise InvalidInputError(f"{name} must be a number, got {value!r}") from e
    if not number.is_finite():
        raise InvalidInputError(f"{name} must be a finite number")
    return number


def _price(base_price, technical_factor, professional_factor) -> Decimal:
    base = _finite(base_price, "base price")
    technical = _finite(technical_factor, "technical factor")
    professional = _finite(professional_factor, "professional factor")

    if base < ZERO:
        raise InvalidInputError("base price must not be negative")
    if technical <= ZERO or professional <= ZERO:
        raise InvalidInputError("tariff factors must be greater than zero")

    return to_currency_unit(base * technical * professional)


def _shares(tariff_price, insurer_percent) -> TariffShares:
    price = _finite(tariff_price, "tariff price")
    percent = _finite(insurer_percent, "insurer percent")
    if price < ZERO:
        raise InvalidInputError("tariff price must not be negative")
    if not ZERO <= percent <= HUNDRED:
        raise InvalidInputError("insurer percent must be between 0 and 100")

    price = to_money(price)
    insurer_share = percent_of(price, percent)
    return TariffShares(
        tariff_price=price,
        patient_share=to_money(price - insurer_share),
        insurer_share=insurer_share,
    )


def calculate_tariff_price(
    base_price: Decimal,
    technical_factor: Decimal = Decimal("1"),
    professional_factor: Decimal = Decimal("1"),
) -> ServiceResult[Decimal]:
    """
    Price from base price and factors, rounded to the smallest currency unit.

    Fails with a validation error when the base price is negative or a
    factor is not positive.
    """
    try:
        return ServiceResult.ok(_price(base_price, technical_factor, professional_factor))
    except CoverageEngineError as e:
        return ServiceResult.from_error(e)


def split_tariff_shares(
    tariff_price: Decimal, insurer_percent: Decimal
) -> ServiceResult[TariffShares]:
    """Split a price into shares that always sum exactly to the price."""
    try:
        return ServiceResult.ok(_shares(tariff_price, insurer_percent))
    except CoverageEngineError as e:
        return ServiceResult.from_error(e)


def build_tariff(
    tariff_id: int,
    plan_id: int,
    service_id: int,
    base_price: Decimal,
    insurer_percent: Decimal,
    technical_factor: Decimal = Decimal("1"),
    professional_factor: Decimal = Decimal("1"),
    insurance_type: InsuranceType = InsuranceType.PRIMARY,
    supplementary_coverage_percent: Optional[Decimal] = None,
    supplementary_max_payment: Optional[Decimal] = None,
) -> ServiceResult[InsuranceTariff]:
    """Build a tariff whose price comes from factors and whose shares are derived."""
    try:
        shares = _shares(
            _price(base_price, technical_factor, professional_factor), insurer_percent
        )
        tariff = InsuranceTariff(
            id=tariff_id,
            plan_id=plan_id,
            service_id=service_id,
            insurance_type=insurance_type,
            tariff_price=shares.tariff_price,
            patient_share=shares.patient_share,
            insurer_share=shares.insurer_share,
            supplementary_coverage_percent=supplementary_coverage_percent,
            supplementary_max_payment=supplementary_max_payment,
            created_at=datetime.now(),
        )
    except CoverageEngineError as e:
        return ServiceResult.from_error(e)
    except ValidationError as e:
        return ServiceResult.fail(f"invalid tariff: {e}", ErrorCategory.VALIDATION)

    return ServiceResult.ok(tariff)
