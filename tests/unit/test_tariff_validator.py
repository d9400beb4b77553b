"""
Unit tests for tariff validation and pricing.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from src.core.enums import ErrorCategory, InsuranceType
from src.schemas.insurance import InsuranceTariff
from src.services.coverage.data_access import InMemoryInsuranceData
from src.services.coverage.tariff_pricing import (
    build_tariff,
    calculate_tariff_price,
    split_tariff_shares,
)
from src.services.coverage.tariff_validator import TariffValidator

NOW = datetime(2025, 6, 1, 12, 0)


def make_tariff(**overrides) -> InsuranceTariff:
    values = dict(
        id=1,
        plan_id=100,
        service_id=10,
        insurance_type=InsuranceType.PRIMARY,
        tariff_price=Decimal("1000.00"),
        patient_share=Decimal("300.00"),
        insurer_share=Decimal("700.00"),
        created_at=datetime(2025, 1, 1),
    )
    values.update(overrides)
    return InsuranceTariff(**values)


@pytest.fixture
def validator():
    return TariffValidator(clock=lambda: NOW)


@pytest.mark.unit
class TestFinancialRules:
    """Tests for price and share invariants."""

    def test_valid_tariff(self, validator):
        """Test a consistent tariff passes."""
        result = validator.validate_financial_rules(make_tariff())

        assert result.success
        assert result.data.is_valid
        assert result.data.errors == []

    def test_shares_within_tolerance(self, validator):
        """Test a one-cent difference is tolerated."""
        result = validator.validate_financial_rules(
            make_tariff(patient_share=Decimal("300.01"))
        )

        assert result.success

    def test_shares_do_not_sum(self, validator):
        """Test share sum off by more than a cent."""
        result = validator.validate_financial_rules(
            make_tariff(patient_share=Decimal("350.00"))
        )

        assert not result.success
        assert result.error_category == ErrorCategory.INVARIANT
        assert any("must equal tariff price" in e for e in result.errors)

    def test_non_positive_price(self, validator):
        """Test zero price is rejected."""
        result = validator.validate_financial_rules(
            make_tariff(
                tariff_price=Decimal("0"), patient_share=Decimal("0"), insurer_share=Decimal("0")
            )
        )

        assert "tariff price must be greater than zero" in result.errors

    def test_share_out_of_range(self, validator):
        """Test negative and oversized shares are reported together."""
        result = validator.validate_financial_rules(
            make_tariff(patient_share=Decimal("-100.00"), insurer_share=Decimal("1100.00"))
        )

        assert "patient share must not be negative" in result.errors
        assert "insurer share must not exceed tariff price" in result.errors
        assert result.message == "; ".join(result.errors)


@pytest.mark.unit
class TestBusinessRules:
    """Tests for uniqueness and timestamp checks."""

    @pytest.mark.asyncio
    async def test_duplicate_tariff(self):
        """Test second live tariff for the same plan and service."""
        data = InMemoryInsuranceData()
        data.add_tariff(make_tariff(id=1))
        validator = TariffValidator(data, clock=lambda: NOW)

        result = await validator.validate_business_rules(make_tariff(id=2))

        assert not result.success
        assert "already exists" in result.message

    @pytest.mark.asyncio
    async def test_deleted_tariff_is_not_a_duplicate(self):
        """Test soft-deleted tariffs do not block a replacement."""
        data = InMemoryInsuranceData()
        data.add_tariff(make_tariff(id=1, is_deleted=True, is_active=False))
        validator = TariffValidator(data, clock=lambda: NOW)

        result = await validator.validate_business_rules(make_tariff(id=2))

        assert result.success

    @pytest.mark.asyncio
    async def test_same_tariff_is_not_a_duplicate(self):
        """Test revalidating a stored tariff."""
        data = InMemoryInsuranceData()
        tariff = data.add_tariff(make_tariff(id=1))
        validator = TariffValidator(data, clock=lambda: NOW)

        result = await validator.validate_business_rules(tariff)

        assert result.success

    @pytest.mark.asyncio
    async def test_timestamps(self, validator):
        """Test future and out-of-order timestamps."""
        result = await validator.validate_business_rules(
            make_tariff(created_at=datetime(2025, 7, 1), updated_at=datetime(2025, 3, 1))
        )

        assert "created date must not be in the future" in result.errors
        assert "updated date must not be before created date" in result.errors

    @pytest.mark.asyncio
    async def test_timezone_aware_timestamps(self, validator):
        """Test aware timestamps are compared against the naive clock."""
        result = await validator.validate_all(
            make_tariff(created_at="2025-01-01T00:00:00Z", updated_at="2025-02-01T08:30:00+03:00")
        )

        assert result.success

    @pytest.mark.asyncio
    async def test_timezone_aware_future_timestamp(self, validator):
        """Test an aware timestamp a month ahead is still reported."""
        result = await validator.validate_business_rules(
            make_tariff(created_at=datetime(2025, 7, 1, tzinfo=timezone.utc))
        )

        assert result.errors == ["created date must not be in the future"]

    @pytest.mark.asyncio
    async def test_aware_clock_with_naive_timestamps(self):
        """Test an aware clock with naive stored timestamps."""
        validator = TariffValidator(
            clock=lambda: datetime(2025, 6, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
        )

        result = await validator.validate_business_rules(make_tariff())

        assert result.success

    @pytest.mark.asyncio
    async def test_deleted_and_active(self, validator):
        """Test a deleted tariff must be inactive."""
        result = await validator.validate_business_rules(make_tariff(is_deleted=True))

        assert result.errors == ["a deleted tariff cannot be active"]

    @pytest.mark.asyncio
    async def test_accessor_error(self):
        """Test accessor failure is a system failure."""

        class BrokenData(InMemoryInsuranceData):
            async def find_tariffs(self, plan_id, service_id):
                raise ConnectionError("tariff store unavailable")

        validator = TariffValidator(BrokenData(), clock=lambda: NOW)

        result = await validator.validate_all(make_tariff())

        assert result.error_category == ErrorCategory.SYSTEM


@pytest.mark.unit
class TestRoundingAndAll:
    """Tests for precision checks and the combined validation."""

    def test_excess_precision_reported(self, validator):
        """Test three-decimal amounts are reported, not corrected."""
        tariff = make_tariff(patient_share=Decimal("300.005"), insurer_share=Decimal("699.995"))

        result = validator.validate_rounding_rules(tariff)

        assert len(result.errors) == 2
        assert tariff.patient_share == Decimal("300.005")

    @pytest.mark.asyncio
    async def test_validate_all_unions_groups(self, validator):
        """Test errors from every group are combined."""
        tariff = make_tariff(
            patient_share=Decimal("400.001"), is_deleted=True
        )

        result = await validator.validate_all(tariff)

        assert not result.success
        assert result.error_category == ErrorCategory.INVARIANT
        assert any("must equal tariff price" in e for e in result.errors)
        assert "a deleted tariff cannot be active" in result.errors
        assert "patient share must have at most 2 decimal places" in result.errors

    @pytest.mark.asyncio
    async def test_validate_alias(self, validator):
        """Test validate runs the full check."""
        result = await validator.validate(make_tariff())

        assert result.success
        assert result.data.is_valid


@pytest.mark.unit
class TestTariffPricing:
    """Tests for price derivation and share split."""

    def test_price_from_factors(self):
        """Test factors multiply and round to whole units."""
        result = calculate_tariff_price(Decimal("1000"), Decimal("1.255"), Decimal("1.1"))

        assert result.success
        assert result.data == Decimal("1381")

    def test_price_rounds_half_up(self):
        """Test 0.5 rounds away from zero."""
        assert calculate_tariff_price(Decimal("100.5")).data == Decimal("101")

    @pytest.mark.parametrize("factor", [Decimal("0"), Decimal("-1"), Decimal("NaN")])
    def test_invalid_factor_rejected(self, factor):
        """Test factors must be positive numbers."""
        result = calculate_tariff_price(Decimal("1000"), technical_factor=factor)

        assert not result.success
        assert result.error_category == ErrorCategory.VALIDATION

    def test_negative_base_rejected(self):
        """Test base price must not be negative."""
        result = calculate_tariff_price(Decimal("-1"))

        assert result.message == "base price must not be negative"

    @pytest.mark.parametrize(
        "price,percent",
        [("1000", "70"), ("999.99", "33.33"), ("0.01", "50"), ("123456.78", "100")],
    )
    def test_shares_sum_to_price(self, price, percent):
        """Test split is exact for awkward percents."""
        shares = split_tariff_shares(Decimal(price), Decimal(percent)).data

        assert shares.patient_share + shares.insurer_share == shares.tariff_price
        assert shares.patient_share >= Decimal("0")

    def test_invalid_percent(self):
        """Test percent outside 0-100 is a failed result."""
        result = split_tariff_shares(Decimal("100"), Decimal("150"))

        assert not result.success
        assert result.message == "insurer percent must be between 0 and 100"
        assert result.error_category == ErrorCategory.VALIDATION

    def test_build_tariff_failure(self):
        """Test invalid inputs surface as a failed result."""
        result = build_tariff(
            tariff_id=5,
            plan_id=200,
            service_id=10,
            base_price=Decimal("1000"),
            insurer_percent=Decimal("90"),
            professional_factor=Decimal("0"),
        )

        assert not result.success
        assert result.message == "tariff factors must be greater than zero"

    def test_build_tariff_invalid_ids(self):
        """Test schema violations are reported, not raised."""
        result = build_tariff(
            tariff_id=0,
            plan_id=200,
            service_id=10,
            base_price=Decimal("1000"),
            insurer_percent=Decimal("90"),
        )

        assert not result.success
        assert result.error_category == ErrorCategory.VALIDATION

    def test_built_tariff_validates(self):
        """Test a built tariff passes financial and rounding rules."""
        result = build_tariff(
            tariff_id=5,
            plan_id=200,
            service_id=10,
            base_price=Decimal("1000000"),
            insurer_percent=Decimal("90"),
            insurance_type=InsuranceType.SUPPLEMENTARY,
            supplementary_coverage_percent=Decimal("90"),
        )
        tariff = result.data
        validator = TariffValidator()

        assert result.success
        assert tariff.insurer_share == Decimal("900000")
        assert tariff.patient_share == Decimal("100000")
        assert validator.validate_financial_rules(tariff).success
        assert validator.validate_rounding_rules(tariff).success
