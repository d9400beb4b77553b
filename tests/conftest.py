"""
Pytest Configuration and Fixtures.
Shared test fixtures for all test modules.
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

# Add project root to path for ``src`` imports
root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path))

from src.core.config import CoverageSettings  # noqa: E402
from src.core.enums import Gender, InsuranceType  # noqa: E402
from src.schemas.insurance import (  # noqa: E402
    InsurancePlan,
    InsuranceTariff,
    MedicalService,
    Patient,
    PatientInsurance,
    PlanService,
)
from src.services.coverage.data_access import (  # noqa: E402
    InMemoryInsuranceData,
    InMemoryRuleRepository,
)

CALCULATION_DATE = date(2025, 6, 1)

PATIENT_ID = 1
SERVICE_ID = 10
PRIMARY_PLAN_ID = 100
SUPPLEMENTARY_PLAN_ID = 200


@pytest.fixture
def calculation_date():
    """Fixed calculation date used across engine tests."""
    return CALCULATION_DATE


@pytest.fixture
def settings():
    """Settings isolated from the environment and .env files."""
    return CoverageSettings(_env_file=None)


@pytest.fixture
def primary_plan():
    """Primary plan: 70% coverage, no deductible."""
    return InsurancePlan(
        id=PRIMARY_PLAN_ID,
        name="Basic Health",
        insurance_type=InsuranceType.PRIMARY,
        coverage_percent=Decimal("70"),
        deductible=Decimal("0"),
    )


@pytest.fixture
def supplementary_tariff():
    """Supplementary tariff: 90% of the remainder, no cap."""
    return InsuranceTariff(
        id=900,
        plan_id=SUPPLEMENTARY_PLAN_ID,
        service_id=SERVICE_ID,
        insurance_type=InsuranceType.SUPPLEMENTARY,
        tariff_price=Decimal("1000000"),
        patient_share=Decimal("100000"),
        insurer_share=Decimal("900000"),
        supplementary_coverage_percent=Decimal("90"),
    )


@pytest.fixture
def insurance_data(primary_plan):
    """Patient with an active primary policy covering service 10."""
    data = InMemoryInsuranceData()
    data.add_plan(primary_plan)
    data.add_plan(
        InsurancePlan(
            id=SUPPLEMENTARY_PLAN_ID,
            name="Complementary Plus",
            insurance_type=InsuranceType.SUPPLEMENTARY,
            coverage_percent=Decimal("90"),
        )
    )
    data.add_plan_service(PlanService(plan_id=PRIMARY_PLAN_ID, service_id=SERVICE_ID))
    data.add_patient(Patient(id=PATIENT_ID, birth_year=1960, gender=Gender.FEMALE))
    data.add_service(MedicalService(id=SERVICE_ID, name="MRI", category_id=4))
    data.add_patient_insurance(
        PatientInsurance(
            id=1,
            patient_id=PATIENT_ID,
            plan_id=PRIMARY_PLAN_ID,
            policy_number="P-0001",
            is_primary=True,
            start_date=date(2024, 1, 1),
        )
    )
    return data


@pytest.fixture
def with_supplementary(insurance_data, supplementary_tariff):
    """Adds an active supplementary policy and its tariff."""
    insurance_data.add_tariff(supplementary_tariff)
    insurance_data.add_patient_insurance(
        PatientInsurance(
            id=2,
            patient_id=PATIENT_ID,
            plan_id=SUPPLEMENTARY_PLAN_ID,
            policy_number="S-0001",
            is_primary=False,
            start_date=date(2024, 1, 1),
        )
    )
    return insurance_data


@pytest.fixture
def rule_repository():
    """Empty rule repository."""
    return InMemoryRuleRepository()


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "unit: mark test as a unit test"
    )
    config.addinivalue_line(
        "markers", "integration: mark test as an integration test"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
