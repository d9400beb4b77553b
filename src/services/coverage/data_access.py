"""
Insurance Data Accessors.

Lookup contracts the engine reads through:
- Plans, plan-service configuration and tariffs
- Patient insurance policies
- Patients and medical services (rule condition inputs)
- Business rules (rule repository)

Persistence is owned by the surrounding application. The in-memory
implementations here back tests and demo mode.

Source: Design Document Section 6 - External Interfaces
Verified: 2025-12-18
"""

from __future__ import annotations

import json
import logging
from typing import Optional, Protocol

from src.core.enums import BusinessRuleType, InsuranceType
from src.schemas.insurance import (
    BusinessRule,
    InsurancePlan,
    InsuranceTariff,
    MedicalService,
    Patient,
    PatientInsurance,
    PlanService,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Contracts
# =============================================================================


class InsuranceDataAccessor(Protocol):
    async def get_plan(self, plan_id: int) -> Optional[InsurancePlan]:  # pragma: no cover - Protocol definition
        ...

    async def get_plan_service(
        self, plan_id: int, service_id: int
    ) -> Optional[PlanService]:  # pragma: no cover - Protocol definition
        ...

    async def get_tariff(
        self, plan_id: int, service_id: int, insurance_type: InsuranceType
    ) -> Optional[InsuranceTariff]:  # pragma: no cover - Protocol definition
        ...

    async def find_tariffs(
        self, plan_id: int, service_id: int
    ) -> list[InsuranceTariff]:  # pragma: no cover - Protocol definition
        ...

    async def get_patient_insurances(
        self, patient_id: int
    ) -> list[PatientInsurance]:  # pragma: no cover - Protocol definition
        ...

    async def get_patient(self, patient_id: int) -> Optional[Patient]:  # pragma: no cover - Protocol definition
        ...

    async def get_service(self, service_id: int) -> Optional[MedicalService]:  # pragma: no cover - Protocol definition
        ...


class RuleRepository(Protocol):
    async def get_active_rules(
        self,
        rule_type: BusinessRuleType,
        plan_id: Optional[int],
        service_category_id: Optional[int],
    ) -> list[BusinessRule]:  # pragma: no cover - Protocol definition
        ...


# =============================================================================
# In-memory Implementations
# =============================================================================


class InMemoryInsuranceData:
    """
    Dictionary-backed data accessor.

    Tariff lookups prefer an exact (plan, service) match and fall back to
    the plan's wildcard tariff (``service_id == 0``).
    """

    def __init__(self):
        self._plans: dict[int, InsurancePlan] = {}
        self._plan_services: dict[tuple[int, int], PlanService] = {}
        self._tariffs: dict[int, InsuranceTariff] = {}
        self._policies: dict[int, list[PatientInsurance]] = {}
        self._patients: dict[int, Patient] = {}
        self._services: dict[int, MedicalService] = {}

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def add_plan(self, plan: InsurancePlan) -> InsurancePlan:
        self._plans[plan.id] = plan
        return plan

    def add_plan_service(self, plan_service: PlanService) -> PlanService:
        self._plan_services[(plan_service.plan_id, plan_service.service_id)] = plan_service
        return plan_service

    def add_tariff(self, tariff: InsuranceTariff) -> InsuranceTariff:
        self._tariffs[tariff.id] = tariff
        return tariff

    def add_patient_insurance(self, policy: PatientInsurance) -> PatientInsurance:
        self._policies.setdefault(policy.patient_id, []).append(policy)
        return policy

    def add_patient(self, patient: Patient) -> Patient:
        self._patients[patient.id] = patient
        return patient

    def add_service(self, service: MedicalService) -> MedicalService:
        self._services[service.id] = service
        return service

    def clear(self) -> None:
        self._plans.clear()
        self._plan_services.clear()
        self._tariffs.clear()
        self._policies.clear()
        self._patients.clear()
        self._services.clear()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    async def get_plan(self, plan_id: int) -> Optional[InsurancePlan]:
        return self._plans.get(plan_id)

    async def get_plan_service(self, plan_id: int, service_id: int) -> Optional[PlanService]:
        return self._plan_services.get((plan_id, service_id))

    async def get_tariff(
        self,
        plan_id: int,
        service_id: int,
        insurance_type: InsuranceType,
    ) -> Optional[InsuranceTariff]:
        candidates = [
            t
            for t in self._tariffs.values()
            if t.plan_id == plan_id
            and t.insurance_type == insurance_type
            and t.is_active
            and not t.is_deleted
        ]
        exact = next((t for t in candidates if t.service_id == service_id), None)
        if exact is not None:
            return exact

        wildcard = next((t for t in candidates if t.is_wildcard), None)
        if wildcard is not None:
            logger.debug(
                f"Using wildcard tariff {wildcard.id} for plan {plan_id}, service {service_id}"
            )
        return wildcard

    async def find_tariffs(self, plan_id: int, service_id: int) -> list[InsuranceTariff]:
        return [
            t
            for t in self._tariffs.values()
            if t.plan_id == plan_id and t.service_id == service_id
        ]

    async def get_patient_insurances(self, patient_id: int) -> list[PatientInsurance]:
        return list(self._policies.get(patient_id, []))

    async def get_patient(self, patient_id: int) -> Optional[Patient]:
        return self._patients.get(patient_id)

    async def get_service(self, service_id: int) -> Optional[MedicalService]:
        return self._services.get(service_id)


class InMemoryRuleRepository:
    """Dictionary-backed rule repository with JSON import/export."""

    def __init__(self, rules: Optional[list[BusinessRule]] = None):
        self._rules: dict[int, BusinessRule] = {}
        for rule in rules or []:
            self.add_rule(rule)

    def add_rule(self, rule: BusinessRule) -> None:
        """Add or replace a rule."""
        self._rules[rule.id] = rule

    def remove_rule(self, rule_id: int) -> bool:
        """Remove a rule; False when it does not exist."""
        return self._rules.pop(rule_id, None) is not None

    def get_all_rules(self) -> list[BusinessRule]:
        return list(self._rules.values())

    async def get_active_rules(
        self,
        rule_type: BusinessRuleType,
        plan_id: Optional[int],
        service_category_id: Optional[int],
    ) -> list[BusinessRule]:
        """Active rules of a type in scope, highest priority first."""
        rules = [
            r
            for r in self._rules.values()
            if r.rule_type == rule_type
            and r.is_active
            and r.applies_to(plan_id, service_category_id)
        ]
        return sorted(rules, key=lambda r: r.priority, reverse=True)

    def export_rules(self) -> str:
        """Export all rules as JSON."""
        rules_data = [rule.model_dump(mode="json") for rule in self._rules.values()]
        return json.dumps(rules_data, indent=2)

    def import_rules(self, json_data: str) -> int:
        """
        Import rules from JSON.

        Returns number of rules imported.
        """
        rules_data = json.loads(json_data)
        count = 0

        for rule_dict in rules_data:
            self.add_rule(BusinessRule.model_validate(rule_dict))
            count += 1

        logger.info(f"Imported {count} business rules")
        return count
