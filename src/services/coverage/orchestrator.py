"""
Combined Insurance Calculation Orchestrator.
Source: Design Document Section 4.4 - Combined Insurance Orchestrator
Verified: 2025-12-18

Sequences primary then supplementary coverage for one or many services and
assembles the patient-facing result. Every public operation returns a
ServiceResult; no exception leaves this module.
"""

import asyncio
import logging
import time
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Iterable, Optional, Sequence, Union

from src.core.config import CoverageSettings, get_coverage_settings
from src.core.enums import ErrorCategory, InsuranceType
from src.core.money import (
    MONEY_TOLERANCE,
    ZERO,
    non_negative,
    percent_of,
    ratio_percent,
    to_decimal,
    to_money,
)
from src.schemas.calculation import (
    AdvancedCalculationResult,
    CalculationAdjustments,
    CalculationEvent,
    CalculationResult,
    CombinedCalculationResult,
    ErrorEvent,
    RuleOverrides,
    SupplementaryCalculationResult,
)
from src.schemas.common import ServiceResult
from src.schemas.insurance import (
    InsuranceCalculationContext,
    PatientInsurance,
    PlanService,
)
from src.services.coverage.data_access import InsuranceDataAccessor, RuleRepository
from src.services.coverage.primary_calculator import PrimaryCoverageCalculator
from src.services.coverage.rule_engine import BusinessRuleEngine
from src.services.coverage.supplementary_calculator import SupplementaryCoverageCalculator
from src.services.performance.cache import (
    CalculationCache,
    create_calculation_cache,
    make_calculation_key,
)
from src.services.performance.monitor import CalculationMonitor, create_calculation_monitor
from src.utils.errors import (
    CombinedCalculationError,
    CoverageEngineError,
    InvalidInputError,
    InvariantViolationError,
    NotFoundError,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE = "error calculating combined insurance"

DateInput = Union[date, datetime, None]
AmountInput = Union[Decimal, int, float, str]


class CombinedInsuranceCalculator:
    """
    Orchestrates combined primary + supplementary coverage.

    Pipeline for one service:
    1. Input validation
    2. Active primary policy resolution
    3. Plan and plan-service (or primary tariff) resolution
    4. Business rule overrides, when a rule engine is configured
    5. Primary coverage
    6. Active supplementary policy resolution (optional)
    7. Supplementary coverage on the primary remainder
    8. Result assembly, invariant check and event reporting
    """

    def __init__(
        self,
        data: InsuranceDataAccessor,
        rule_engine: Optional[BusinessRuleEngine] = None,
        settings: Optional[CoverageSettings] = None,
        cache: Optional[CalculationCache] = None,
        monitor: Optional[CalculationMonitor] = None,
        primary_calculator: Optional[PrimaryCoverageCalculator] = None,
        supplementary_calculator: Optional[SupplementaryCoverageCalculator] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        """
        Initialize the orchestrator.

        Args:
            data: Plan, tariff and policy accessor
            rule_engine: Optional business rule engine
            settings: Engine settings
            cache: Optional memoizing cache for supplementary results
            monitor: Optional sink for calculation / error events
            primary_calculator: PrimaryCoverageCalculator instance
            supplementary_calculator: SupplementaryCoverageCalculator instance
            clock: Source of "today" for date validation
        """
        self.data = data
        self.rule_engine = rule_engine
        self.settings = settings or get_coverage_settings()
        self.cache = cache if self.settings.CACHE_ENABLED else None
        self.monitor = monitor
        self.primary_calculator = primary_calculator or PrimaryCoverageCalculator()
        self.supplementary_calculator = (
            supplementary_calculator or SupplementaryCoverageCalculator()
        )
        self._today = clock or date.today

    # =========================================================================
    # Public Operations
    # =========================================================================

    async def calculate(
        self,
        patient_id: int,
        service_id: int,
        service_amount: AmountInput,
        calculation_date: DateInput = None,
    ) -> ServiceResult[CombinedCalculationResult]:
        """
        Calculate combined coverage for one service.

        Args:
            patient_id: Patient identifier
            service_id: Medical service identifier
            service_amount: Amount billed for the service
            calculation_date: Date of service (defaults to today)

        Returns:
            Result with the CombinedCalculationResult
        """
        return await self._run(patient_id, service_id, service_amount, calculation_date)

    async def calculate_for_services(
        self,
        patient_id: int,
        service_ids: Sequence[int],
        amounts: Sequence[AmountInput],
        calculation_date: DateInput = None,
    ) -> ServiceResult[list[CombinedCalculationResult]]:
        """
        Calculate several services for one patient.

        Failing services are logged and left out; the output keeps input
        order for the services that succeeded.
        """
        if len(service_ids) != len(amounts):
            return ServiceResult.fail(
                "service count and amounts mismatch", ErrorCategory.VALIDATION
            )

        outcomes = await asyncio.gather(
            *(
                self._run(patient_id, service_id, amount, calculation_date)
                for service_id, amount in zip(service_ids, amounts)
            )
        )

        results: list[CombinedCalculationResult] = []
        for index, (service_id, outcome) in enumerate(zip(service_ids, outcomes)):
            if outcome.success:
                results.append(outcome.data)
            else:
                logger.warning(
                    f"Skipping service {service_id} (position {index}) for patient "
                    f"{patient_id}: {outcome.message}"
                )

        return ServiceResult.ok(
            results, f"{len(results)} of {len(service_ids)} services calculated"
        )

    async def calculate_advanced(
        self,
        patient_id: int,
        service_id: int,
        service_amount: AmountInput,
        calculation_date: DateInput = None,
        adjustments: Optional[CalculationAdjustments] = None,
    ) -> ServiceResult[AdvancedCalculationResult]:
        """
        Combined calculation followed by caller adjustments and analytics.

        The discount is taken off the final patient share first, then the
        share is capped at ``max_patient_payment``.
        """
        adjustments = adjustments or CalculationAdjustments()

        outcome = await self._run(patient_id, service_id, service_amount, calculation_date)
        if outcome.failed:
            return ServiceResult.fail(outcome.message, outcome.error_category)

        combined = outcome.data
        share = combined.final_patient_share
        discount = percent_of(share, adjustments.discount_percent)
        adjusted = to_money(share - discount)
        if adjustments.max_patient_payment is not None and adjusted > adjustments.max_patient_payment:
            adjusted = to_money(adjustments.max_patient_payment)

        amount = combined.service_amount
        return ServiceResult.ok(
            AdvancedCalculationResult(
                **combined.model_dump(),
                discount_amount=discount,
                adjusted_patient_share=adjusted,
                total_coverage_percent=ratio_percent(combined.total_coverage, amount),
                patient_share_percent=ratio_percent(adjusted, amount),
                patient_savings=to_money(amount - adjusted),
            )
        )

    async def compare_insurance_options(
        self,
        patient_id: int,
        service_id: int,
        service_amount: AmountInput,
        calculation_date: DateInput = None,
        alternative_plan_ids: Iterable[int] = (),
    ) -> ServiceResult[list[CombinedCalculationResult]]:
        """
        Current coverage first, then the same calculation with each
        alternative primary plan. Alternatives that fail are left out.
        """
        current = await self._run(patient_id, service_id, service_amount, calculation_date)
        if current.failed:
            return ServiceResult.fail(current.message, current.error_category)

        options = [current.data]
        for plan_id in alternative_plan_ids:
            if plan_id == current.data.primary_plan_id:
                continue

            outcome = await self._run(
                patient_id, service_id, service_amount, calculation_date, primary_plan_id=plan_id
            )
            if outcome.failed:
                logger.info(f"Alternative plan {plan_id} not applicable: {outcome.message}")
                continue

            option = outcome.data
            options.append(
                option.model_copy(update={"notes": f"Alternative plan {plan_id}: {option.notes}"})
            )

        return ServiceResult.ok(options)

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def _run(
        self,
        patient_id: int,
        service_id: int,
        service_amount: AmountInput,
        calculation_date: DateInput,
        primary_plan_id: Optional[int] = None,
    ) -> ServiceResult[CombinedCalculationResult]:
        start_time = time.perf_counter()

        try:
            amount = self._parse_amount(service_amount)
            as_of = self._parse_date(calculation_date)
            result = await self._calculate(patient_id, service_id, amount, as_of, primary_plan_id)
        except CoverageEngineError as e:
            self._report_failure(patient_id, service_id, service_amount, e.message, e.category, start_time)
            return ServiceResult.from_error(e)
        except Exception as e:
            logger.exception(
                f"Unexpected error calculating coverage for patient {patient_id}, "
                f"service {service_id}"
            )
            self._report_failure(
                patient_id, service_id, service_amount, str(e), ErrorCategory.SYSTEM, start_time
            )
            return ServiceResult.fail(GENERIC_FAILURE, ErrorCategory.SYSTEM)

        self._report_success(result, start_time)
        return ServiceResult.ok(result)

    async def _calculate(
        self,
        patient_id: int,
        service_id: int,
        amount: Decimal,
        as_of: date,
        primary_plan_id: Optional[int],
    ) -> CombinedCalculationResult:
        # Step 1: Input validation
        self._validate_inputs(patient_id, service_id, amount, as_of)

        # Step 2: Active primary policy
        policies = await self.data.get_patient_insurances(patient_id)
        primary_policy = self._resolve_policy(policies, is_primary=True, as_of=as_of)
        if primary_policy is None:
            raise NotFoundError("active primary insurance not found")

        # Step 3: Plan and service configuration
        plan = await self.data.get_plan(primary_plan_id or primary_policy.plan_id)
        if plan is None:
            raise NotFoundError("insurance not found")
        if not plan.is_valid_on(as_of):
            raise NotFoundError("patient insurance not valid at calculation date")
        plan_service = await self._resolve_plan_service(plan.id, service_id)

        context = InsuranceCalculationContext(
            service_amount=amount,
            calculation_date=as_of,
            plan=plan,
            plan_service=plan_service,
            patient=await self.data.get_patient(patient_id),
            service=await self.data.get_service(service_id),
        )

        # Step 4 + 5: Rule overrides and primary coverage
        primary = await self._primary_coverage(context)

        # Step 6: Supplementary policy (optional)
        supplementary_policy = self._resolve_policy(policies, is_primary=False, as_of=as_of)
        if supplementary_policy is None:
            return self._primary_only(patient_id, service_id, as_of, primary)

        overrides = await self._supplementary_overrides(context, supplementary_policy)
        if overrides.supplementary_applicable is False:
            logger.info(
                f"Supplementary insurance not applicable for patient {patient_id}, "
                f"service {service_id} (rule {overrides.rule_name})"
            )
            return self._primary_only(patient_id, service_id, as_of, primary)

        # Step 7: Supplementary coverage on the primary remainder
        supplementary = await self._supplementary_coverage(
            patient_id, service_id, supplementary_policy.plan_id, primary, as_of, overrides
        )

        # Step 8: Assembly
        result = self._combine(patient_id, service_id, primary, supplementary, supplementary_policy)
        self._check_invariants(result)
        return result

    async def _resolve_plan_service(self, plan_id: int, service_id: int) -> PlanService:
        plan_service = await self.data.get_plan_service(plan_id, service_id)
        if plan_service is not None:
            return plan_service

        # No explicit configuration: derive coverage from the primary tariff
        tariff = await self.data.get_tariff(plan_id, service_id, InsuranceType.PRIMARY)
        if tariff is None:
            raise NotFoundError("insurance configuration not found for this service")

        return PlanService(
            plan_id=plan_id,
            service_id=service_id,
            coverage_override=ratio_percent(tariff.insurer_share, tariff.tariff_price),
        )

    async def _primary_coverage(self, context: InsuranceCalculationContext) -> CalculationResult:
        coverage_percent: Optional[Decimal] = None
        deductible: Optional[Decimal] = None

        if self._rules_enabled:
            coverage_percent = self._unwrap(
                await self.rule_engine.calculate_coverage_percent(context)
            )
            deductible = self._unwrap(await self.rule_engine.calculate_deductible(context))
            self._unwrap(await self.rule_engine.validate_payment_limits(context))

        return self._unwrap(
            self.primary_calculator.calculate_coverage(
                context.service_amount,
                context.plan,
                context.plan_service,
                coverage_percent=coverage_percent,
                deductible=deductible,
            )
        )

    async def _supplementary_overrides(
        self,
        context: InsuranceCalculationContext,
        policy: PatientInsurance,
    ) -> RuleOverrides:
        if not self._rules_enabled:
            return RuleOverrides()

        supplementary_plan = await self.data.get_plan(policy.plan_id)
        supplementary_context = context.model_copy(
            update={"plan": supplementary_plan, "plan_service": None}
        )
        return self._unwrap(await self.rule_engine.apply_supplementary_rules(supplementary_context))

    async def _supplementary_coverage(
        self,
        patient_id: int,
        service_id: int,
        plan_id: int,
        primary: CalculationResult,
        as_of: date,
        overrides: RuleOverrides,
    ) -> SupplementaryCalculationResult:
        async def compute() -> SupplementaryCalculationResult:
            tariff = None
            if primary.total_amount > primary.insurance_coverage:
                tariff = await self.data.get_tariff(
                    plan_id, service_id, InsuranceType.SUPPLEMENTARY
                )

            outcome = self.supplementary_calculator.calculate_supplementary(
                primary.total_amount,
                primary.insurance_coverage,
                tariff,
                calculation_date=as_of,
                coverage_percent=overrides.coverage_percent,
                max_payment=overrides.max_payment,
            )
            if (
                outcome.failed
                and outcome.error_category == ErrorCategory.NOT_FOUND
                and not self.settings.REQUIRE_SUPPLEMENTARY_TARIFF
            ):
                logger.warning(
                    f"No supplementary tariff for plan {plan_id}, service {service_id}; "
                    f"patient liable for remaining amount"
                )
                return self.supplementary_calculator.remaining_only(
                    primary.total_amount, primary.insurance_coverage, as_of
                )
            return self._unwrap(outcome)

        if self.cache is None or overrides.matched:
            return await compute()

        key = make_calculation_key(
            patient_id, service_id, primary.total_amount, primary.insurance_coverage, as_of
        )
        return await self.cache.get_or_compute(key, compute)

    # =========================================================================
    # Assembly
    # =========================================================================

    @staticmethod
    def _primary_only(
        patient_id: int,
        service_id: int,
        as_of: date,
        primary: CalculationResult,
    ) -> CombinedCalculationResult:
        return CombinedCalculationResult(
            patient_id=patient_id,
            service_id=service_id,
            service_amount=primary.total_amount,
            calculation_date=as_of,
            primary_plan_id=primary.plan_id,
            primary_coverage=primary.insurance_coverage,
            primary_coverage_percent=primary.coverage_percent,
            deductible_amount=primary.deductible_amount,
            final_patient_share=primary.patient_payment,
            total_coverage=primary.insurance_coverage,
            is_fully_covered=primary.patient_payment == ZERO,
            notes=f"Primary: {primary.coverage_percent:.1f}%",
        )

    @staticmethod
    def _combine(
        patient_id: int,
        service_id: int,
        primary: CalculationResult,
        supplementary: SupplementaryCalculationResult,
        policy: PatientInsurance,
    ) -> CombinedCalculationResult:
        tariff_percent = supplementary.supplementary_coverage_percent or ZERO
        notes = f"Primary: {primary.coverage_percent:.1f}%, Supplementary: {tariff_percent:.1f}%"
        if supplementary.primary_coverage >= supplementary.service_amount:
            notes = f"Primary: {primary.coverage_percent:.1f}%, primary covers full amount"

        return CombinedCalculationResult(
            patient_id=patient_id,
            service_id=service_id,
            service_amount=supplementary.service_amount,
            calculation_date=supplementary.calculation_date,
            primary_plan_id=primary.plan_id,
            primary_coverage=supplementary.primary_coverage,
            primary_coverage_percent=primary.coverage_percent,
            deductible_amount=primary.deductible_amount,
            supplementary_plan_id=policy.plan_id,
            supplementary_coverage=supplementary.supplementary_coverage,
            supplementary_coverage_percent=ratio_percent(
                supplementary.supplementary_coverage, supplementary.service_amount
            ),
            final_patient_share=supplementary.final_patient_share,
            total_coverage=supplementary.total_coverage,
            has_supplementary=True,
            is_fully_covered=supplementary.is_fully_covered,
            notes=notes,
        )

    @staticmethod
    def _check_invariants(result: CombinedCalculationResult) -> None:
        violations: list[str] = []
        if result.final_patient_share < ZERO:
            violations.append("final patient share is negative")
        if result.total_coverage > result.service_amount:
            violations.append("total coverage exceeds service amount")
        if abs(result.total_coverage + result.final_patient_share - result.service_amount) > MONEY_TOLERANCE:
            violations.append("coverage and patient share do not add up to service amount")
        if violations:
            raise InvariantViolationError(violations)

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def _rules_enabled(self) -> bool:
        return self.rule_engine is not None and self.settings.APPLY_BUSINESS_RULES

    def _validate_inputs(self, patient_id: int, service_id: int, amount: Decimal, as_of: date) -> None:
        if not self._is_id(patient_id) or patient_id <= 0:
            raise InvalidInputError("patient id must be greater than zero")
        if not self._is_id(service_id) or service_id <= 0:
            raise InvalidInputError("service id must be greater than zero")
        if amount <= ZERO:
            raise InvalidInputError("service amount must be greater than zero")
        if amount > self.settings.MAX_SERVICE_AMOUNT:
            raise InvalidInputError(
                f"service amount exceeds the maximum of {self.settings.MAX_SERVICE_AMOUNT}"
            )
        latest = self._today() + timedelta(days=self.settings.FUTURE_DATE_TOLERANCE_DAYS)
        if as_of > latest:
            raise InvalidInputError("calculation date is too far in the future")

    def _parse_date(self, value: DateInput) -> date:
        if value is None:
            return self._today()
        if isinstance(value, datetime):
            return value.date()
        if not isinstance(value, date):
            raise InvalidInputError(f"invalid calculation date: {value!r}")
        return value

    @staticmethod
    def _parse_amount(value: AmountInput) -> Decimal:
        if isinstance(value, bool):
            raise InvalidInputError(f"invalid service amount: {value!r}")
        try:
            amount = to_decimal(value)
        except (ValueError, TypeError) as e:
            raise InvalidInputError(f"invalid service amount: {value!r}") from e
        if not amount.is_finite():
            raise InvalidInputError(f"invalid service amount: {value!r}")
        return amount

    @staticmethod
    def _is_id(value: object) -> bool:
        return isinstance(value, int) and not isinstance(value, bool)

    @staticmethod
    def _resolve_policy(
        policies: list[PatientInsurance],
        is_primary: bool,
        as_of: date,
    ) -> Optional[PatientInsurance]:
        active = [p for p in policies if p.is_primary == is_primary and p.is_active_on(as_of)]
        if len(active) > 1:
            logger.warning(
                f"Patient {active[0].patient_id} has {len(active)} active "
                f"{'primary' if is_primary else 'supplementary'} policies; using latest"
            )
        return max(active, key=lambda p: p.start_date, default=None)

    @staticmethod
    def _unwrap(result: ServiceResult):
        if result.failed:
            raise CombinedCalculationError(result.message, result.error_category)
        return result.data

    def _report_success(self, result: CombinedCalculationResult, start_time: float) -> None:
        if self.monitor is None:
            return
        self.monitor.record_calculation(
            CalculationEvent(
                patient_id=result.patient_id,
                service_id=result.service_id,
                service_amount=result.service_amount,
                primary_coverage=result.primary_coverage,
                supplementary_coverage=result.supplementary_coverage,
                final_patient_share=result.final_patient_share,
                duration_ms=(time.perf_counter() - start_time) * 1000,
                success=True,
            )
        )

    def _report_failure(
        self,
        patient_id: int,
        service_id: int,
        service_amount: AmountInput,
        message: str,
        category: ErrorCategory,
        start_time: float,
    ) -> None:
        if self.monitor is None:
            return
        try:
            try:
                amount = self._parse_amount(service_amount)
            except InvalidInputError:
                amount = ZERO
            # Malformed ids are reported as 0
            patient = patient_id if self._is_id(patient_id) else 0
            service = service_id if self._is_id(service_id) else 0

            self.monitor.record_calculation(
                CalculationEvent(
                    patient_id=patient,
                    service_id=service,
                    service_amount=non_negative(amount),
                    duration_ms=(time.perf_counter() - start_time) * 1000,
                    success=False,
                    error_message=message,
                )
            )
            self.monitor.record_error(
                ErrorEvent(
                    error_type=category.value,
                    error_message=message,
                    category=category,
                    patient_id=patient,
                    service_id=service,
                )
            )
        except Exception:
            logger.exception(
                f"Failed to report calculation failure for patient {patient_id!r}, "
                f"service {service_id!r}"
            )


# =============================================================================
# Factory Functions
# =============================================================================


def create_combined_insurance_calculator(
    data: InsuranceDataAccessor,
    rules: Optional[RuleRepository] = None,
    settings: Optional[CoverageSettings] = None,
) -> CombinedInsuranceCalculator:
    """Wire an orchestrator with rule engine, cache and monitor from settings."""
    settings = settings or get_coverage_settings()
    return CombinedInsuranceCalculator(
        data=data,
        rule_engine=BusinessRuleEngine(rules, settings=settings) if rules is not None else None,
        settings=settings,
        cache=create_calculation_cache(settings),
        monitor=create_calculation_monitor(settings),
    )
