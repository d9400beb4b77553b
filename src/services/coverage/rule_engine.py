"""
Business Rule Engine.

Evaluates configurable business rules against a calculation context:
- Coverage percent overrides
- Deductible overrides
- Payment limit validation
- Supplementary insurance applicability and caps
- Validation rules (aggregated)

Rules of one type are ordered by descending priority and the first rule
whose conditions all hold, and whose actions produce the effect asked
for, wins. Validation rules are the exception: every matching rule
contributes.

Source: Design Document Section 4.1 - Business Rule Engine
Verified: 2025-12-18
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Callable, Iterable, Optional

from src.core.config import CoverageSettings, get_coverage_settings
from src.core.enums import ActionKind, BusinessRuleType, ConditionKind, ErrorCategory
from src.core.money import HUNDRED, ZERO, clamp, non_negative, to_money
from src.schemas.calculation import BusinessRuleValidation, RuleOverrides
from src.schemas.common import ServiceResult
from src.schemas.insurance import InsuranceCalculationContext
from src.services.coverage.data_access import RuleRepository
from src.services.coverage.rule_language import (
    CompiledRule,
    RuleAction,
    RuleCondition,
    compile_rule,
)
from src.utils.errors import RuleCompilationError

logger = logging.getLogger(__name__)

DEFAULT_LIMIT_MESSAGE = "payment limit exceeded"

OverridePredicate = Callable[[RuleOverrides], bool]


class BusinessRuleEngine:
    """
    Rule engine for coverage calculations.

    The engine holds no per-calculation state; rules are fetched from the
    repository and compiled on every evaluation.
    """

    def __init__(
        self,
        repository: RuleRepository,
        settings: Optional[CoverageSettings] = None,
        clock: Optional[Callable[[], date]] = None,
    ):
        self.repository = repository
        self.settings = settings or get_coverage_settings()
        self._today = clock or date.today

    # =========================================================================
    # Rule Loading
    # =========================================================================

    async def load_rules(
        self,
        rule_type: BusinessRuleType,
        context: InsuranceCalculationContext,
    ) -> list[CompiledRule]:
        """Fetch and compile the rules in scope, highest priority first."""
        stored = await self.repository.get_active_rules(
            rule_type, context.plan_id, context.category_id
        )

        compiled: list[CompiledRule] = []
        for rule in sorted(stored, key=lambda r: r.priority, reverse=True):
            try:
                compiled.append(compile_rule(rule))
            except RuleCompilationError as e:
                logger.warning(f"Skipping business rule {rule.id} ({rule.name}): {e.message}")
        return compiled

    # =========================================================================
    # Evaluation
    # =========================================================================

    async def evaluate(
        self,
        rule_type: BusinessRuleType,
        context: InsuranceCalculationContext,
    ) -> ServiceResult[RuleOverrides]:
        """
        Evaluate rules of one type and return the first match's effects.

        Args:
            rule_type: Rule family to evaluate
            context: Calculation context (never modified)

        Returns:
            Result with the matching rule's overrides, or empty overrides
            (``matched=False``) when nothing matched
        """
        return await self._first_match(rule_type, context, lambda o: o.has_effect)

    async def calculate_coverage_percent(
        self, context: InsuranceCalculationContext
    ) -> ServiceResult[Decimal]:
        """Coverage percent: rule override, else plan-service override, else plan."""
        if context.plan is None:
            return ServiceResult.fail("insurance not found", ErrorCategory.NOT_FOUND)

        matched = await self._first_match(
            BusinessRuleType.COVERAGE_PERCENT,
            context,
            lambda o: o.coverage_percent is not None,
        )
        if matched.failed:
            return ServiceResult.fail(matched.message, matched.error_category)

        overrides = matched.data
        if overrides.matched:
            percent = overrides.coverage_percent
            message = f"coverage percent from rule '{overrides.rule_name}'"
        elif context.plan_service and context.plan_service.coverage_override is not None:
            percent = context.plan_service.coverage_override
            message = "coverage percent from plan service"
        else:
            percent = context.plan.coverage_percent
            message = "coverage percent from plan"

        return ServiceResult.ok(clamp(percent, ZERO, HUNDRED), message)

    async def calculate_deductible(
        self, context: InsuranceCalculationContext
    ) -> ServiceResult[Decimal]:
        """Deductible: rule override, else plan deductible."""
        if context.plan is None:
            return ServiceResult.fail("insurance not found", ErrorCategory.NOT_FOUND)

        matched = await self._first_match(
            BusinessRuleType.DEDUCTIBLE,
            context,
            lambda o: o.deductible is not None,
        )
        if matched.failed:
            return ServiceResult.fail(matched.message, matched.error_category)

        overrides = matched.data
        if overrides.matched:
            return ServiceResult.ok(
                non_negative(overrides.deductible),
                f"deductible from rule '{overrides.rule_name}'",
            )
        return ServiceResult.ok(non_negative(context.plan.deductible), "deductible from plan")

    async def validate_payment_limits(
        self, context: InsuranceCalculationContext
    ) -> ServiceResult[bool]:
        """Fail with the rule's message when a payment limit rule is violated."""
        matched = await self._first_match(
            BusinessRuleType.PAYMENT_LIMIT,
            context,
            lambda o: o.is_valid is not None,
        )
        if matched.failed:
            return ServiceResult.fail(matched.message, matched.error_category)

        overrides = matched.data
        if overrides.matched and overrides.is_valid is False:
            return ServiceResult.fail(
                overrides.error_message or DEFAULT_LIMIT_MESSAGE,
                ErrorCategory.VALIDATION,
                data=False,
            )
        return ServiceResult.ok(True)

    async def apply_supplementary_rules(
        self, context: InsuranceCalculationContext
    ) -> ServiceResult[RuleOverrides]:
        """First matching supplementary rule: coverage %, max payment, applicability."""
        return await self._first_match(
            BusinessRuleType.SUPPLEMENTARY_INSURANCE,
            context,
            lambda o: o.has_effect,
        )

    async def validate_business_rules(
        self, context: InsuranceCalculationContext
    ) -> ServiceResult[BusinessRuleValidation]:
        """
        Run every matching validation rule.

        Unlike the other rule types, validation rules are aggregated:
        each matching rule is recorded, violated limits become errors and
        matching rules that only carry a message become warnings.
        """
        try:
            rules = await self.load_rules(BusinessRuleType.VALIDATION, context)
        except Exception:
            logger.exception("Error loading validation rules")
            return ServiceResult.fail("error evaluating business rules", ErrorCategory.SYSTEM)

        validation = BusinessRuleValidation()
        for rule in rules:
            outcome = self._evaluate_rule(rule, context)
            if outcome is None:
                continue

            validation.applied_rules.append(rule.name)
            if outcome.is_valid is False:
                validation.errors.append(outcome.error_message or DEFAULT_LIMIT_MESSAGE)
            elif not outcome.has_effect and rule.rule.error_message:
                validation.warnings.append(rule.rule.error_message)

        validation.is_valid = not validation.errors
        return ServiceResult.ok(validation)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _first_match(
        self,
        rule_type: BusinessRuleType,
        context: InsuranceCalculationContext,
        wanted: OverridePredicate,
    ) -> ServiceResult[RuleOverrides]:
        try:
            rules = await self.load_rules(rule_type, context)
        except Exception:
            logger.exception(f"Error loading {rule_type.value} rules")
            return ServiceResult.fail("error evaluating business rules", ErrorCategory.SYSTEM)

        match = self.first_match(rules, context, wanted)
        if match is None:
            return ServiceResult.ok(RuleOverrides())

        logger.debug(f"Rule {match.rule_id} ({match.rule_name}) applied for {rule_type.value}")
        return ServiceResult.ok(match)

    def first_match(
        self,
        rules: Iterable[CompiledRule],
        context: InsuranceCalculationContext,
        wanted: OverridePredicate,
    ) -> Optional[RuleOverrides]:
        """First rule outcome satisfying ``wanted``; later rules are not evaluated."""
        outcomes = (self._evaluate_rule(rule, context) for rule in rules)
        return next((o for o in outcomes if o is not None and wanted(o)), None)

    def _evaluate_rule(
        self,
        rule: CompiledRule,
        context: InsuranceCalculationContext,
    ) -> Optional[RuleOverrides]:
        """Overrides produced by the rule, or None when it does not match."""
        if not rule.rule.is_active:
            return None
        if not rule.rule.is_effective_on(context.calculation_date):
            return None

        try:
            for condition in rule.conditions:
                if not self._evaluate_condition(condition, context, rule):
                    return None
            return self._apply_actions(rule, context)
        except Exception:
            logger.exception(f"Error evaluating business rule {rule.id} ({rule.name})")
            return None

    def _evaluate_condition(
        self,
        condition: RuleCondition,
        context: InsuranceCalculationContext,
        rule: CompiledRule,
    ) -> bool:
        kind = condition.kind

        if kind == ConditionKind.UNKNOWN:
            if self.settings.rejects_unknown_conditions:
                logger.warning(f"Rule {rule.id}: unknown condition '{condition.key}', rule rejected")
                return False
            logger.warning(f"Rule {rule.id}: unknown condition '{condition.key}' treated as satisfied")
            return True

        if kind == ConditionKind.PATIENT_AGE:
            patient = context.patient
            if patient is None or patient.birth_year is None:
                return False
            age = self._today().year - patient.birth_year
            return condition.numeric.contains(Decimal(age))

        if kind == ConditionKind.SERVICE_AMOUNT:
            return condition.numeric.contains(context.service_amount)

        actual = self._equality_value(kind, context)
        if actual is None:
            return False
        return str(actual).strip().lower() == condition.expected

    @staticmethod
    def _equality_value(kind: ConditionKind, context: InsuranceCalculationContext) -> Optional[object]:
        if kind == ConditionKind.PATIENT_GENDER:
            if context.patient is None or context.patient.gender is None:
                return None
            return context.patient.gender.value
        if kind == ConditionKind.SERVICE_CATEGORY:
            return context.category_id
        if kind == ConditionKind.INSURANCE_PLAN:
            return context.plan_id
        return None

    def _apply_actions(
        self,
        rule: CompiledRule,
        context: InsuranceCalculationContext,
    ) -> Optional[RuleOverrides]:
        effects: dict = {}

        for action in rule.actions:
            if action.kind == ActionKind.UNKNOWN:
                if self.settings.rejects_unknown_actions:
                    logger.warning(f"Rule {rule.id}: unknown action '{action.key}', rule rejected")
                    return None
                logger.warning(f"Rule {rule.id}: unknown action '{action.key}' ignored")
                continue
            effects.update(self._action_effect(action, rule, context))

        return RuleOverrides(matched=True, rule_id=rule.id, rule_name=rule.name, **effects)

    @staticmethod
    def _action_effect(
        action: RuleAction,
        rule: CompiledRule,
        context: InsuranceCalculationContext,
    ) -> dict:
        if action.kind == ActionKind.SET_COVERAGE_PERCENT:
            return {"coverage_percent": clamp(action.value, ZERO, HUNDRED)}

        if action.kind == ActionKind.SET_DEDUCTIBLE:
            return {"deductible": to_money(action.value)}

        if action.kind == ActionKind.SET_MAX_PAYMENT:
            return {"max_payment": to_money(action.value)}

        if action.kind == ActionKind.VALIDATE_PAYMENT_LIMIT:
            if context.service_amount <= action.value:
                return {"is_valid": True}
            return {
                "is_valid": False,
                "error_message": action.message or rule.rule.error_message or DEFAULT_LIMIT_MESSAGE,
            }

        if action.kind == ActionKind.SET_SUPPLEMENTARY_APPLICABLE:
            return {"supplementary_applicable": action.value}

        return {}


def create_business_rule_engine(
    repository: RuleRepository,
    settings: Optional[CoverageSettings] = None,
) -> BusinessRuleEngine:
    """Create a rule engine over a repository."""
    return BusinessRuleEngine(repository=repository, settings=settings)
