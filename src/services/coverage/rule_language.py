"""
Business Rule Language.

Stored rules keep their conditions and actions as keyed maps, e.g.::

    conditions = {"patient_age": {"min": 60}, "service_category": 4}
    actions = {"set_coverage_percent": 90}

They are compiled once, at load time, into typed parts: a closed set of
condition and action kinds, each with a normalised payload. Keys outside
that set compile to the ``UNKNOWN`` kind and are handled by the engine's
configured policy.

Source: Design Document Section 4.1 - Business Rule Engine
Verified: 2025-12-18
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Optional

from src.core.enums import ActionKind, BusinessRuleType, ConditionKind
from src.core.money import to_decimal
from src.schemas.insurance import BusinessRule
from src.utils.errors import RuleCompilationError

NUMERIC_CONDITIONS = frozenset({ConditionKind.PATIENT_AGE, ConditionKind.SERVICE_AMOUNT})
AMOUNT_ACTIONS = frozenset(
    {
        ActionKind.SET_COVERAGE_PERCENT,
        ActionKind.SET_DEDUCTIBLE,
        ActionKind.SET_MAX_PAYMENT,
        ActionKind.VALIDATE_PAYMENT_LIMIT,
    }
)

_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


# =============================================================================
# Compiled Rule Parts
# =============================================================================


@dataclass(frozen=True)
class NumericRange:
    """Inclusive numeric bounds; every bound given must hold."""

    minimum: Optional[Decimal] = None
    maximum: Optional[Decimal] = None
    equals: Optional[Decimal] = None

    def contains(self, value: Decimal) -> bool:
        if self.minimum is not None and value < self.minimum:
            return False
        if self.maximum is not None and value > self.maximum:
            return False
        if self.equals is not None and value != self.equals:
            return False
        return True


@dataclass(frozen=True)
class RuleCondition:
    """A single compiled condition."""

    kind: ConditionKind
    key: str
    numeric: Optional[NumericRange] = None  # numeric kinds
    expected: Optional[str] = None  # equality kinds


@dataclass(frozen=True)
class RuleAction:
    """A single compiled action."""

    kind: ActionKind
    key: str
    value: Any = None  # Decimal for amount actions, bool for applicability
    message: Optional[str] = None


@dataclass(frozen=True)
class CompiledRule:
    """A business rule with its conditions and actions compiled."""

    rule: BusinessRule
    conditions: tuple[RuleCondition, ...] = field(default_factory=tuple)
    actions: tuple[RuleAction, ...] = field(default_factory=tuple)

    @property
    def id(self) -> int:
        return self.rule.id

    @property
    def name(self) -> str:
        return self.rule.name

    @property
    def priority(self) -> int:
        return self.rule.priority

    @property
    def rule_type(self) -> BusinessRuleType:
        return self.rule.rule_type

    @property
    def unknown_conditions(self) -> list[str]:
        return [c.key for c in self.conditions if c.kind == ConditionKind.UNKNOWN]

    @property
    def unknown_actions(self) -> list[str]:
        return [a.key for a in self.actions if a.kind == ActionKind.UNKNOWN]


# =============================================================================
# Compilation
# =============================================================================


def _condition_kind(key: str) -> ConditionKind:
    try:
        return ConditionKind(key)
    except ValueError:
        return ConditionKind.UNKNOWN


def _action_kind(key: str) -> ActionKind:
    try:
        return ActionKind(key)
    except ValueError:
        return ActionKind.UNKNOWN


def _number(rule_id: int, key: str, value: Any) -> Decimal:
    if isinstance(value, bool) or value is None:
        raise RuleCompilationError(rule_id, f"'{key}' expects a number, got {value!r}")
    try:
        return to_decimal(value)
    except (ValueError, TypeError) as exc:
        raise RuleCompilationError(rule_id, f"'{key}' expects a number, got {value!r}") from exc


def _optional_number(rule_id: int, key: str, value: Any) -> Optional[Decimal]:
    return None if value is None else _number(rule_id, key, value)


def _flag(rule_id: int, key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
        return value.strip().lower() in _TRUE_STRINGS
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    raise RuleCompilationError(rule_id, f"'{key}' expects a boolean, got {value!r}")


def compile_condition(rule_id: int, key: str, payload: Any) -> RuleCondition:
    """Compile one ``key: payload`` condition entry."""
    kind = _condition_kind(key)

    if kind == ConditionKind.UNKNOWN:
        return RuleCondition(kind=kind, key=key)

    if kind in NUMERIC_CONDITIONS:
        if isinstance(payload, dict):
            numeric = NumericRange(
                minimum=_optional_number(rule_id, key, payload.get("min")),
                maximum=_optional_number(rule_id, key, payload.get("max")),
                equals=_optional_number(rule_id, key, payload.get("equals")),
            )
        else:
            numeric = NumericRange(equals=_number(rule_id, key, payload))
        return RuleCondition(kind=kind, key=key, numeric=numeric)

    # Equality kinds
    if isinstance(payload, dict):
        payload = payload.get("equals")
    if payload is None or isinstance(payload, (list, tuple, dict)):
        raise RuleCompilationError(rule_id, f"'{key}' expects a single value, got {payload!r}")
    return RuleCondition(kind=kind, key=key, expected=str(payload).strip().lower())


def compile_action(rule_id: int, key: str, payload: Any) -> RuleAction:
    """Compile one ``key: payload`` action entry."""
    kind = _action_kind(key)

    if kind == ActionKind.UNKNOWN:
        return RuleAction(kind=kind, key=key, value=payload)

    message = None
    if isinstance(payload, dict):
        message = payload.get("message")
        payload = payload.get("limit", payload.get("value"))

    if kind == ActionKind.SET_SUPPLEMENTARY_APPLICABLE:
        return RuleAction(kind=kind, key=key, value=_flag(rule_id, key, payload))

    value = _number(rule_id, key, payload)
    if value < 0:
        raise RuleCompilationError(rule_id, f"'{key}' must not be negative")
    return RuleAction(kind=kind, key=key, value=value, message=message)


def compile_rule(rule: BusinessRule) -> CompiledRule:
    """
    Compile a stored rule.

    Raises:
        RuleCompilationError: when a known key carries a malformed payload
    """
    conditions = tuple(
        compile_condition(rule.id, key, payload) for key, payload in rule.conditions.items()
    )
    actions = tuple(
        compile_action(rule.id, key, payload) for key, payload in rule.actions.items()
    )
    return CompiledRule(rule=rule, conditions=conditions, actions=actions)
