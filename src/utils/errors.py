"""
Custom Exceptions
Domain error types for the coverage engine.

These never cross the public service boundary: every public operation
converts them into a failed ``ServiceResult`` carrying the same category.
"""

from src.core.enums import ErrorCategory


class CoverageEngineError(Exception):
    """Base class for coverage engine errors"""

    category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(self, message: str = "Coverage engine error"):
        super().__init__(message)
        self.message = message


class InvalidInputError(CoverageEngineError):
    """Raised when calculation input is malformed"""

    category = ErrorCategory.VALIDATION

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message)


class NotFoundError(CoverageEngineError):
    """Raised when a plan, tariff or policy is missing"""

    category = ErrorCategory.NOT_FOUND

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message)


class RuleCompilationError(CoverageEngineError):
    """Raised when a business rule payload cannot be compiled"""

    category = ErrorCategory.RULE_EVALUATION

    def __init__(self, rule_id: int | None, message: str):
        super().__init__(f"Rule {rule_id}: {message}")
        self.rule_id = rule_id


class InvariantViolationError(CoverageEngineError):
    """Raised when computed amounts break a financial invariant"""

    category = ErrorCategory.INVARIANT

    def __init__(self, violations: list[str]):
        super().__init__("; ".join(violations))
        self.violations = violations


class CombinedCalculationError(CoverageEngineError):
    """Raised when a calculation step returns a failed result"""

    def __init__(self, message: str, category: ErrorCategory | None = None):
        super().__init__(message)
        self.category = category or ErrorCategory.SYSTEM
