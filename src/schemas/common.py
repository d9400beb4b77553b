"""
Tagged service result returned by every public engine operation.
"""

from typing import Generic, Optional, TypeVar

from pydantic import BaseModel, Field

from src.core.enums import ErrorCategory
from src.utils.errors import CoverageEngineError

T = TypeVar("T")


class ServiceResult(BaseModel, Generic[T]):
    """Success flag plus either a payload or a message and error category."""

    success: bool
    data: Optional[T] = None
    message: str = ""
    error_category: Optional[ErrorCategory] = None
    errors: list[str] = Field(default_factory=list)

    @classmethod
    def ok(cls, data: T, message: str = "") -> "ServiceResult[T]":
        return cls(success=True, data=data, message=message)

    @classmethod
    def fail(
        cls,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        errors: Optional[list[str]] = None,
        data: Optional[T] = None,
    ) -> "ServiceResult[T]":
        return cls(
            success=False,
            data=data,
            message=message,
            error_category=category,
            errors=errors or [message],
        )

    @classmethod
    def from_error(cls, error: CoverageEngineError) -> "ServiceResult[T]":
        return cls.fail(error.message, error.category)

    @property
    def failed(self) -> bool:
        return not self.success
