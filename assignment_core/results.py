"""Discriminated service results returned by every engine operation."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

T = TypeVar("T")

# Error codes
SHIFT_NOT_FOUND = "SHIFT_NOT_FOUND"
GUARD_NOT_FOUND = "GUARD_NOT_FOUND"
ASSIGNMENT_NOT_FOUND = "ASSIGNMENT_NOT_FOUND"
ASSIGNMENT_EXISTS = "ASSIGNMENT_EXISTS"
GUARD_NOT_ELIGIBLE = "GUARD_NOT_ELIGIBLE"
CONFLICT_OVERRIDE_REQUIRED = "CONFLICT_OVERRIDE_REQUIRED"
INVALID_ASSIGNMENT_STATUS = "INVALID_ASSIGNMENT_STATUS"
RESPONSE_DEADLINE_PASSED = "RESPONSE_DEADLINE_PASSED"
BATCH_OPERATION_FAILED = "BATCH_OPERATION_FAILED"
VALIDATION_ERROR = "VALIDATION_ERROR"
SERVICE_ERROR = "SERVICE_ERROR"
DATABASE_ERROR = "DATABASE_ERROR"
UNAUTHORIZED = "UNAUTHORIZED"

NOT_FOUND_CODES = frozenset({SHIFT_NOT_FOUND, GUARD_NOT_FOUND, ASSIGNMENT_NOT_FOUND})
CONFLICT_CODES = frozenset({
    ASSIGNMENT_EXISTS,
    CONFLICT_OVERRIDE_REQUIRED,
    INVALID_ASSIGNMENT_STATUS,
    RESPONSE_DEADLINE_PASSED,
})


@dataclass
class ServiceError:
    code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


@dataclass
class ServiceResult(Generic[T]):
    success: bool
    data: T | None = None
    error: ServiceError | None = None

    @classmethod
    def ok(cls, data: T) -> "ServiceResult[T]":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, code: str, message: str, **details: Any) -> "ServiceResult[T]":
        return cls(success=False, error=ServiceError(code=code, message=message, details=details))

    @property
    def error_code(self) -> str | None:
        return self.error.code if self.error else None
