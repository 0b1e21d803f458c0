"""
Domain exceptions for SoloTasks.

Every error the progression, achievement and quest services raise on
purpose derives from `SoloTasksDomainException`. Adapters (HTTP handlers,
UI bindings) can branch on `error_code` and serialize with `to_dict()`;
the services themselves pick a log level from `severity`.

Kinds
-----
- ValidationError: caller input rejected before any store I/O
- NotFoundError: no such user record or quest
- InvalidOperationError: a lifecycle rule says no (second completion,
  step out of order, duplicate registration)
- PersistenceError: the store failed; the write was rolled back and no
  notification went out
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    INFO = "info"  # expected outcomes: bad input, missing records, rule violations
    WARNING = "warning"  # store hiccups worth watching
    ERROR = "error"
    CRITICAL = "critical"

    @property
    def log_level(self) -> int:
        return getattr(logging, self.name)


class SoloTasksDomainException(Exception):
    """
    Base class for domain errors.

    Args:
        message: Human-readable description
        details: Structured context; always a dict
        error_code: Stable identifier, defaults to the class name
        is_retryable: Overrides the class default when given
    """

    severity: ErrorSeverity = ErrorSeverity.ERROR
    retryable: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
        is_retryable: Optional[bool] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.error_code = error_code or type(self).__name__
        self.is_retryable = self.retryable if is_retryable is None else is_retryable

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class NotFoundError(SoloTasksDomainException):
    """
    A user record or quest does not exist, or belongs to someone else.

    Error code: `<RESOURCE>_NOT_FOUND`, e.g. `QUEST_NOT_FOUND`.
    """

    severity = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier
        suffix = f": {identifier}" if identifier is not None else ""
        super().__init__(
            f"{resource_type} not found{suffix}",
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class ValidationError(SoloTasksDomainException):
    """Rejected input, e.g. negative XP, an unknown quest type, a locked title."""

    severity = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class InvalidOperationError(SoloTasksDomainException):
    """A quest or progression lifecycle rule forbids `action` right now."""

    severity = ErrorSeverity.INFO

    def __init__(self, action: str, reason: str) -> None:
        self.action = action
        self.reason = reason
        super().__init__(
            f"Invalid operation '{action}': {reason}",
            details={"action": action, "reason": reason},
            error_code=f"INVALID_{action.upper()}",
        )


class PersistenceError(SoloTasksDomainException):
    """
    A store read or write failed and was rolled back.

    Retryable by default; the engine itself never retries.
    """

    severity = ErrorSeverity.WARNING
    retryable = True

    def __init__(self, operation: str, reason: str, is_retryable: bool = True) -> None:
        self.operation = operation
        self.reason = reason
        super().__init__(
            f"Persistence failure during {operation}: {reason}",
            details={"operation": operation, "reason": reason},
            error_code="PERSISTENCE_FAILURE",
            is_retryable=is_retryable,
        )


def get_error_severity(exc: BaseException) -> ErrorSeverity:
    """Severity carried by the exception; anything unclassified is an ERROR."""
    severity = getattr(exc, "severity", None)
    return severity if isinstance(severity, ErrorSeverity) else ErrorSeverity.ERROR


def is_transient_error(exc: BaseException) -> bool:
    return bool(getattr(exc, "is_retryable", False))


def should_alert(exc: BaseException) -> bool:
    return get_error_severity(exc) in (ErrorSeverity.ERROR, ErrorSeverity.CRITICAL)
