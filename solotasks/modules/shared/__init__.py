"""
SoloTasks Shared Module

Domain-level foundations for the feature modules:
- Domain exceptions and error helpers
- Base service and repository patterns
"""

from __future__ import annotations

from .base_repository import BaseRepository
from .base_service import BaseService
from .exceptions import (
    ErrorSeverity,
    InvalidOperationError,
    NotFoundError,
    PersistenceError,
    SoloTasksDomainException,
    ValidationError,
    get_error_severity,
    is_transient_error,
    should_alert,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "ErrorSeverity",
    "InvalidOperationError",
    "NotFoundError",
    "PersistenceError",
    "SoloTasksDomainException",
    "ValidationError",
    "get_error_severity",
    "is_transient_error",
    "should_alert",
]
