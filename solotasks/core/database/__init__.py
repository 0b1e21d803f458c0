"""
Database subsystem for SoloTasks.

Provides the async SQLAlchemy engine, session/transaction scopes, and the
ORM base shared by all models.
"""

from solotasks.core.database.base import Base, TimestampMixin, utc_now
from solotasks.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "TimestampMixin",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
