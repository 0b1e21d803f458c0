"""Progression engine: leveling formulas, stores and the progression service."""

from .service import (
    LEVEL_UP_EVENT,
    STREAK_MILESTONE_EVENT,
    ProgressionResult,
    ProgressionService,
    StreakResult,
)
from .store import InMemoryProgressStore, ProgressStore, SqlProgressStore

__all__ = [
    "LEVEL_UP_EVENT",
    "STREAK_MILESTONE_EVENT",
    "ProgressionResult",
    "ProgressionService",
    "StreakResult",
    "InMemoryProgressStore",
    "ProgressStore",
    "SqlProgressStore",
]
