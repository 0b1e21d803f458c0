"""Achievement catalog and evaluator."""

from .catalog import ACHIEVEMENTS, AchievementDefinition, get_achievement
from .service import ACHIEVEMENT_UNLOCKED_EVENT, AchievementService

__all__ = [
    "ACHIEVEMENTS",
    "AchievementDefinition",
    "get_achievement",
    "ACHIEVEMENT_UNLOCKED_EVENT",
    "AchievementService",
]
