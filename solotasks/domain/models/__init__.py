"""Domain models for SoloTasks."""

from solotasks.domain.models.base import (
    AggregateRoot,
    DomainEvent,
    DomainValidationError,
    Entity,
)
from solotasks.domain.models.progress import (
    DEFAULT_TITLE,
    AchievementRecord,
    ProgressUpdate,
    QuestType,
    UserProgress,
)
from solotasks.domain.models.quest import ChainStep, Quest

__all__ = [
    "AggregateRoot",
    "DomainEvent",
    "DomainValidationError",
    "Entity",
    "DEFAULT_TITLE",
    "AchievementRecord",
    "ProgressUpdate",
    "QuestType",
    "UserProgress",
    "ChainStep",
    "Quest",
]
