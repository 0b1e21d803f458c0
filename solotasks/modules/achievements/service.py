"""
Achievement Service
===================

Purpose
-------
Evaluates a user's stats against the achievement catalog, persists new
unlocks together with their XP bonus, and emits one notification per
unlock.

Domain
------
- Catalog-order evaluation, all satisfied predicates collected in one pass
- Idempotent unlocks (already-unlocked ids are skipped, set-union writes)
- Bonus XP through `ProgressionService.grant_achievement_bonus`, which
  never re-enters evaluation
- Out-of-band "speed runner" check for dungeon completions
- Catalog browsing with per-user unlock status

Dependencies
------------
- ProgressionService: persistence of unlocks and bonus XP
- ConfigManager: `achievements.notification_stagger_ms`,
  `achievements.speed_runner_max_time_fraction`
- EventBus: `achievement.unlocked`
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from solotasks.core.logging.logger import LogContext
from solotasks.domain.models.progress import UserProgress
from solotasks.modules.achievements import catalog
from solotasks.modules.achievements.catalog import (
    SPEED_RUNNER_ID,
    AchievementDefinition,
)
from solotasks.modules.shared.base_service import BaseService
from solotasks.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from solotasks.core.config.manager import ConfigManager
    from solotasks.core.event.bus import EventBus
    from solotasks.modules.progression.service import ProgressionService


ACHIEVEMENT_UNLOCKED_EVENT = "achievement.unlocked"


class AchievementService(BaseService):
    """
    Achievement evaluator for SoloTasks.

    Public Methods
    --------------
    - evaluate() -> Unlock every satisfied, not-yet-unlocked achievement
    - check_speed_runner() -> Out-of-band dungeon speed check
    - list_user_achievements() -> Catalog with unlock status for a user
    - categories() / by_category() -> Catalog browsing
    """

    def __init__(
        self,
        progression: ProgressionService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        definitions: Sequence[AchievementDefinition] = catalog.ACHIEVEMENTS,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._progression = progression
        self._definitions = tuple(definitions)

    # ========================================================================
    # PUBLIC API - Evaluation
    # ========================================================================

    async def evaluate(
        self, user_id: str, stats: UserProgress
    ) -> List[AchievementDefinition]:
        """
        Unlock every catalog achievement whose predicate holds for `stats`.

        Args:
            user_id: Owner of the stats
            stats: Freshly persisted UserProgress

        Returns:
            Newly unlocked definitions in catalog order (empty if none)

        Raises:
            PersistenceError: If the unlock write fails (nothing is emitted)
        """
        candidates = [
            definition
            for definition in self._definitions
            if definition.id not in stats.achievements
            and definition.is_unlocked_by(stats)
        ]
        if not candidates:
            return []

        async with LogContext(user_id=user_id, operation="evaluate_achievements"):
            return await self._unlock(user_id, candidates)

    async def check_speed_runner(
        self, user_id: str, time_remaining: float, time_limit: float
    ) -> Optional[AchievementDefinition]:
        """
        Unlock `speed_runner` when a dungeon used at most half its time limit.

        Returns:
            The definition if it was unlocked by this call, else None

        Raises:
            ValidationError: If time_limit <= 0, or time_remaining is negative
                or larger than time_limit
        """
        self._validate_seconds(time_limit, "time_limit")
        self._validate_seconds(time_remaining, "time_remaining")
        if time_limit <= 0:
            raise ValidationError("time_limit", f"time_limit must be positive, got {time_limit}")
        if time_remaining > time_limit:
            raise ValidationError(
                "time_remaining",
                f"time_remaining {time_remaining} exceeds time_limit {time_limit}",
            )

        max_fraction = float(
            self.get_config("achievements.speed_runner_max_time_fraction", default=0.5)
        )
        time_used_fraction = (time_limit - time_remaining) / time_limit
        if time_used_fraction > max_fraction:
            return None

        progress = await self._progression.get_progress(user_id)
        if SPEED_RUNNER_ID in progress.achievements:
            return None

        unlocked = await self._unlock(user_id, [catalog.get_achievement(SPEED_RUNNER_ID)])
        return unlocked[0] if unlocked else None

    @staticmethod
    def _validate_seconds(value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
            raise ValidationError(name, f"{name} must be a non-negative number, got {value!r}")

    async def _unlock(
        self, user_id: str, candidates: List[AchievementDefinition]
    ) -> List[AchievementDefinition]:
        result, granted = await self._progression.grant_achievement_bonus(
            user_id, candidates
        )
        if not granted:
            return []

        self.log.info(
            f"Achievements unlocked: {[a.id for a in granted]}",
            extra={
                "user_id": user_id,
                "achievement_ids": [a.id for a in granted],
                "bonus_xp": sum(a.xp_reward for a in granted),
                "level": result.level,
            },
        )

        stagger_ms = int(self.get_config("achievements.notification_stagger_ms", default=1000))
        for index, achievement in enumerate(granted):
            await self.emit_event(
                ACHIEVEMENT_UNLOCKED_EVENT,
                {
                    "user_id": user_id,
                    "achievement_id": achievement.id,
                    "title": achievement.title,
                    "description": achievement.description,
                    "xp_reward": achievement.xp_reward,
                    "icon": achievement.icon,
                    "category": achievement.category,
                    "sequence": index,
                    "delay_ms": index * stagger_ms,
                },
            )
        return granted

    # ========================================================================
    # PUBLIC API - Catalog
    # ========================================================================

    async def list_user_achievements(self, user_id: str) -> List[Dict[str, Any]]:
        """
        Every catalog achievement with the user's unlock status.

        Raises:
            NotFoundError: If the user has no record
        """
        progress = await self._progression.get_progress(user_id)
        unlocked_at = {
            record.id: record.unlocked_at for record in progress.achievement_history
        }

        return [
            {
                **definition.to_dict(),
                "unlocked": definition.id in progress.achievements,
                "unlocked_at": unlocked_at.get(definition.id),
            }
            for definition in self._definitions
        ]

    def categories(self) -> List[str]:
        seen: List[str] = []
        for definition in self._definitions:
            if definition.category not in seen:
                seen.append(definition.category)
        return seen

    def by_category(self, category: str) -> List[AchievementDefinition]:
        """
        Raises:
            ValidationError: If no achievement has this category
        """
        if category not in self.categories():
            raise ValidationError("category", f"unknown achievement category {category!r}")
        return [d for d in self._definitions if d.category == category]
