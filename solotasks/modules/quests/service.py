"""
Quest Service
=============

Purpose
-------
Quest and quest chain ("dungeon run") lifecycle. Completing a quest feeds
its XP into the progression engine.

Domain
------
- XP reward formula from difficulty and quest type
- One-way completion, deletion only before completion
- Chains: start, acknowledge steps in order, abandon, complete for base XP
  plus a bonus for the time left (none once over the limit), then the
  speed-runner check
- A completion whose reward write fails is reopened
- Daily reset: completed daily quests are cloned as fresh ones
- Ownership: another user's quest is reported as not found

Dependencies
------------
- QuestStore: quest persistence
- ProgressionService: XP awards
- AchievementService: speed-runner check
- ConfigManager: `quests.*` tunables
- EventBus: quest lifecycle notifications
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Sequence

from solotasks.core.logging.logger import LogContext
from solotasks.domain.models.progress import QuestType
from solotasks.domain.models.quest import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    Quest,
    new_quest_id,
    steps_from_mappings,
)
from solotasks.modules.shared.base_service import BaseService
from solotasks.modules.shared.exceptions import (
    NotFoundError,
    SoloTasksDomainException,
    ValidationError,
)

if TYPE_CHECKING:
    from logging import Logger

    from solotasks.core.config.manager import ConfigManager
    from solotasks.core.event.bus import EventBus
    from solotasks.modules.achievements.catalog import AchievementDefinition
    from solotasks.modules.achievements.service import AchievementService
    from solotasks.modules.progression.service import (
        ProgressionResult,
        ProgressionService,
        XpAward,
    )
    from solotasks.modules.quests.store import QuestStore


QUEST_CREATED_EVENT = "quest.created"
QUEST_DELETED_EVENT = "quest.deleted"
QUEST_CHAIN_COMPLETED_EVENT = "quest_chain.completed"

_DEFAULT_XP_MULTIPLIERS = {"daily": 1.0, "weekly": 1.5, "custom": 1.2}


@dataclass(frozen=True)
class QuestCompletion:
    quest: Quest
    progression: ProgressionResult


@dataclass(frozen=True)
class ChainCompletion:
    quest: Quest
    progression: ProgressionResult
    time_remaining: int
    time_bonus: int
    xp_awarded: int
    speed_runner: Optional[AchievementDefinition] = None


def _utc(instant: Optional[datetime]) -> datetime:
    if instant is None:
        return datetime.now(timezone.utc)
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant


class QuestService(BaseService):
    """
    Quest lifecycle service.

    Public Methods
    --------------
    - calculate_quest_xp()
    - create_quest() / create_chain()
    - get_quest() / list_quests()
    - complete_quest()
    - start_chain() / acknowledge_step() / abandon_chain() / complete_chain()
    - delete_quest()
    - reset_daily_quests()
    """

    def __init__(
        self,
        quest_store: QuestStore,
        progression: ProgressionService,
        achievements: AchievementService,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._quests = quest_store
        self._progression = progression
        self._achievements = achievements

    # ========================================================================
    # XP FORMULA
    # ========================================================================

    def calculate_quest_xp(self, difficulty: int, quest_type: Any) -> int:
        """
        XP reward for a quest: difficulty * 10 scaled by the type multiplier,
        rounded half up.

        Example:
            >>> service.calculate_quest_xp(3, "weekly")
            45
        """
        self.validate_range(difficulty, "difficulty", MIN_DIFFICULTY, MAX_DIFFICULTY)
        parsed = QuestType.parse(quest_type)

        multipliers = self.get_config("quests.xp_multipliers", default=_DEFAULT_XP_MULTIPLIERS)
        if parsed.value not in multipliers:
            raise ValidationError(
                "quest_type", f"{parsed.value} quests have no XP multiplier"
            )
        return math.floor(difficulty * 10 * float(multipliers[parsed.value]) + 0.5)

    # ========================================================================
    # CREATION & READS
    # ========================================================================

    async def create_quest(
        self,
        user_id: str,
        title: str,
        quest_type: Any,
        difficulty: int = 1,
        xp: Optional[int] = None,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None,
        now: Optional[datetime] = None,
    ) -> Quest:
        """
        Create a plain quest. `xp` defaults to `calculate_quest_xp`.

        Raises:
            ValidationError: Empty title, difficulty outside 1-5, bad type
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        title = self.validate_non_empty_str(title, "title")
        if xp is None:
            xp = self.calculate_quest_xp(difficulty, quest_type)
        else:
            self.validate_non_negative_int(xp, "xp")

        quest = Quest(
            quest_id=new_quest_id(),
            user_id=user_id,
            title=title,
            quest_type=QuestType.parse(quest_type),
            difficulty=difficulty,
            xp=xp,
            created_at=_utc(now),
            description=description,
            due_date=due_date,
        )
        await self._quests.add(quest)

        self.log_operation(
            "create_quest",
            user_id=user_id,
            quest_id=quest.id,
            quest_type=quest.quest_type.value,
            xp=xp,
        )
        await self.emit_event(
            QUEST_CREATED_EVENT,
            {"user_id": user_id, "quest_id": quest.id, "quest_type": quest.quest_type.value},
        )
        return quest

    async def create_chain(
        self,
        user_id: str,
        title: str,
        steps: Sequence[Any],
        time_limit_seconds: Optional[int] = None,
        xp: Optional[int] = None,
        description: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Quest:
        """
        Create a quest chain; difficulty is ceil(steps / 2).

        Args:
            steps: ChainStep instances or `{title, description}` mappings
            time_limit_seconds: Defaults to `quests.chain.default_time_limit_seconds`
            xp: Base XP; defaults to `quests.chain.default_xp`

        Raises:
            ValidationError: No steps, a step without title, non-positive time limit
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        title = self.validate_non_empty_str(title, "title")
        if not steps:
            raise ValidationError("steps", "a quest chain needs at least one step")

        if time_limit_seconds is None:
            time_limit_seconds = int(
                self.get_config("quests.chain.default_time_limit_seconds", default=300)
            )
        self.validate_positive_int(time_limit_seconds, "time_limit_seconds")
        if xp is None:
            xp = int(self.get_config("quests.chain.default_xp", default=100))
        self.validate_non_negative_int(xp, "xp")

        chain = Quest.new_chain(
            user_id=user_id,
            title=title,
            steps=steps_from_mappings(steps),
            time_limit_seconds=time_limit_seconds,
            xp=xp,
            created_at=_utc(now),
            description=description,
        )
        await self._quests.add(chain)

        self.log_operation(
            "create_chain",
            user_id=user_id,
            quest_id=chain.id,
            steps=len(chain.steps),
            time_limit_seconds=time_limit_seconds,
        )
        await self.emit_event(
            QUEST_CREATED_EVENT,
            {"user_id": user_id, "quest_id": chain.id, "quest_type": "chain"},
        )
        return chain

    async def get_quest(self, user_id: str, quest_id: str) -> Quest:
        """
        Raises:
            NotFoundError: Unknown quest, or a quest owned by another user
        """
        quest = await self._quests.get(quest_id)
        if quest.user_id != user_id:
            raise NotFoundError("Quest", quest_id)
        return quest

    async def list_quests(
        self,
        user_id: str,
        quest_type: Optional[Any] = None,
        completed: Optional[bool] = None,
    ) -> List[Quest]:
        parsed = QuestType.parse(quest_type) if quest_type is not None else None
        return await self._quests.list_for_user(user_id, quest_type=parsed, completed=completed)

    async def quest_stats(self, user_id: str) -> Dict[str, int]:
        """Active/completed counts per kind of quest."""
        quests = await self._quests.list_for_user(user_id)
        active = [q for q in quests if not q.completed]
        stats = {
            "total_active": len(active),
            "total_completed": len(quests) - len(active),
            "chains_active": sum(1 for q in active if q.is_chain),
        }
        for quest_type in (QuestType.DAILY, QuestType.WEEKLY, QuestType.CUSTOM):
            stats[f"{quest_type.value}_active"] = sum(
                1 for q in active if q.quest_type is quest_type and not q.is_chain
            )
        return stats

    # ========================================================================
    # COMPLETION
    # ========================================================================

    async def complete_quest(
        self,
        user_id: str,
        quest_id: str,
        completed_at: Optional[datetime] = None,
    ) -> QuestCompletion:
        """
        Complete a plain quest and award its XP with the quest's type.

        The quest is saved as completed before the award. If the XP write
        fails the quest is reopened, so it can be completed again.

        Raises:
            InvalidOperationError: Already completed, or the quest is a chain
            NotFoundError: Unknown quest or user
        """
        async with LogContext(user_id=user_id, quest_id=quest_id, operation="complete_quest"):
            quest = await self.get_quest(user_id, quest_id)
            quest.complete(_utc(completed_at))
            await self._quests.save(quest)

            award = await self._award_or_reopen(quest, quest.xp, quest.quest_type)
            result = await self._progression.finish_award(award)
            await self._publish_domain_events(quest)

            self.log_operation(
                "complete_quest",
                user_id=user_id,
                quest_id=quest_id,
                xp=quest.xp,
                level=result.level,
            )
            return QuestCompletion(quest=quest, progression=result)

    async def start_chain(
        self, user_id: str, quest_id: str, at: Optional[datetime] = None
    ) -> Quest:
        quest = await self.get_quest(user_id, quest_id)
        quest.start_chain(_utc(at))
        await self._quests.save(quest)
        await self._publish_domain_events(quest)
        return quest

    async def acknowledge_step(self, user_id: str, quest_id: str, step_index: int) -> Quest:
        """
        Raises:
            InvalidOperationError: Chain not running or step out of order
        """
        quest = await self.get_quest(user_id, quest_id)
        quest.acknowledge_step(step_index)
        await self._quests.save(quest)
        await self._publish_domain_events(quest)
        return quest

    async def abandon_chain(self, user_id: str, quest_id: str) -> Quest:
        quest = await self.get_quest(user_id, quest_id)
        quest.abandon()
        await self._quests.save(quest)
        await self._publish_domain_events(quest)
        return quest

    async def complete_chain(
        self,
        user_id: str,
        quest_id: str,
        completed_at: Optional[datetime] = None,
    ) -> ChainCompletion:
        """
        Complete a running chain whose steps are all acknowledged.

        Awards `xp + floor(time_remaining / divisor)` as a dungeon, then
        runs the speed-runner check. An overshot run has no time remaining
        and earns the base XP only.

        Raises:
            InvalidOperationError: Steps remaining, or the chain is not running
        """
        async with LogContext(user_id=user_id, quest_id=quest_id, operation="complete_chain"):
            quest = await self.get_quest(user_id, quest_id)
            time_remaining = quest.complete_chain(_utc(completed_at))
            await self._quests.save(quest)

            divisor = int(self.get_config("quests.chain.time_bonus_divisor", default=10))
            time_bonus = time_remaining // divisor
            xp_awarded = quest.xp + time_bonus

            award = await self._award_or_reopen(quest, xp_awarded, QuestType.DUNGEON)
            result = await self._progression.finish_award(award)
            speed_runner = await self._achievements.check_speed_runner(
                user_id, time_remaining, quest.time_limit_seconds
            )
            if speed_runner is not None:
                result = result.with_bonus(
                    await self._progression.get_progress(user_id), [speed_runner]
                )

            self.log.info(
                f"Dungeon cleared: {quest.title}",
                extra={
                    "user_id": user_id,
                    "quest_id": quest_id,
                    "xp_awarded": xp_awarded,
                    "time_bonus": time_bonus,
                    "time_remaining": time_remaining,
                },
            )
            await self.emit_event(
                QUEST_CHAIN_COMPLETED_EVENT,
                {
                    "user_id": user_id,
                    "quest_id": quest_id,
                    "xp_awarded": xp_awarded,
                    "time_bonus": time_bonus,
                    "time_remaining": time_remaining,
                    "time_limit": quest.time_limit_seconds,
                },
            )
            return ChainCompletion(
                quest=quest,
                progression=result,
                time_remaining=time_remaining,
                time_bonus=time_bonus,
                xp_awarded=xp_awarded,
                speed_runner=speed_runner,
            )

    # ========================================================================
    # DELETION & RESET
    # ========================================================================

    async def delete_quest(self, user_id: str, quest_id: str) -> None:
        """
        Raises:
            InvalidOperationError: If the quest is already completed
        """
        quest = await self.get_quest(user_id, quest_id)
        quest.ensure_deletable()
        await self._quests.delete(quest_id)

        self.log_operation("delete_quest", user_id=user_id, quest_id=quest_id)
        await self.emit_event(
            QUEST_DELETED_EVENT,
            {"user_id": user_id, "quest_id": quest_id, "quest_type": quest.quest_type.value},
        )

    async def reset_daily_quests(self, user_id: str, now: Optional[datetime] = None) -> int:
        """
        Clone every completed daily quest as a fresh, uncompleted quest.

        A completed quest that already has a clone is skipped, so running
        the reset twice does not duplicate quests.

        Returns:
            Number of quests created
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        now = _utc(now)

        dailies = await self._quests.list_for_user(user_id, quest_type=QuestType.DAILY)
        already_cloned = {q.original_quest_id for q in dailies if q.original_quest_id}

        count = 0
        for quest in dailies:
            if not quest.completed or quest.is_chain or quest.id in already_cloned:
                continue
            await self._quests.add(quest.reset_copy(now))
            count += 1

        self.log_operation("reset_daily_quests", user_id=user_id, count=count)
        return count

    async def _award_or_reopen(
        self, quest: Quest, xp: int, quest_type: QuestType
    ) -> XpAward:
        """Apply the completion reward; reopen the saved quest if it was not applied."""
        try:
            return await self._progression.award_xp(quest.user_id, xp, quest_type)
        except SoloTasksDomainException as exc:
            quest.reopen()
            await self._quests.save(quest)
            self.log.log(
                exc.severity.log_level,
                "Completion reward failed; quest reopened",
                extra={
                    "user_id": quest.user_id,
                    "quest_id": quest.id,
                    "error_code": exc.error_code,
                },
            )
            raise

    async def _publish_domain_events(self, quest: Quest) -> None:
        for event in quest.clear_domain_events():
            await self.emit_event(event.event_name, event.payload)
