"""
Progression Service
===================

Purpose
-------
Applies XP awards and daily activity to a user's progression record:
level-ups, title unlocks, completion counters and streaks. Every write is
one atomic `ProgressStore` step; writes derived from the current record
are built inside it (`atomic_modify`), so concurrent awards never act on a
stale read. Notifications go out on the event bus only after the write
succeeded.

Domain
------
- XP awards with loop-based multi-level resolution
- Title unlocks (the newest unlocked title becomes the displayed title)
- Per-type completion counters
- Calendar-day streaks in a configured timezone
- Achievement bonus awards (separate path, never re-evaluates)
- Registration, explicit reset, title selection

Dependencies
------------
- ProgressStore: persistence collaborator
- AchievementEvaluator: bound after construction (see `bind_achievements`)
- ConfigManager: streak timezone and milestones
- EventBus: `progression.level_up`, `streak.milestone`, `progression.reset`
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
)
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from solotasks.core.logging.logger import LogContext
from solotasks.domain.models.progress import (
    COUNTER_FIELDS,
    DEFAULT_TITLE,
    AchievementRecord,
    ProgressUpdate,
    QuestType,
    UserProgress,
)
from solotasks.modules.progression.leveling import title_for_level, xp_threshold
from solotasks.modules.shared.base_service import BaseService
from solotasks.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from solotasks.core.config.manager import ConfigManager
    from solotasks.core.event.bus import EventBus
    from solotasks.modules.achievements.catalog import AchievementDefinition
    from solotasks.modules.progression.store import ProgressStore


LEVEL_UP_EVENT = "progression.level_up"
STREAK_MILESTONE_EVENT = "streak.milestone"
PROGRESS_RESET_EVENT = "progression.reset"


class AchievementEvaluator(Protocol):
    async def evaluate(
        self, user_id: str, stats: UserProgress
    ) -> List["AchievementDefinition"]: ...


# ============================================================================
# RESULTS
# ============================================================================


@dataclass(frozen=True)
class ProgressionResult:
    """Outcome of one XP award, including achievements it unlocked."""

    xp: int
    level: int
    total_xp: int
    leveled_up: bool
    levels_gained: int
    titles: Tuple[str, ...]
    current_title: str
    completed_quests: int
    unlocked_achievements: Tuple["AchievementDefinition", ...] = ()

    @classmethod
    def from_progress(
        cls,
        before: UserProgress,
        after: UserProgress,
        unlocked: Sequence["AchievementDefinition"] = (),
    ) -> "ProgressionResult":
        return cls(
            xp=after.xp,
            level=after.level,
            total_xp=after.total_xp,
            leveled_up=after.level > before.level,
            levels_gained=after.level - before.level,
            titles=after.titles,
            current_title=after.current_title,
            completed_quests=after.completed_quests,
            unlocked_achievements=tuple(unlocked),
        )

    def with_bonus(
        self, after: UserProgress, unlocked: Sequence["AchievementDefinition"]
    ) -> "ProgressionResult":
        """Fold a later bonus award (e.g. an out-of-band achievement) into this result."""
        gained = self.levels_gained + (after.level - self.level)
        return ProgressionResult(
            xp=after.xp,
            level=after.level,
            total_xp=after.total_xp,
            leveled_up=gained > 0,
            levels_gained=gained,
            titles=after.titles,
            current_title=after.current_title,
            completed_quests=after.completed_quests,
            unlocked_achievements=self.unlocked_achievements + tuple(unlocked),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "xp": self.xp,
            "level": self.level,
            "total_xp": self.total_xp,
            "leveled_up": self.leveled_up,
            "levels_gained": self.levels_gained,
            "titles": list(self.titles),
            "current_title": self.current_title,
            "completed_quests": self.completed_quests,
            "unlocked_achievements": [a.id for a in self.unlocked_achievements],
        }


@dataclass(frozen=True)
class StreakResult:
    streak: int
    streak_updated: bool
    milestone: bool
    unlocked_achievements: Tuple["AchievementDefinition", ...] = ()


@dataclass(frozen=True)
class XpAward:
    """An applied XP write: the record as locked before it, and after."""

    before: UserProgress
    after: UserProgress
    granted: Tuple["AchievementDefinition", ...] = ()


def award_update(
    current: UserProgress,
    xp_to_add: int,
    quest_type: Optional[QuestType] = None,
    achievements: Sequence["AchievementDefinition"] = (),
    at: Optional[datetime] = None,
) -> ProgressUpdate:
    """
    Build the write for an award against the record it will be applied to.

    Must run inside the store's atomic step: `level`, `xp` and
    `current_title` are absolute values derived from `current`.
    """
    granted = [d for d in achievements if d.id not in current.achievements]
    xp_gain = xp_to_add + sum(d.xp_reward for d in granted)

    level, xp = current.level, current.xp + xp_gain
    titles: List[str] = list(current.titles)
    current_title = current.current_title

    while xp >= xp_threshold(level):
        xp -= xp_threshold(level)
        level += 1
        title = title_for_level(level)
        if title not in titles:
            titles.append(title)
            current_title = title

    increments: Dict[str, int] = {"total_xp": xp_gain}
    if quest_type is not None:
        increments["completed_quests"] = 1
        increments[quest_type.counter_field] = 1

    unions: Dict[str, Sequence[str]] = {}
    new_titles = titles[len(current.titles):]
    if new_titles:
        unions["titles"] = new_titles
    if granted:
        unions["achievements"] = [d.id for d in granted]

    return ProgressUpdate(
        increments=increments,
        sets={"level": level, "xp": xp, "current_title": current_title},
        unions=unions,
        append_history=[
            AchievementRecord(d.id, d.title, d.xp_reward, at) for d in granted
        ],
    )


# ============================================================================
# SERVICE
# ============================================================================


class ProgressionService(BaseService):
    """
    Progression engine for SoloTasks users.

    Public Methods
    --------------
    - register_user() -> Create a default record
    - get_progress() -> Read a record
    - apply_xp_delta() -> Award XP, resolve level-ups, evaluate achievements
    - award_xp() / finish_award() -> The same, split at the XP write
    - grant_achievement_bonus() -> Persist unlocked achievements and their XP
    - register_streak() -> Count daily activity
    - select_title() -> Change the displayed title
    - reset_progress() -> Explicit reset to a fresh level-1 record
    """

    def __init__(
        self,
        store: ProgressStore,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        super().__init__(config_manager, event_bus, logger)
        self._store = store
        self._achievements: Optional[AchievementEvaluator] = None

    def bind_achievements(self, evaluator: AchievementEvaluator) -> None:
        """Attach the evaluator run after each award and streak change."""
        self._achievements = evaluator

    # ========================================================================
    # PUBLIC API - Records
    # ========================================================================

    async def register_user(self, user_id: str) -> UserProgress:
        """
        Create the default record: level 1, xp 0, one default title.

        Raises:
            ValidationError: If user_id is empty
            InvalidOperationError: If the user is already registered
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        self.log_operation("register_user", user_id=user_id)
        return await self._store.create(UserProgress.new(user_id))

    async def get_progress(self, user_id: str) -> UserProgress:
        """
        Raises:
            NotFoundError: If the user has no record
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        return await self._store.get(user_id)

    async def select_title(self, user_id: str, title: str) -> UserProgress:
        """
        Display a previously unlocked title.

        Raises:
            ValidationError: If the title has not been unlocked
            NotFoundError: If the user has no record
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        title = self.validate_non_empty_str(title, "title")

        def build(current: UserProgress) -> ProgressUpdate:
            if title not in current.titles:
                raise ValidationError("title", f"title {title!r} has not been unlocked")
            return ProgressUpdate(sets={"current_title": title})

        _, updated = await self._store.atomic_modify(user_id, build)
        self.log_operation("select_title", user_id=user_id, title=title)
        return updated

    async def reset_progress(self, user_id: str) -> UserProgress:
        """
        Reset level, XP, streak, counters and titles to a fresh record.

        Achievements and lifetime `total_xp` are kept.
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")

        sets: Dict[str, Any] = {
            "level": 1,
            "xp": 0,
            "streak": 0,
            "last_active_at": None,
            "titles": (DEFAULT_TITLE,),
            "current_title": DEFAULT_TITLE,
        }
        sets.update({name: 0 for name in COUNTER_FIELDS})

        async with LogContext(user_id=user_id, operation="reset_progress"):
            updated = await self._store.atomic_update(user_id, ProgressUpdate(sets=sets))
            self.log.warning(
                "Progress reset",
                extra={"user_id": user_id, "total_xp": updated.total_xp},
            )
            await self.emit_event(PROGRESS_RESET_EVENT, {"user_id": user_id})
        return updated

    # ========================================================================
    # PUBLIC API - XP
    # ========================================================================

    async def apply_xp_delta(
        self,
        user_id: str,
        xp_to_add: int,
        quest_type: Optional[Any] = None,
    ) -> ProgressionResult:
        """
        Award XP to a user.

        Level-ups are resolved in a loop, so one award can span several
        levels. When `quest_type` is given, `completed_quests` and the
        per-type counter are incremented. Achievements are evaluated on the
        refreshed record and any bonus is reflected in the result.

        Args:
            user_id: Owner of the record
            xp_to_add: Non-negative XP amount
            quest_type: Optional daily / weekly / custom / dungeon

        Returns:
            ProgressionResult for the final state (after achievement bonuses)

        Raises:
            ValidationError: Negative XP or unknown quest type (before any I/O)
            NotFoundError: If the user has no record
            PersistenceError: If the store write fails

        Example:
            >>> result = await progression.apply_xp_delta("u1", 300, "daily")
            >>> result.leveled_up
            True
        """
        award = await self.award_xp(user_id, xp_to_add, quest_type)
        return await self.finish_award(award)

    async def award_xp(
        self,
        user_id: str,
        xp_to_add: int,
        quest_type: Optional[Any] = None,
    ) -> XpAward:
        """
        The XP write of `apply_xp_delta` alone, without achievement evaluation.

        Callers that must undo their own state when the award is not
        applied (quest completion) call this, then `finish_award`.
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        self.validate_non_negative_int(xp_to_add, "xp_to_add")
        parsed_type = QuestType.parse(quest_type) if quest_type is not None else None

        async with LogContext(user_id=user_id, operation="apply_xp_delta"):
            self.log_operation(
                "apply_xp_delta",
                user_id=user_id,
                xp_to_add=xp_to_add,
                quest_type=parsed_type.value if parsed_type else None,
            )
            return await self._award(user_id, xp_to_add, quest_type=parsed_type)

    async def finish_award(self, award: XpAward) -> ProgressionResult:
        """Evaluate achievements on an applied award and fold in their bonus."""
        user_id = award.after.user_id
        async with LogContext(user_id=user_id, operation="apply_xp_delta"):
            unlocked = await self._evaluate_achievements(user_id, award.after)

            final = award.after
            if unlocked:
                final = await self._store.get(user_id)

            return ProgressionResult.from_progress(award.before, final, unlocked)

    async def grant_achievement_bonus(
        self,
        user_id: str,
        definitions: Sequence["AchievementDefinition"],
        unlocked_at: Optional[datetime] = None,
    ) -> Tuple[ProgressionResult, List["AchievementDefinition"]]:
        """
        Persist newly unlocked achievements and award their summed XP.

        Definitions already present on the stored record are dropped, so a
        retried call never grants a bonus twice. The bonus may level the
        user up; this path never runs achievement evaluation.

        Returns:
            (result, definitions actually granted)
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        award = await self._award(
            user_id,
            0,
            achievements=definitions,
            at=unlocked_at or datetime.now(timezone.utc),
        )
        return (
            ProgressionResult.from_progress(award.before, award.after),
            list(award.granted),
        )

    async def _award(
        self,
        user_id: str,
        xp_to_add: int,
        *,
        quest_type: Optional[QuestType] = None,
        achievements: Sequence["AchievementDefinition"] = (),
        at: Optional[datetime] = None,
    ) -> XpAward:
        """Shared award core: one atomic read-modify-write, level-up notification."""

        def build(current: UserProgress) -> ProgressUpdate:
            return award_update(current, xp_to_add, quest_type, achievements, at)

        before, after = await self._store.atomic_modify(user_id, build)
        granted = tuple(
            d
            for d in achievements
            if d.id in after.achievements and d.id not in before.achievements
        )

        if after.level > before.level:
            await self._emit_level_up(before, after)

        return XpAward(before=before, after=after, granted=granted)

    async def _emit_level_up(self, before: UserProgress, after: UserProgress) -> None:
        new_title = after.current_title if after.current_title != before.current_title else None

        self.log.info(
            f"Level up: {before.level} -> {after.level}",
            extra={
                "user_id": after.user_id,
                "old_level": before.level,
                "new_level": after.level,
                "new_title": new_title,
            },
        )
        await self.emit_event(
            LEVEL_UP_EVENT,
            {
                "user_id": after.user_id,
                "old_level": before.level,
                "new_level": after.level,
                "levels_gained": after.level - before.level,
                "new_title": new_title,
            },
        )

    async def _evaluate_achievements(
        self, user_id: str, stats: UserProgress
    ) -> List["AchievementDefinition"]:
        if self._achievements is None:
            self.log.debug(
                "No achievement evaluator bound; skipping evaluation",
                extra={"user_id": user_id},
            )
            return []
        return await self._achievements.evaluate(user_id, stats)

    # ========================================================================
    # PUBLIC API - Streaks
    # ========================================================================

    def _streak_timezone(self) -> ZoneInfo:
        from solotasks.core.exceptions import ConfigurationError

        name = self.get_config("streaks.timezone", default="UTC")
        try:
            return ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ConfigurationError(
                "streaks.timezone", f"Unknown streak timezone {name!r}"
            ) from exc

    def _day_of(self, instant: datetime, tz: ZoneInfo) -> date:
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=timezone.utc)
        return instant.astimezone(tz).date()

    def is_milestone(self, streak: int) -> bool:
        """True for configured milestones (3, 7, 30 by default) and multiples of 10."""
        milestones = self.get_config("streaks.milestones", default=[3, 7, 30])
        every = int(self.get_config("streaks.milestone_every", default=10))
        return streak in milestones or (every > 0 and streak % every == 0)

    async def register_streak(
        self, user_id: str, activity_instant: Optional[datetime] = None
    ) -> StreakResult:
        """
        Count a day of activity.

        Days are calendar days in `streaks.timezone`. Activity on the day
        after the last one extends the streak; activity on the same day is
        a no-op (no write, no evaluation); anything else starts over at 1.

        Raises:
            ValidationError: If activity_instant is not a datetime
            NotFoundError: If the user has no record
        """
        user_id = self.validate_non_empty_str(user_id, "user_id")
        if activity_instant is None:
            activity_instant = datetime.now(timezone.utc)
        elif not isinstance(activity_instant, datetime):
            raise ValidationError(
                "activity_instant", f"expected a datetime, got {activity_instant!r}"
            )
        elif activity_instant.tzinfo is None:
            activity_instant = activity_instant.replace(tzinfo=timezone.utc)

        tz = self._streak_timezone()

        async with LogContext(user_id=user_id, operation="register_streak"):
            activity_day = self._day_of(activity_instant, tz)

            def build(current: UserProgress) -> Optional[ProgressUpdate]:
                if current.last_active_at is None:
                    new_streak = 1
                else:
                    gap = (activity_day - self._day_of(current.last_active_at, tz)).days
                    if gap == 0:
                        return None
                    new_streak = current.streak + 1 if gap == 1 else 1
                return ProgressUpdate(
                    sets={"streak": new_streak, "last_active_at": activity_instant}
                )

            before, updated = await self._store.atomic_modify(user_id, build)
            if updated.version == before.version:
                self.log.debug(
                    "Activity already counted today",
                    extra={"user_id": user_id, "streak": before.streak},
                )
                return StreakResult(
                    streak=before.streak, streak_updated=False, milestone=False
                )

            new_streak = updated.streak
            self.log_operation(
                "register_streak",
                user_id=user_id,
                old_streak=before.streak,
                new_streak=new_streak,
            )

            unlocked = await self._evaluate_achievements(user_id, updated)

            milestone = self.is_milestone(new_streak)
            if milestone:
                await self.emit_event(
                    STREAK_MILESTONE_EVENT,
                    {"user_id": user_id, "streak": new_streak},
                )

            return StreakResult(
                streak=new_streak,
                streak_updated=True,
                milestone=milestone,
                unlocked_achievements=tuple(unlocked),
            )
