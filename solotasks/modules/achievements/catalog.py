"""
Achievement Catalog
===================

Static, ordered list of achievements. Order is the evaluation order and
the order unlock notifications are emitted in.

Each definition unlocks from a single stat with a fixed threshold, except
`speed_runner`, which is awarded out-of-band from a dungeon completion.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from solotasks.domain.models.progress import UserProgress

UnlockPredicate = Callable[[UserProgress], bool]

SPEED_RUNNER_ID = "speed_runner"


@dataclass(frozen=True)
class AchievementDefinition:
    id: str
    title: str
    description: str
    xp_reward: int
    category: str
    icon: str
    stat: Optional[str] = None
    threshold: Optional[int] = None

    @property
    def unlock_predicate(self) -> Optional[UnlockPredicate]:
        """None for achievements that are not derivable from stats."""
        if self.stat is None or self.threshold is None:
            return None
        stat, threshold = self.stat, self.threshold
        return lambda progress: getattr(progress, stat) >= threshold

    def is_unlocked_by(self, progress: UserProgress) -> bool:
        predicate = self.unlock_predicate
        return predicate is not None and predicate(progress)

    def to_dict(self) -> Dict[str, object]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "xp_reward": self.xp_reward,
            "category": self.category,
            "icon": self.icon,
        }


ACHIEVEMENTS: Tuple[AchievementDefinition, ...] = (
    # Quest completion
    AchievementDefinition("first_quest", "First Quest", "Complete your first quest", 50, "beginner", "🏆", "completed_quests", 1),
    AchievementDefinition("quest_novice", "Quest Novice", "Complete 10 quests", 50, "completion", "🛡️", "completed_quests", 10),
    AchievementDefinition("quest_adept", "Quest Adept", "Complete 25 quests", 100, "completion", "🗡️", "completed_quests", 25),
    AchievementDefinition("quest_master", "Quest Master", "Complete 50 quests", 200, "completion", "⚔️", "completed_quests", 50),
    AchievementDefinition("quest_legend", "Quest Legend", "Complete 100 quests", 500, "completion", "👑", "completed_quests", 100),
    # Streaks
    AchievementDefinition("streak_3", "Consistent Hunter", "Maintain a 3-day streak", 30, "streak", "📆", "streak", 3),
    AchievementDefinition("streak_7", "Weekly Warrior", "Maintain a 7-day streak", 100, "streak", "🔥", "streak", 7),
    AchievementDefinition("streak_30", "Monthly Master", "Maintain a 30-day streak", 300, "streak", "🌟", "streak", 30),
    # Levels
    AchievementDefinition("level_up_5", "Rising Hunter", "Reach level 5", 100, "level", "📈", "level", 5),
    AchievementDefinition("level_up_10", "Established Hunter", "Reach level 10", 200, "level", "📊", "level", 10),
    AchievementDefinition("level_up_25", "Elite Hunter", "Reach level 25", 500, "level", "🏅", "level", 25),
    # Dungeons
    AchievementDefinition("dungeon_novice", "Dungeon Novice", "Complete your first dungeon run", 50, "dungeon", "🏯", "completed_dungeons", 1),
    AchievementDefinition("dungeon_clearer", "Dungeon Clearer", "Complete 5 dungeon runs", 150, "dungeon", "🏰", "completed_dungeons", 5),
    AchievementDefinition("dungeon_master", "Dungeon Master", "Complete 20 dungeon runs", 300, "dungeon", "🔮", "completed_dungeons", 20),
    # Quest types
    AchievementDefinition("daily_devotee", "Daily Devotee", "Complete 20 daily quests", 100, "quest_type", "📅", "completed_daily_quests", 20),
    AchievementDefinition("weekly_wonder", "Weekly Wonder", "Complete 10 weekly quests", 150, "quest_type", "📊", "completed_weekly_quests", 10),
    # Out-of-band
    AchievementDefinition(SPEED_RUNNER_ID, "Speed Runner", "Complete a dungeon run in half the time limit", 200, "special", "⏱️"),
)

_BY_ID: Dict[str, AchievementDefinition] = {a.id: a for a in ACHIEVEMENTS}


def get_achievement(achievement_id: str) -> AchievementDefinition:
    """
    Raises:
        KeyError: If the id is not in the catalog
    """
    return _BY_ID[achievement_id]
