"""
SoloTasks Leveling Formulas

Purpose
-------
Pure calculation functions for the hunter progression curve: XP needed
per level, progress inside a level, level tiers (rank, title, color) and
cumulative XP.

Design Notes
------------
All formulas:
- Are pure (no side effects, no I/O, no config access)
- Accept parameters explicitly
- Raise `ValidationError` for levels below 1

The XP curve is piecewise linear in the level, with the multiplier
stepping up every ten levels:

    level  1-9   -> level * 100
    level 10-19  -> level * 120
    level 20-29  -> level * 150
    level 30-39  -> level * 200
    level 40+    -> level * 250

Usage
-----
    from solotasks.modules.progression.leveling import xp_threshold, rank_for_level

    xp_needed = xp_threshold(12)        # 1440
    rank = rank_for_level(12).rank      # "D"
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass
from typing import List, Optional, Tuple

from solotasks.domain.models.progress import DEFAULT_TITLE
from solotasks.modules.shared.exceptions import ValidationError

# (upper level bound exclusive, multiplier); the last entry has no bound
_XP_MULTIPLIERS: Tuple[Tuple[Optional[int], int], ...] = (
    (10, 100),
    (20, 120),
    (30, 150),
    (40, 200),
    (None, 250),
)


@dataclass(frozen=True)
class LevelTier:
    min_level: int
    rank: str
    title: str
    color: str


# Ordered by min_level; titles are unique across tiers
LEVEL_TIERS: Tuple[LevelTier, ...] = (
    LevelTier(1, "F", DEFAULT_TITLE, "#9ca3af"),
    LevelTier(5, "E", "E-Rank Hunter", "#22c55e"),
    LevelTier(10, "D", "D-Rank Hunter", "#3b82f6"),
    LevelTier(15, "C", "C-Rank Hunter", "#a855f7"),
    LevelTier(20, "B", "B-Rank Hunter", "#f59e0b"),
    LevelTier(25, "A", "A-Rank Hunter", "#f97316"),
    LevelTier(30, "S", "S-Rank Hunter", "#ef4444"),
    LevelTier(40, "National", "National Level Hunter", "#eab308"),
    LevelTier(50, "Monarch", "Shadow Monarch", "#6d28d9"),
    LevelTier(75, "Ruler", "Ruler of Shadows", "#1e1b4b"),
    LevelTier(100, "God", "God of Destruction", "#000000"),
)

_TIER_MINIMUMS: List[int] = [tier.min_level for tier in LEVEL_TIERS]

# (upper level bound exclusive, theme)
_THEMES: Tuple[Tuple[Optional[int], str], ...] = (
    (10, "default"),
    (20, "elite"),
    (30, "shadow"),
    (None, "monarch"),
)


@dataclass(frozen=True)
class RankInfo:
    """Presentation data for a level's tier."""

    rank: str
    title: str
    color: str
    next_rank: Optional[str]
    xp_to_next_rank: int


def _require_level(level: int) -> None:
    if isinstance(level, bool) or not isinstance(level, int) or level < 1:
        raise ValidationError("level", f"level must be an integer >= 1, got {level!r}")


def xp_threshold(level: int) -> int:
    """
    XP needed to advance from `level` to `level + 1`.

    Args:
        level: Current level (>= 1)

    Returns:
        XP threshold for the level

    Raises:
        ValidationError: If level < 1

    Example:
        >>> xp_threshold(9)
        900
        >>> xp_threshold(10)
        1200
        >>> xp_threshold(40)
        10000
    """
    _require_level(level)
    for upper, multiplier in _XP_MULTIPLIERS:
        if upper is None or level < upper:
            return level * multiplier
    raise AssertionError("unreachable: last multiplier has no upper bound")


def level_progress_percent(xp: int, level: int) -> int:
    """
    Whole-number percent of the way through the current level, in [0, 100].

    Example:
        >>> level_progress_percent(50, 1)
        50
        >>> level_progress_percent(5000, 1)
        100
    """
    percent = (xp * 100) // xp_threshold(level)
    return max(0, min(100, percent))


def tier_index_for_level(level: int) -> int:
    """Index into LEVEL_TIERS of the tier containing `level`."""
    _require_level(level)
    return bisect.bisect_right(_TIER_MINIMUMS, level) - 1


def tier_for_level(level: int) -> LevelTier:
    return LEVEL_TIERS[tier_index_for_level(level)]


def title_for_level(level: int) -> str:
    """
    Title unlocked by a level. Monotonic step function over the tiers.

    Example:
        >>> title_for_level(4)
        'Novice Hunter'
        >>> title_for_level(5)
        'E-Rank Hunter'
    """
    return tier_for_level(level).title


def total_xp_for_level(target: int) -> int:
    """
    Cumulative XP needed to reach `target` from level 1 with 0 XP.

    Example:
        >>> total_xp_for_level(1)
        0
        >>> total_xp_for_level(3)
        300
    """
    _require_level(target)
    return sum(xp_threshold(level) for level in range(1, target))


def rank_for_level(level: int) -> RankInfo:
    """
    Rank, title and color for a level, plus the distance to the next tier.

    `xp_to_next_rank` is the cumulative XP from the start of `level` to the
    start of the next tier; it is 0 (and `next_rank` None) at the top tier.

    Example:
        >>> rank_for_level(1)
        RankInfo(rank='F', title='Novice Hunter', color='#9ca3af', next_rank='E', xp_to_next_rank=1000)
    """
    index = tier_index_for_level(level)
    tier = LEVEL_TIERS[index]

    if index + 1 >= len(LEVEL_TIERS):
        return RankInfo(tier.rank, tier.title, tier.color, None, 0)

    next_tier = LEVEL_TIERS[index + 1]
    return RankInfo(
        rank=tier.rank,
        title=tier.title,
        color=tier.color,
        next_rank=next_tier.rank,
        xp_to_next_rank=total_xp_for_level(next_tier.min_level) - total_xp_for_level(level),
    )


def level_from_total_xp(total_xp: int) -> Tuple[int, int]:
    """
    Inverse of `total_xp_for_level`: (level, xp inside that level).

    Example:
        >>> level_from_total_xp(350)
        (3, 50)
    """
    if isinstance(total_xp, bool) or not isinstance(total_xp, int) or total_xp < 0:
        raise ValidationError("total_xp", f"total_xp must be a non-negative integer, got {total_xp!r}")

    level, remaining = 1, total_xp
    while remaining >= xp_threshold(level):
        remaining -= xp_threshold(level)
        level += 1
    return level, remaining


def theme_for_level(level: int) -> str:
    """UI theme unlocked by a level."""
    _require_level(level)
    for upper, theme in _THEMES:
        if upper is None or level < upper:
            return theme
    raise AssertionError("unreachable: last theme has no upper bound")
