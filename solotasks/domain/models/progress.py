"""
UserProgress Domain Model for SoloTasks.

Purpose
-------
Typed, self-validating record of a user's progression state, plus the
`ProgressUpdate` value object that describes one atomic write against it.

The database row (`UserProgressRow`) is an anemic schema; stores convert
between rows and this model.

Responsibilities
----------------
- Enforce record invariants (level >= 1, non-negative counters, current
  title unlocked, no duplicate titles or achievements)
- Reject unknown fields when building from a mapping
- Describe writes as increments, sets and set-unions, applied in one step

Non-Responsibilities
--------------------
- Level/XP arithmetic (see `solotasks.modules.progression.leveling`)
- Persistence and locking (see the progression stores)

Usage Example
-------------
>>> progress = UserProgress.new("u1")
>>> update = ProgressUpdate(
...     increments={"total_xp": 50, "completed_quests": 1},
...     sets={"xp": 50},
... )
>>> update.apply(progress).total_xp
50
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Sequence, Tuple

from solotasks.domain.models.base import (
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
)

DEFAULT_TITLE = "Novice Hunter"


class QuestType(str, Enum):
    """Kinds of completed work the engine counts."""

    DAILY = "daily"
    WEEKLY = "weekly"
    CUSTOM = "custom"
    DUNGEON = "dungeon"

    @classmethod
    def parse(cls, value: Any) -> "QuestType":
        """
        Raises
        ------
        DomainValidationError
            If value is not one of daily, weekly, custom, dungeon
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise DomainValidationError(
                f"quest_type must be one of {[t.value for t in cls]}, got {value!r}",
                field="quest_type",
            ) from None

    @property
    def counter_field(self) -> str:
        """UserProgress counter incremented when a quest of this type completes."""
        if self is QuestType.DUNGEON:
            return "completed_dungeons"
        return f"completed_{self.value}_quests"


@dataclass(frozen=True)
class AchievementRecord:
    """One entry of a user's achievement history."""

    id: str
    title: str
    xp_reward: int
    unlocked_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "xp_reward": self.xp_reward,
            "unlocked_at": self.unlocked_at.isoformat(),
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AchievementRecord":
        unlocked_at = data["unlocked_at"]
        if isinstance(unlocked_at, str):
            unlocked_at = datetime.fromisoformat(unlocked_at)
        return cls(
            id=data["id"],
            title=data["title"],
            xp_reward=int(data["xp_reward"]),
            unlocked_at=unlocked_at,
        )


COUNTER_FIELDS: Tuple[str, ...] = (
    "completed_quests",
    "completed_daily_quests",
    "completed_weekly_quests",
    "completed_custom_quests",
    "completed_dungeons",
)


@dataclass(frozen=True)
class UserProgress:
    """
    Immutable snapshot of one user's progression record.

    Attributes
    ----------
    user_id : str
        Owner of the record
    level : int
        Current level, >= 1
    xp : int
        Progress inside the current level
    total_xp : int
        Lifetime XP, including achievement bonuses
    titles : Tuple[str, ...]
        Unlocked titles in unlock order
    current_title : str
        Displayed title, always one of `titles`
    achievements : Tuple[str, ...]
        Unlocked achievement ids in unlock order
    version : int
        Incremented on every persisted write
    """

    user_id: str
    level: int = 1
    xp: int = 0
    total_xp: int = 0
    titles: Tuple[str, ...] = (DEFAULT_TITLE,)
    current_title: str = DEFAULT_TITLE
    streak: int = 0
    last_active_at: Optional[datetime] = None
    completed_quests: int = 0
    completed_daily_quests: int = 0
    completed_weekly_quests: int = 0
    completed_custom_quests: int = 0
    completed_dungeons: int = 0
    achievements: Tuple[str, ...] = ()
    achievement_history: Tuple[AchievementRecord, ...] = ()
    version: int = 0

    def __post_init__(self) -> None:
        validate_not_empty(self.user_id, "user_id")
        validate_positive(self.level, "level")
        for name in ("xp", "total_xp", "streak", "version", *COUNTER_FIELDS):
            validate_non_negative(getattr(self, name), name)

        if not self.titles:
            raise DomainValidationError("titles cannot be empty", field="titles")
        if len(set(self.titles)) != len(self.titles):
            raise DomainValidationError("titles contain duplicates", field="titles")
        if len(set(self.achievements)) != len(self.achievements):
            raise DomainValidationError(
                "achievements contain duplicates", field="achievements"
            )
        if self.current_title not in self.titles:
            raise DomainValidationError(
                f"current_title {self.current_title!r} is not unlocked",
                field="current_title",
            )

    @classmethod
    def new(cls, user_id: str) -> "UserProgress":
        """Fresh record as created at registration."""
        return cls(user_id=user_id)

    @classmethod
    def field_names(cls) -> Tuple[str, ...]:
        return tuple(f.name for f in dataclasses.fields(cls))

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "UserProgress":
        """
        Build a record from a plain mapping (e.g. decoded JSON).

        Raises
        ------
        DomainValidationError
            If the mapping carries keys that are not UserProgress fields,
            or any invariant fails
        """
        unknown = sorted(set(data) - set(cls.field_names()))
        if unknown:
            raise DomainValidationError(
                f"unknown UserProgress fields: {unknown}", field=unknown[0]
            )

        values = dict(data)
        for name in ("titles", "achievements"):
            if name in values:
                values[name] = tuple(values[name])
        if "achievement_history" in values:
            values["achievement_history"] = tuple(
                entry if isinstance(entry, AchievementRecord)
                else AchievementRecord.from_mapping(entry)
                for entry in values["achievement_history"]
            )
        if isinstance(values.get("last_active_at"), str):
            values["last_active_at"] = datetime.fromisoformat(values["last_active_at"])
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": self.user_id,
            "level": self.level,
            "xp": self.xp,
            "total_xp": self.total_xp,
            "titles": list(self.titles),
            "current_title": self.current_title,
            "streak": self.streak,
            "last_active_at": (
                self.last_active_at.isoformat() if self.last_active_at else None
            ),
            "completed_quests": self.completed_quests,
            "completed_daily_quests": self.completed_daily_quests,
            "completed_weekly_quests": self.completed_weekly_quests,
            "completed_custom_quests": self.completed_custom_quests,
            "completed_dungeons": self.completed_dungeons,
            "achievements": list(self.achievements),
            "achievement_history": [r.to_dict() for r in self.achievement_history],
            "version": self.version,
        }

    def quest_count(self, quest_type: QuestType) -> int:
        return getattr(self, quest_type.counter_field)


# Fields a ProgressUpdate may touch, by kind of change
INCREMENT_FIELDS = frozenset({"total_xp", *COUNTER_FIELDS})
SET_FIELDS = frozenset(
    {"level", "xp", "current_title", "streak", "last_active_at", "titles", *COUNTER_FIELDS}
)
UNION_FIELDS = frozenset({"titles", "achievements"})


@dataclass(frozen=True)
class ProgressUpdate:
    """
    One atomic write against a UserProgress record.

    Sets are applied first, then increments, then set-unions (appending
    only values not already present, in the given order), then history
    entries. The record's `version` is bumped once per applied update.

    Increments must be non-negative: counters and lifetime XP never shrink
    through an update. Shrinking (explicit reset) goes through `sets`.
    """

    increments: Mapping[str, int] = field(default_factory=dict)
    sets: Mapping[str, Any] = field(default_factory=dict)
    unions: Mapping[str, Sequence[str]] = field(default_factory=dict)
    append_history: Sequence[AchievementRecord] = ()

    def __post_init__(self) -> None:
        self._check_fields("increments", self.increments, INCREMENT_FIELDS)
        self._check_fields("sets", self.sets, SET_FIELDS)
        self._check_fields("unions", self.unions, UNION_FIELDS)

        overlap = set(self.increments) & set(self.sets)
        if overlap:
            raise DomainValidationError(
                f"fields both set and incremented: {sorted(overlap)}",
                field=sorted(overlap)[0],
            )
        for name, amount in self.increments.items():
            validate_non_negative(amount, name)

    @staticmethod
    def _check_fields(kind: str, values: Mapping[str, Any], allowed: frozenset) -> None:
        unknown = sorted(set(values) - allowed)
        if unknown:
            raise DomainValidationError(
                f"{kind} cannot touch fields {unknown}", field=unknown[0]
            )

    @property
    def is_empty(self) -> bool:
        return not (self.increments or self.sets or self.unions or self.append_history)

    def apply(self, progress: UserProgress) -> UserProgress:
        """
        Return the record produced by applying this update.

        Raises
        ------
        DomainValidationError
            If the result breaks a UserProgress invariant
        """
        changes: Dict[str, Any] = dict(self.sets)
        if "titles" in changes:
            changes["titles"] = tuple(changes["titles"])

        for name, amount in self.increments.items():
            changes[name] = getattr(progress, name) + amount

        for name, values in self.unions.items():
            merged = list(changes.get(name, getattr(progress, name)))
            for value in values:
                if value not in merged:
                    merged.append(value)
            changes[name] = tuple(merged)

        if self.append_history:
            changes["achievement_history"] = (
                progress.achievement_history + tuple(self.append_history)
            )

        changes["version"] = progress.version + 1
        return dataclasses.replace(progress, **changes)
