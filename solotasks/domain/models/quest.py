"""
Quest Domain Model for SoloTasks.

Purpose
-------
Rich domain model for a quest (a single task) and a quest chain ("dungeon
run": ordered steps completed against a time budget).

Responsibilities
----------------
- One-way completion (never reopened)
- Sequential chain step acknowledgement
- Time budget bookkeeping for chains
- Emit domain events for lifecycle transitions

Non-Responsibilities
--------------------
- Awarding XP (the quest service feeds the progression engine)
- Persistence (handled by quest stores)

Usage Example
-------------
>>> chain = Quest.new_chain("u1", "Morning Dungeon", [ChainStep("Run")], 300, 100, now)
>>> chain.start_chain(now)
>>> chain.acknowledge_step(0)
>>> remaining = chain.complete_chain(now + timedelta(seconds=90))
>>> remaining
210
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from solotasks.domain.models.base import (
    AggregateRoot,
    DomainValidationError,
    validate_non_negative,
    validate_not_empty,
    validate_positive,
    validate_range,
)
from solotasks.domain.models.progress import QuestType
from solotasks.modules.shared.exceptions import InvalidOperationError

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


def new_quest_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class ChainStep:
    """One ordered step of a quest chain."""

    title: str
    description: Optional[str] = None

    def __post_init__(self) -> None:
        validate_not_empty(self.title, "step_title")

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "description": self.description}


class Quest(AggregateRoot):
    """
    A quest owned by one user.

    Plain quests are completed once through `complete()`. Chains
    (`is_chain=True`) go through `start_chain()`, `acknowledge_step()` for
    every step in order, then `complete_chain()`.
    """

    def __init__(
        self,
        quest_id: str,
        user_id: str,
        title: str,
        quest_type: QuestType,
        difficulty: int,
        xp: int,
        created_at: datetime,
        *,
        description: Optional[str] = None,
        due_date: Optional[datetime] = None,
        completed: bool = False,
        completed_at: Optional[datetime] = None,
        is_chain: bool = False,
        steps: Sequence[ChainStep] = (),
        time_limit_seconds: Optional[int] = None,
        current_step: int = 0,
        started_at: Optional[datetime] = None,
        time_remaining: Optional[int] = None,
        is_reset: bool = False,
        original_quest_id: Optional[str] = None,
    ) -> None:
        super().__init__(quest_id)
        validate_not_empty(user_id, "user_id")
        validate_not_empty(title, "title")
        validate_non_negative(xp, "xp")

        if quest_type is QuestType.DUNGEON:
            raise DomainValidationError(
                "dungeon is an award type, not a quest type", field="quest_type"
            )

        if is_chain:
            if not steps:
                raise DomainValidationError(
                    "a quest chain needs at least one step", field="steps"
                )
            validate_positive(time_limit_seconds, "time_limit_seconds")
            validate_range(current_step, 0, len(steps), "current_step")
        elif steps:
            raise DomainValidationError("only quest chains have steps", field="steps")
        validate_range(difficulty, MIN_DIFFICULTY, MAX_DIFFICULTY, "difficulty")

        self.user_id = user_id
        self.title = title.strip()
        self.description = description
        self.quest_type = quest_type
        self.difficulty = difficulty
        self.xp = xp
        self.created_at = created_at
        self.due_date = due_date
        self.completed = completed
        self.completed_at = completed_at
        self.is_chain = is_chain
        self.steps: Tuple[ChainStep, ...] = tuple(steps)
        self.time_limit_seconds = time_limit_seconds
        self.current_step = current_step
        self.started_at = started_at
        self.time_remaining = time_remaining
        self.is_reset = is_reset
        self.original_quest_id = original_quest_id

    # ------------------------------------------------------------------ #
    # Factories
    # ------------------------------------------------------------------ #

    @classmethod
    def new_chain(
        cls,
        user_id: str,
        title: str,
        steps: Sequence[ChainStep],
        time_limit_seconds: int,
        xp: int,
        created_at: datetime,
        description: Optional[str] = None,
    ) -> "Quest":
        """Build a chain; difficulty is derived from the number of steps."""
        return cls(
            quest_id=new_quest_id(),
            user_id=user_id,
            title=title,
            quest_type=QuestType.CUSTOM,
            difficulty=chain_difficulty(len(steps)),
            xp=xp,
            created_at=created_at,
            description=description,
            is_chain=True,
            steps=steps,
            time_limit_seconds=time_limit_seconds,
        )

    def reset_copy(self, now: datetime) -> "Quest":
        """Fresh, uncompleted copy of this quest for the next period."""
        return Quest(
            quest_id=new_quest_id(),
            user_id=self.user_id,
            title=self.title,
            quest_type=self.quest_type,
            difficulty=self.difficulty,
            xp=self.xp,
            created_at=now,
            description=self.description,
            is_reset=True,
            original_quest_id=self.id,
        )

    # ------------------------------------------------------------------ #
    # Plain quest lifecycle
    # ------------------------------------------------------------------ #

    def complete(self, at: datetime) -> None:
        """
        Raises
        ------
        InvalidOperationError
            If the quest is already completed or is a chain
        """
        if self.is_chain:
            raise InvalidOperationError(
                "complete_quest", "quest chains are completed through complete_chain"
            )
        self._ensure_open("complete_quest")
        self.completed = True
        self.completed_at = at
        self.add_domain_event(
            "quest.completed",
            {
                "user_id": self.user_id,
                "quest_id": self.id,
                "quest_type": self.quest_type.value,
                "xp": self.xp,
            },
        )

    def reopen(self) -> None:
        """
        Undo a completion whose reward was never applied.

        Chain progress (start time, acknowledged steps) is kept, so the run
        can be completed again. Events queued by the completion are dropped.
        """
        self.completed = False
        self.completed_at = None
        self.time_remaining = None
        self.clear_domain_events()

    def ensure_deletable(self) -> None:
        self._ensure_open("delete_quest")

    def _ensure_open(self, action: str) -> None:
        if self.completed:
            raise InvalidOperationError(action, f"quest {self.id} is already completed")

    # ------------------------------------------------------------------ #
    # Chain lifecycle
    # ------------------------------------------------------------------ #

    @property
    def all_steps_acknowledged(self) -> bool:
        return self.current_step == len(self.steps)

    def _ensure_chain(self, action: str) -> None:
        if not self.is_chain:
            raise InvalidOperationError(action, f"quest {self.id} is not a quest chain")
        self._ensure_open(action)

    def start_chain(self, at: datetime) -> None:
        self._ensure_chain("start_chain")
        if self.started_at is not None:
            raise InvalidOperationError("start_chain", f"quest chain {self.id} is already running")
        self.started_at = at
        self.current_step = 0
        self.add_domain_event(
            "quest_chain.started",
            {"user_id": self.user_id, "quest_id": self.id, "steps": len(self.steps)},
        )

    def acknowledge_step(self, step_index: int) -> None:
        """
        Mark the current step done. Steps are acknowledged strictly in order.

        Raises
        ------
        InvalidOperationError
            If the chain is not running or `step_index` is not the current step
        """
        self._ensure_chain("acknowledge_step")
        if self.started_at is None:
            raise InvalidOperationError("acknowledge_step", f"quest chain {self.id} has not been started")
        if step_index != self.current_step:
            raise InvalidOperationError(
                "acknowledge_step",
                f"expected step {self.current_step}, got {step_index}",
            )
        self.current_step += 1
        self.add_domain_event(
            "quest_chain.step_acknowledged",
            {
                "user_id": self.user_id,
                "quest_id": self.id,
                "step_index": step_index,
                "step_title": self.steps[step_index].title,
            },
        )

    def abandon(self) -> None:
        self._ensure_chain("abandon_chain")
        if self.started_at is None:
            raise InvalidOperationError("abandon_chain", f"quest chain {self.id} is not running")
        self.started_at = None
        self.current_step = 0
        self.add_domain_event(
            "quest_chain.abandoned", {"user_id": self.user_id, "quest_id": self.id}
        )

    def elapsed_seconds(self, at: datetime) -> int:
        if self.started_at is None:
            raise InvalidOperationError("complete_chain", f"quest chain {self.id} has not been started")
        return max(0, int((at - self.started_at).total_seconds()))

    def complete_chain(self, at: datetime) -> int:
        """
        Complete a chain whose steps have all been acknowledged.

        A run that overshoots its time limit still completes, with no time
        left.

        Returns
        -------
        int
            Seconds left of the time budget, never negative

        Raises
        ------
        InvalidOperationError
            If steps remain or the chain is not running
        """
        self._ensure_chain("complete_chain")
        elapsed = self.elapsed_seconds(at)
        if not self.all_steps_acknowledged:
            raise InvalidOperationError(
                "complete_chain",
                f"{len(self.steps) - self.current_step} step(s) not yet acknowledged",
            )
        self.completed = True
        self.completed_at = at
        self.time_remaining = max(0, self.time_limit_seconds - elapsed)
        return self.time_remaining

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "user_id": self.user_id,
            "title": self.title,
            "description": self.description,
            "type": self.quest_type.value,
            "difficulty": self.difficulty,
            "xp": self.xp,
            "completed": self.completed,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "created_at": self.created_at.isoformat(),
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "is_chain": self.is_chain,
        }
        if self.is_chain:
            data.update(
                steps=[s.to_dict() for s in self.steps],
                time_limit_seconds=self.time_limit_seconds,
                current_step=self.current_step,
                started_at=self.started_at.isoformat() if self.started_at else None,
                time_remaining=self.time_remaining,
            )
        return data

    def __repr__(self) -> str:
        return (
            f"Quest(id={self.id!r}, user_id={self.user_id!r}, "
            f"type={self.quest_type.value}, completed={self.completed})"
        )


def chain_difficulty(step_count: int) -> int:
    """One star per two steps, within the 1-5 difficulty scale."""
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, math.ceil(step_count / 2)))


def steps_from_mappings(raw: Sequence[Any]) -> List[ChainStep]:
    """Accept ChainStep instances or `{title, description}` mappings."""
    steps: List[ChainStep] = []
    for item in raw:
        if isinstance(item, ChainStep):
            steps.append(item)
        else:
            steps.append(ChainStep(title=item.get("title"), description=item.get("description")))
    return steps
