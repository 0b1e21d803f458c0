"""
Quest Stores

Persistence collaborators for quests and quest chains:

- `InMemoryQuestStore`: dict-backed, keeps detached copies so callers can
  never mutate stored state without `save()`
- `SqlQuestStore`: SQLAlchemy async over the `quests` table

`get` raises `NotFoundError` for unknown ids; SQL failures surface as
`PersistenceError` with the transaction rolled back.
"""

from __future__ import annotations

import copy
from typing import Dict, List, Optional, Protocol

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from solotasks.core.database.service import DatabaseService
from solotasks.database.models.quest import QuestRow
from solotasks.domain.models.progress import QuestType
from solotasks.domain.models.quest import ChainStep, Quest
from solotasks.modules.shared.base_repository import BaseRepository
from solotasks.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
    PersistenceError,
)


class QuestStore(Protocol):
    async def add(self, quest: Quest) -> Quest: ...

    async def get(self, quest_id: str) -> Quest: ...

    async def save(self, quest: Quest) -> Quest: ...

    async def delete(self, quest_id: str) -> None: ...

    async def list_for_user(
        self,
        user_id: str,
        quest_type: Optional[QuestType] = None,
        completed: Optional[bool] = None,
    ) -> List[Quest]: ...


def _detached(quest: Quest) -> Quest:
    clone = copy.deepcopy(quest)
    clone.clear_domain_events()
    return clone


# ============================================================================
# IN-MEMORY
# ============================================================================


class InMemoryQuestStore:
    def __init__(self) -> None:
        self._quests: Dict[str, Quest] = {}

    async def add(self, quest: Quest) -> Quest:
        if quest.id in self._quests:
            raise InvalidOperationError("add_quest", f"quest {quest.id} already exists")
        self._quests[quest.id] = _detached(quest)
        return quest

    async def get(self, quest_id: str) -> Quest:
        try:
            return _detached(self._quests[quest_id])
        except KeyError:
            raise NotFoundError("Quest", quest_id) from None

    async def save(self, quest: Quest) -> Quest:
        if quest.id not in self._quests:
            raise NotFoundError("Quest", quest.id)
        self._quests[quest.id] = _detached(quest)
        return quest

    async def delete(self, quest_id: str) -> None:
        if self._quests.pop(quest_id, None) is None:
            raise NotFoundError("Quest", quest_id)

    async def list_for_user(
        self,
        user_id: str,
        quest_type: Optional[QuestType] = None,
        completed: Optional[bool] = None,
    ) -> List[Quest]:
        """Newest first."""
        matches = [
            _detached(q)
            for q in self._quests.values()
            if q.user_id == user_id
            and (quest_type is None or q.quest_type is quest_type)
            and (completed is None or q.completed is completed)
        ]
        return sorted(matches, key=lambda q: q.created_at, reverse=True)


# ============================================================================
# SQLALCHEMY
# ============================================================================


class QuestRepository(BaseRepository[QuestRow]):
    model = QuestRow


def row_to_quest(row: QuestRow) -> Quest:
    return Quest(
        quest_id=row.id,
        user_id=row.user_id,
        title=row.title,
        quest_type=QuestType.parse(row.quest_type),
        difficulty=row.difficulty,
        xp=row.xp,
        created_at=row.created_at,
        description=row.description,
        due_date=row.due_date,
        completed=row.completed,
        completed_at=row.completed_at,
        is_chain=row.is_chain,
        steps=[ChainStep(s["title"], s.get("description")) for s in row.steps],
        time_limit_seconds=row.time_limit_seconds,
        current_step=row.current_step,
        started_at=row.started_at,
        time_remaining=row.time_remaining,
        is_reset=row.is_reset,
        original_quest_id=row.original_quest_id,
    )


def copy_quest_to_row(quest: Quest, row: QuestRow) -> QuestRow:
    row.user_id = quest.user_id
    row.title = quest.title
    row.description = quest.description
    row.quest_type = quest.quest_type.value
    row.difficulty = quest.difficulty
    row.xp = quest.xp
    row.completed = quest.completed
    row.completed_at = quest.completed_at
    row.created_at = quest.created_at
    row.due_date = quest.due_date
    row.is_reset = quest.is_reset
    row.original_quest_id = quest.original_quest_id
    row.is_chain = quest.is_chain
    row.steps = [step.to_dict() for step in quest.steps]
    row.time_limit_seconds = quest.time_limit_seconds
    row.current_step = quest.current_step
    row.started_at = quest.started_at
    row.time_remaining = quest.time_remaining
    return row


class SqlQuestStore:
    def __init__(self, repository: Optional[QuestRepository] = None) -> None:
        self._repo = repository or QuestRepository()

    async def add(self, quest: Quest) -> Quest:
        try:
            async with DatabaseService.get_transaction() as session:
                self._repo.add(session, copy_quest_to_row(quest, QuestRow(id=quest.id)))
                await self._repo.flush(session)
        except IntegrityError as exc:
            raise InvalidOperationError("add_quest", f"quest {quest.id} already exists") from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("add_quest", str(exc)) from exc
        return quest

    async def get(self, quest_id: str) -> Quest:
        try:
            async with DatabaseService.get_session() as session:
                row = await self._repo.get(session, quest_id)
                if row is None:
                    raise NotFoundError("Quest", quest_id)
                return row_to_quest(row)
        except SQLAlchemyError as exc:
            raise PersistenceError("get_quest", str(exc)) from exc

    async def save(self, quest: Quest) -> Quest:
        try:
            async with DatabaseService.get_transaction() as session:
                row = await self._repo.get(session, quest.id, lock=True)
                if row is None:
                    raise NotFoundError("Quest", quest.id)
                copy_quest_to_row(quest, row)
                await self._repo.flush(session)
        except SQLAlchemyError as exc:
            raise PersistenceError("save_quest", str(exc)) from exc
        return quest

    async def delete(self, quest_id: str) -> None:
        try:
            async with DatabaseService.get_transaction() as session:
                row = await self._repo.get(session, quest_id, lock=True)
                if row is None:
                    raise NotFoundError("Quest", quest_id)
                await self._repo.delete(session, row)
        except SQLAlchemyError as exc:
            raise PersistenceError("delete_quest", str(exc)) from exc

    async def list_for_user(
        self,
        user_id: str,
        quest_type: Optional[QuestType] = None,
        completed: Optional[bool] = None,
    ) -> List[Quest]:
        conditions = [QuestRow.user_id == user_id]
        if quest_type is not None:
            conditions.append(QuestRow.quest_type == quest_type.value)
        if completed is not None:
            conditions.append(QuestRow.completed.is_(completed))

        try:
            async with DatabaseService.get_session() as session:
                rows = await self._repo.where(
                    session, *conditions, order_by=QuestRow.created_at.desc()
                )
                return [row_to_quest(row) for row in rows]
        except SQLAlchemyError as exc:
            raise PersistenceError("list_quests", str(exc)) from exc
