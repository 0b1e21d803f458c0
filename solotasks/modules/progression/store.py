"""
Progression Stores

Purpose
-------
Persistence collaborators for UserProgress records. The progression engine
only talks to the `ProgressStore` protocol; two implementations ship:

- `InMemoryProgressStore`: dict-backed, for tests and embedding
- `SqlProgressStore`: SQLAlchemy async, one transaction per write with the
  row held under `SELECT ... FOR UPDATE`

Contract
--------
- `get(user_id)` raises `NotFoundError` for unknown users
- `create(progress)` raises `InvalidOperationError` for duplicates
- `atomic_update(user_id, update)` applies a `ProgressUpdate` in one atomic
  step and returns the stored record; concurrent updates never lose
  increments or union members
- `atomic_modify(user_id, build)` calls `build` with the record as held
  inside the atomic step and applies the update it returns (`None` means
  no write); returns `(before, after)`. Writes derived from the current
  state (level-ups, streaks) go through here so they never act on a stale
  read
- Store I/O failures surface as `PersistenceError` with the write rolled back
"""

from __future__ import annotations

from typing import Callable, Dict, Optional, Protocol, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from solotasks.core.database.service import DatabaseService
from solotasks.core.logging.logger import get_logger
from solotasks.database.models.user_progress import UserProgressRow
from solotasks.domain.models.progress import (
    COUNTER_FIELDS,
    AchievementRecord,
    ProgressUpdate,
    UserProgress,
)
from solotasks.modules.shared.base_repository import BaseRepository
from solotasks.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
    PersistenceError,
)

logger = get_logger(__name__)

UpdateBuilder = Callable[[UserProgress], Optional[ProgressUpdate]]

_SCALAR_FIELDS = (
    "level",
    "xp",
    "total_xp",
    "current_title",
    "streak",
    "last_active_at",
    "version",
    *COUNTER_FIELDS,
)


class ProgressStore(Protocol):
    """Persistence contract the progression engine depends on."""

    async def get(self, user_id: str) -> UserProgress: ...

    async def create(self, progress: UserProgress) -> UserProgress: ...

    async def atomic_update(self, user_id: str, update: ProgressUpdate) -> UserProgress: ...

    async def atomic_modify(
        self, user_id: str, build: UpdateBuilder
    ) -> Tuple[UserProgress, UserProgress]: ...


# ============================================================================
# IN-MEMORY
# ============================================================================


class InMemoryProgressStore:
    """
    Dict-backed store.

    `atomic_modify` reads, builds, applies and writes without yielding to
    the event loop, which makes it atomic under asyncio.
    """

    def __init__(self, records: Optional[Dict[str, UserProgress]] = None) -> None:
        self._records: Dict[str, UserProgress] = dict(records or {})
        self.write_count = 0

    async def get(self, user_id: str) -> UserProgress:
        try:
            return self._records[user_id]
        except KeyError:
            raise NotFoundError("UserProgress", user_id) from None

    async def create(self, progress: UserProgress) -> UserProgress:
        if progress.user_id in self._records:
            raise InvalidOperationError(
                "register_user", f"user {progress.user_id} is already registered"
            )
        self._records[progress.user_id] = progress
        self.write_count += 1
        return progress

    async def atomic_update(self, user_id: str, update: ProgressUpdate) -> UserProgress:
        _, updated = await self.atomic_modify(user_id, lambda _current: update)
        return updated

    async def atomic_modify(
        self, user_id: str, build: UpdateBuilder
    ) -> Tuple[UserProgress, UserProgress]:
        # No await between the read and the write
        current = self._records.get(user_id)
        if current is None:
            raise NotFoundError("UserProgress", user_id)

        update = build(current)
        if update is None:
            return current, current

        updated = update.apply(current)
        self._records[user_id] = updated
        self.write_count += 1
        return current, updated


# ============================================================================
# SQLALCHEMY
# ============================================================================


class UserProgressRepository(BaseRepository[UserProgressRow]):
    model = UserProgressRow


def row_to_domain(row: UserProgressRow) -> UserProgress:
    return UserProgress(
        user_id=row.user_id,
        level=row.level,
        xp=row.xp,
        total_xp=row.total_xp,
        titles=tuple(row.titles),
        current_title=row.current_title,
        streak=row.streak,
        last_active_at=row.last_active_at,
        completed_quests=row.completed_quests,
        completed_daily_quests=row.completed_daily_quests,
        completed_weekly_quests=row.completed_weekly_quests,
        completed_custom_quests=row.completed_custom_quests,
        completed_dungeons=row.completed_dungeons,
        achievements=tuple(row.achievements),
        achievement_history=tuple(
            AchievementRecord.from_mapping(entry) for entry in row.achievement_history
        ),
        version=row.version,
    )


def copy_to_row(progress: UserProgress, row: UserProgressRow) -> UserProgressRow:
    """Write every domain field onto the row; JSON columns get fresh lists."""
    for name in _SCALAR_FIELDS:
        setattr(row, name, getattr(progress, name))
    row.titles = list(progress.titles)
    row.achievements = list(progress.achievements)
    row.achievement_history = [entry.to_dict() for entry in progress.achievement_history]
    return row


class SqlProgressStore:
    """
    SQLAlchemy async store over the `user_progress` table.

    Each call runs in its own `DatabaseService.get_transaction()`; domain
    exceptions raised inside propagate unchanged after rollback.
    """

    def __init__(self, repository: Optional[UserProgressRepository] = None) -> None:
        self._repo = repository or UserProgressRepository()

    async def get(self, user_id: str) -> UserProgress:
        try:
            async with DatabaseService.get_session() as session:
                row = await self._repo.get(session, user_id)
                if row is None:
                    raise NotFoundError("UserProgress", user_id)
                return row_to_domain(row)
        except SQLAlchemyError as exc:
            raise PersistenceError("get", str(exc)) from exc

    async def create(self, progress: UserProgress) -> UserProgress:
        try:
            async with DatabaseService.get_transaction() as session:
                if await self._repo.get(session, progress.user_id) is not None:
                    raise InvalidOperationError(
                        "register_user", f"user {progress.user_id} is already registered"
                    )
                self._repo.add(session, copy_to_row(progress, UserProgressRow(user_id=progress.user_id)))
                await self._repo.flush(session)
        except IntegrityError as exc:
            # Lost a race with a concurrent registration
            raise InvalidOperationError(
                "register_user", f"user {progress.user_id} is already registered"
            ) from exc
        except SQLAlchemyError as exc:
            raise PersistenceError("create", str(exc)) from exc

        logger.info(
            "UserProgress created",
            extra={"user_id": progress.user_id},
        )
        return progress

    async def atomic_update(self, user_id: str, update: ProgressUpdate) -> UserProgress:
        _, updated = await self.atomic_modify(user_id, lambda _current: update)
        return updated

    async def atomic_modify(
        self, user_id: str, build: UpdateBuilder
    ) -> Tuple[UserProgress, UserProgress]:
        """Run `build` against the row held under FOR UPDATE and write its result."""
        try:
            async with DatabaseService.get_transaction() as session:
                row = await self._repo.get(session, user_id, lock=True)
                if row is None:
                    raise NotFoundError("UserProgress", user_id)

                current = row_to_domain(row)
                update = build(current)
                if update is None:
                    return current, current

                updated = update.apply(current)
                copy_to_row(updated, row)
                await self._repo.flush(session)
        except SQLAlchemyError as exc:
            logger.error(
                "UserProgress atomic update failed",
                extra={"user_id": user_id, "error": str(exc)},
            )
            raise PersistenceError("atomic_update", str(exc)) from exc

        logger.debug(
            "UserProgress updated",
            extra={"user_id": user_id, "version": updated.version},
        )
        return current, updated
