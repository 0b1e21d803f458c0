"""
Row access for the SQL stores.

A repository knows one mapped table and nothing about transactions: the
stores open a `DatabaseService.get_transaction()` scope and pass its
session in. Locked reads (`lock=True`) hold the row until that scope
commits, which is what serializes concurrent XP writes for one user.

    class QuestRepository(BaseRepository[QuestRow]):
        model = QuestRow
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Generic, List, Optional, Type, TypeVar

from sqlalchemy import select

from solotasks.core.logging.logger import get_logger

if TYPE_CHECKING:
    from sqlalchemy import ColumnElement
    from sqlalchemy.ext.asyncio import AsyncSession

RowT = TypeVar("RowT")

logger = get_logger(__name__)


class BaseRepository(Generic[RowT]):
    """Subclasses set `model` to the mapped row class."""

    model: ClassVar[Type[Any]]

    @property
    def table(self) -> str:
        return self.model.__tablename__

    def _trace(self, action: str, **fields: Any) -> None:
        logger.debug(f"{self.table}.{action}", extra={"table": self.table, **fields})

    async def get(self, session: AsyncSession, key: Any, *, lock: bool = False) -> Optional[RowT]:
        row = await session.get(
            self.model, key, with_for_update=lock, populate_existing=lock
        )
        self._trace("get", key=key, found=row is not None, locked=lock)
        return row

    async def where(
        self,
        session: AsyncSession,
        *conditions: ColumnElement[bool],
        order_by: Any = None,
    ) -> List[RowT]:
        stmt = select(self.model).where(*conditions)
        if order_by is not None:
            stmt = stmt.order_by(order_by)

        rows = list((await session.scalars(stmt)).all())
        self._trace("where", count=len(rows))
        return rows

    def add(self, session: AsyncSession, row: RowT) -> RowT:
        session.add(row)
        self._trace("add")
        return row

    async def delete(self, session: AsyncSession, row: RowT) -> None:
        await session.delete(row)
        self._trace("delete")

    async def flush(self, session: AsyncSession) -> None:
        await session.flush()
