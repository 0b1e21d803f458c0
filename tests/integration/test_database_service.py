"""
Integration Tests for DatabaseService
=====================================

Purpose
-------
Test database lifecycle with real PostgreSQL using testcontainers.
Verifies schema creation, health checks, and transaction semantics.

Testing Strategy
----------------
- Integration tests (uses testcontainers for real PostgreSQL)
- Tests actual database behavior, not mocks
- Each test gets a freshly created schema
"""

import pytest
from sqlalchemy import select, text

from solotasks.core.database.service import DatabaseNotInitializedError, DatabaseService
from solotasks.database.models import UserProgressRow


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseConnection:
    async def test_health_check(self, database):
        assert await DatabaseService.health_check() is True

    async def test_schema_created(self, database):
        # Act
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                text(
                    """
                    SELECT table_name
                    FROM information_schema.tables
                    WHERE table_schema = 'public'
                    """
                )
            )
            tables = {row.table_name for row in result.fetchall()}

        # Assert
        assert {"user_progress", "quests"} <= tables

    async def test_health_check_when_not_initialized(self):
        await DatabaseService.shutdown()

        assert await DatabaseService.health_check() is False

    async def test_session_requires_initialize(self):
        await DatabaseService.shutdown()

        with pytest.raises(DatabaseNotInitializedError):
            async with DatabaseService.get_session():
                pass


@pytest.mark.integration
@pytest.mark.database
class TestDatabaseTransactions:
    async def test_transaction_commits(self, database):
        # Act
        async with DatabaseService.get_transaction() as session:
            session.add(UserProgressRow(user_id="committed"))

        # Assert
        async with DatabaseService.get_session() as session:
            row = await session.get(UserProgressRow, "committed")
        assert row is not None
        assert row.level == 1

    async def test_transaction_rolls_back_on_error(self, database):
        # Act
        with pytest.raises(RuntimeError):
            async with DatabaseService.get_transaction() as session:
                session.add(UserProgressRow(user_id="rolled-back"))
                await session.flush()
                raise RuntimeError("abort")

        # Assert
        async with DatabaseService.get_session() as session:
            result = await session.execute(
                select(UserProgressRow).where(UserProgressRow.user_id == "rolled-back")
            )
        assert result.scalar_one_or_none() is None
