"""
Unit tests for ServiceContainer wiring.
"""

import pytest

from solotasks.core.exceptions import ConfigurationError
from solotasks.core.logging.logger import get_logger
from solotasks.core.services.container import ServiceContainer
from solotasks.modules.progression.store import InMemoryProgressStore, SqlProgressStore
from solotasks.modules.quests.store import InMemoryQuestStore, SqlQuestStore


def make_container(config_manager, event_bus, **stores) -> ServiceContainer:
    return ServiceContainer(config_manager, event_bus, get_logger("tests.container"), **stores)


@pytest.mark.unit
class TestServiceContainer:
    async def test_services_unavailable_before_initialize(self, config_manager, event_bus):
        container = make_container(config_manager, event_bus)

        with pytest.raises(RuntimeError):
            container.progression

    async def test_memory_backend_by_default(self, config_manager, event_bus):
        container = make_container(config_manager, event_bus)

        await container.initialize()

        assert isinstance(container.progress_store, InMemoryProgressStore)
        assert isinstance(container.quest_store, InMemoryQuestStore)
        assert container.health_check()["service_count"] == 3

    async def test_sql_backend_selected_by_config(self, config_manager, event_bus):
        config_manager.set_override("storage.backend", "sql")
        container = make_container(config_manager, event_bus)

        await container.initialize()

        assert isinstance(container.progress_store, SqlProgressStore)
        assert isinstance(container.quest_store, SqlQuestStore)

    async def test_unknown_backend(self, config_manager, event_bus):
        config_manager.set_override("storage.backend", "redis")
        container = make_container(config_manager, event_bus)

        with pytest.raises(ConfigurationError):
            await container.initialize()

    async def test_injected_stores_win(self, config_manager, event_bus):
        config_manager.set_override("storage.backend", "sql")
        store = InMemoryProgressStore()
        container = make_container(config_manager, event_bus, progress_store=store)

        await container.initialize()

        assert container.progress_store is store
        assert isinstance(container.quest_store, SqlQuestStore)

    async def test_awards_run_achievement_evaluation(self, container, hunter):
        result = await container.progression.apply_xp_delta(hunter, 10, "daily")

        assert [a.id for a in result.unlocked_achievements] == ["first_quest"]

    async def test_shutdown(self, config_manager, event_bus):
        container = make_container(config_manager, event_bus)
        await container.initialize()

        await container.shutdown()

        assert container.health_check()["initialized"] is False
        with pytest.raises(RuntimeError):
            container.quests
