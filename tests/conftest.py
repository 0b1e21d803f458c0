"""
Pytest Configuration and Fixtures for SoloTasks Tests
=====================================================

Purpose
-------
Centralized fixtures for the SoloTasks test suite: configuration, event
bus, in-memory stores, wired services, and a PostgreSQL testcontainer for
the SQL store tests.

Architecture Notes
------------------
- Unit tests run on the in-memory stores (fast, isolated)
- Integration tests use testcontainers (real PostgreSQL)
- Environment variables are set before any `solotasks` import because
  `Config` validates itself at import time
"""

from __future__ import annotations

import os

os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_LEVEL", "DEBUG")

from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Generator, List, Tuple

import pytest
import pytest_asyncio
from testcontainers.postgres import PostgresContainer

from solotasks.core.config.manager import ConfigManager
from solotasks.core.database.service import DatabaseService
from solotasks.core.event.bus import EventBus
from solotasks.core.logging.logger import get_logger
from solotasks.core.services.container import ServiceContainer
from solotasks.modules.progression.store import InMemoryProgressStore
from solotasks.modules.quests.store import InMemoryQuestStore

logger = get_logger(__name__)

CONFIG_DIR = Path(__file__).resolve().parent.parent / "config"


# ============================================================================
# CONFIGURATION & EVENTS
# ============================================================================


@pytest.fixture
def config_manager() -> Generator[type[ConfigManager], None, None]:
    """
    ConfigManager loaded from the repository's config/ directory.

    Scope: function (overrides never leak between tests)
    """
    ConfigManager.reset()
    ConfigManager.initialize(CONFIG_DIR)
    yield ConfigManager
    ConfigManager.clear_overrides()
    ConfigManager.reset()


@pytest.fixture
def event_bus(config_manager) -> EventBus:
    return EventBus(config_manager=config_manager)


class EventRecorder:
    """
    Collects published events as `(event_name, payload)` pairs.

    Usage:
        recorder.attach(event_bus, "progression.level_up")
        ...
        assert recorder.names() == ["progression.level_up"]
    """

    def __init__(self) -> None:
        self.events: List[Tuple[str, Dict[str, Any]]] = []

    def attach(self, bus: EventBus, *event_names: str) -> None:
        for name in event_names:
            bus.subscribe(name, self._listener_for(name), identifier=f"recorder:{name}")

    def _listener_for(self, event_name: str):
        async def record(payload: Dict[str, Any]) -> None:
            self.events.append((event_name, dict(payload)))

        return record

    def names(self) -> List[str]:
        return [name for name, _ in self.events]

    def payloads(self, event_name: str) -> List[Dict[str, Any]]:
        return [payload for name, payload in self.events if name == event_name]


RECORDED_EVENTS = (
    "progression.level_up",
    "progression.reset",
    "streak.milestone",
    "achievement.unlocked",
    "quest.created",
    "quest.completed",
    "quest.deleted",
    "quest_chain.started",
    "quest_chain.step_acknowledged",
    "quest_chain.abandoned",
    "quest_chain.completed",
)


@pytest.fixture
def events(event_bus: EventBus) -> EventRecorder:
    """Recorder subscribed to every event the services publish."""
    recorder = EventRecorder()
    recorder.attach(event_bus, *RECORDED_EVENTS)
    return recorder


# ============================================================================
# STORES & SERVICES (Unit Tests)
# ============================================================================


@pytest.fixture
def progress_store() -> InMemoryProgressStore:
    return InMemoryProgressStore()


@pytest.fixture
def quest_store() -> InMemoryQuestStore:
    return InMemoryQuestStore()


@pytest_asyncio.fixture
async def container(
    config_manager, event_bus, progress_store, quest_store
) -> AsyncGenerator[ServiceContainer, None]:
    """
    Fully wired ServiceContainer over the in-memory stores.

    Scope: function
    """
    services = ServiceContainer(
        config_manager,
        event_bus,
        get_logger("tests.services"),
        progress_store=progress_store,
        quest_store=quest_store,
    )
    await services.initialize()
    yield services
    await services.shutdown()


@pytest.fixture
def progression(container: ServiceContainer):
    return container.progression


@pytest.fixture
def achievements(container: ServiceContainer):
    return container.achievements


@pytest.fixture
def quests(container: ServiceContainer):
    return container.quests


@pytest_asyncio.fixture
async def hunter(progression) -> str:
    """A freshly registered user id."""
    await progression.register_user("hunter-1")
    return "hunter-1"


# ============================================================================
# TESTCONTAINERS FIXTURES (Integration Tests)
# ============================================================================


@pytest.fixture(scope="session")
def postgres_container() -> Generator[PostgresContainer, None, None]:
    """
    Start PostgreSQL testcontainer for integration tests.

    Scope: session (container persists across all tests)
    """
    logger.info("Starting PostgreSQL testcontainer...")
    container = PostgresContainer(
        image="postgres:17-alpine",
        driver="asyncpg",
    )
    container.start()

    logger.info(
        "PostgreSQL testcontainer started: %s",
        container.get_connection_url(),
    )

    yield container

    logger.info("Stopping PostgreSQL testcontainer...")
    container.stop()


@pytest_asyncio.fixture
async def database(postgres_container: PostgresContainer) -> AsyncGenerator[None, None]:
    """
    Initialize DatabaseService against the testcontainer with a fresh schema.

    Scope: function (schema dropped after each test, clean slate)
    """
    await DatabaseService.initialize(postgres_container.get_connection_url())
    await DatabaseService.create_schema()
    yield
    await DatabaseService.drop_schema()
    await DatabaseService.shutdown()


# ============================================================================
# UTILITY FUNCTIONS
# ============================================================================


def assert_domain_event_emitted(domain_model, event_name: str) -> bool:
    """
    Assert that a domain model recorded a specific event.

    Usage:
        quest.complete(now)
        assert assert_domain_event_emitted(quest, "quest.completed")
    """
    events = domain_model.get_pending_events()
    return any(event.event_name == event_name for event in events)


def get_domain_event_payload(domain_model, event_name: str) -> dict | None:
    """
    Get the payload of a specific domain event.

    Usage:
        chain.acknowledge_step(0)
        payload = get_domain_event_payload(chain, "quest_chain.step_acknowledged")
        assert payload["step_index"] == 0
    """
    events = domain_model.get_pending_events()
    for event in events:
        if event.event_name == event_name:
            return event.payload
    return None
