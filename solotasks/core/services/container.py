"""
Service Container
=================

Purpose
-------
Centralized dependency injection container for the SoloTasks services.
Builds the stores and services once and wires the progression engine to
the achievement evaluator.

Responsibilities
----------------
- Select store implementations (`storage.backend`: "memory" or "sql")
- Initialize ProgressionService, AchievementService, QuestService
- Bind the achievement evaluator into the progression engine
- Expose initialized services; fail fast before initialization

Non-Responsibilities
--------------------
- Database engine lifecycle (DatabaseService)
- Business logic

Usage
-----
    container = ServiceContainer(ConfigManager, event_bus, logger)
    await container.initialize()
    await container.quests.complete_quest("hunter-1", quest_id)
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from solotasks.core.logging.logger import get_logger
from solotasks.modules.achievements.service import AchievementService
from solotasks.modules.progression.service import ProgressionService
from solotasks.modules.progression.store import (
    InMemoryProgressStore,
    ProgressStore,
    SqlProgressStore,
)
from solotasks.modules.quests.service import QuestService
from solotasks.modules.quests.store import InMemoryQuestStore, QuestStore, SqlQuestStore

if TYPE_CHECKING:
    from logging import Logger

    from solotasks.core.config.manager import ConfigManager
    from solotasks.core.event.bus import EventBus


class ServiceContainer:
    """
    Dependency injection container for the SoloTasks services.

    Stores may be injected explicitly (tests do this); otherwise the
    `storage.backend` config key decides.
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
        progress_store: Optional[ProgressStore] = None,
        quest_store: Optional[QuestStore] = None,
    ) -> None:
        self._config_manager = config_manager
        self._event_bus = event_bus
        self._logger = logger

        self._progress_store = progress_store
        self._quest_store = quest_store

        self._progression: Optional[ProgressionService] = None
        self._achievements: Optional[AchievementService] = None
        self._quests: Optional[QuestService] = None

        self._initialized = False
        self._service_init_times: Dict[str, float] = {}

    # ========================================================================
    # Lifecycle
    # ========================================================================

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        self._logger.info("Service container initialization starting...")

        try:
            self._select_stores()

            self._progression = self._timed(
                "progression",
                lambda: ProgressionService(
                    store=self._progress_store,
                    config_manager=self._config_manager,
                    event_bus=self._event_bus,
                    logger=get_logger(f"{ProgressionService.__module__}.ProgressionService"),
                ),
            )
            self._achievements = self._timed(
                "achievements",
                lambda: AchievementService(
                    progression=self._progression,
                    config_manager=self._config_manager,
                    event_bus=self._event_bus,
                    logger=get_logger(f"{AchievementService.__module__}.AchievementService"),
                ),
            )
            self._progression.bind_achievements(self._achievements)

            self._quests = self._timed(
                "quests",
                lambda: QuestService(
                    quest_store=self._quest_store,
                    progression=self._progression,
                    achievements=self._achievements,
                    config_manager=self._config_manager,
                    event_bus=self._event_bus,
                    logger=get_logger(f"{QuestService.__module__}.QuestService"),
                ),
            )
        except Exception as e:
            self._logger.critical(
                "Service container initialization failed",
                exc_info=True,
                extra={"error": str(e)},
            )
            raise

        self._initialized = True
        self._logger.info(
            "Service container initialized successfully",
            extra={
                "total_time_seconds": round(time.perf_counter() - start, 3),
                "service_count": len(self._service_init_times),
                "progress_store": type(self._progress_store).__name__,
                "quest_store": type(self._quest_store).__name__,
            },
        )

    def _select_stores(self) -> None:
        backend = self._config_manager.get("storage.backend", "memory")
        if backend not in ("memory", "sql"):
            from solotasks.core.exceptions import ConfigurationError

            raise ConfigurationError(
                "storage.backend", f"Unknown storage backend {backend!r}"
            )

        if self._progress_store is None:
            self._progress_store = (
                SqlProgressStore() if backend == "sql" else InMemoryProgressStore()
            )
        if self._quest_store is None:
            self._quest_store = SqlQuestStore() if backend == "sql" else InMemoryQuestStore()

    def _timed(self, name: str, factory: Any) -> Any:
        start = time.perf_counter()
        try:
            instance = factory()
        except Exception:
            self._logger.error(f"Failed to initialize {name}", exc_info=True)
            raise
        duration = time.perf_counter() - start
        self._service_init_times[name] = duration
        self._logger.debug(f"Initialized {name} in {duration:.3f}s")
        return instance

    async def shutdown(self) -> None:
        """Wait for in-flight notifications, then release services."""
        if not self._initialized:
            return
        self._logger.info("Shutting down service container...")
        await self._event_bus.drain()
        self._initialized = False
        self._logger.info("Service container shut down")

    def health_check(self) -> Dict[str, Any]:
        return {
            "initialized": self._initialized,
            "service_count": len(self._service_init_times),
            "init_times": dict(self._service_init_times),
        }

    # ========================================================================
    # Service accessors
    # ========================================================================

    def _require(self, service: Optional[Any], name: str) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError(
                f"ServiceContainer not initialized; cannot access '{name}'. "
                "Call `await container.initialize()` first."
            )
        return service

    @property
    def progression(self) -> ProgressionService:
        return self._require(self._progression, "progression")

    @property
    def achievements(self) -> AchievementService:
        return self._require(self._achievements, "achievements")

    @property
    def quests(self) -> QuestService:
        return self._require(self._quests, "quests")

    @property
    def progress_store(self) -> ProgressStore:
        return self._require(self._progress_store, "progress_store")

    @property
    def quest_store(self) -> QuestStore:
        return self._require(self._quest_store, "quest_store")
