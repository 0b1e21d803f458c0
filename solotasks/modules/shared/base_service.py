"""
Base Service Foundation

Purpose
-------
Provides the foundational class for SoloTasks domain services.
Services implement business logic, enforce business rules, go through a
store for persistence, and emit notifications on the event bus.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Safe config access
- Event emission helper
- Common input validation helpers

What this class does NOT do:
- Manage database transactions (stores and DatabaseService do)
- Contain progression rules

Usage
-----
    class QuestService(BaseService):
        def __init__(self, quest_store, progression, config_manager, event_bus, logger):
            super().__init__(config_manager, event_bus, logger)
            self._quests = quest_store
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from .exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from solotasks.core.config.manager import ConfigManager
    from solotasks.core.event.bus import EventBus


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Gameplay configuration source (anything with `get(key, default)`)
        event_bus: Event bus for notifications
        logger: Structured logger instance
    """

    def __init__(
        self,
        config_manager: ConfigManager,
        event_bus: EventBus,
        logger: Logger,
    ) -> None:
        self._config = config_manager
        self._events = event_bus
        self.log = logger

    def get_config(
        self, key: str, default: Optional[Any] = None, required: bool = False
    ) -> Any:
        """
        Retrieve a configuration value.

        Raises:
            ConfigurationError: If required=True and key is missing
        """
        from solotasks.core.exceptions import ConfigurationError

        value = self._config.get(key, default)
        if required and value is None:
            raise ConfigurationError(key, f"Required configuration key '{key}' is missing")
        return value

    async def emit_event(
        self,
        event_type: str,
        data: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Publish a notification; listener failures never propagate here."""
        await self._events.publish(event_type, {**data, **(context or {})})

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    # bool is an int subclass; reject it explicitly everywhere below

    def validate_positive_int(self, value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(name, f"{name} must be a positive integer, got {value!r}")

    def validate_non_negative_int(self, value: Any, name: str) -> None:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise ValidationError(
                name, f"{name} must be a non-negative integer, got {value!r}"
            )

    def validate_range(self, value: Any, name: str, min_val: int, max_val: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValidationError(name, f"{name} must be an integer, got {value!r}")
        if not (min_val <= value <= max_val):
            raise ValidationError(
                name,
                f"{name} must be between {min_val} and {max_val}, got {value}",
            )

    def validate_non_empty_str(self, value: Any, name: str) -> str:
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(name, f"{name} must be a non-empty string")
        return value.strip()
