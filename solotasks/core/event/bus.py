"""
SoloTasks EventBus: async pub/sub with tiered concurrency.

Purpose
-------
Carries progression notifications (`progression.level_up`,
`achievement.unlocked`, `streak.milestone`, quest lifecycle events) from the
engine to whatever sinks the host application wires in.

Responsibilities
----------------
- Register/unregister listeners with priorities (exact or wildcard names)
- Publish events to every matching listener
- Execute listeners by tier (see `EventScheduler`)
- Isolate listener errors from the publisher
- Tag log records with the event being dispatched

Dependencies
------------
- solotasks.core.event.registry / router / scheduler
- solotasks.core.logging.logger
"""

from __future__ import annotations

import inspect
from typing import Any, Optional

from solotasks.core.event.context import apply_event_log_context
from solotasks.core.event.registry import ListenerRegistry
from solotasks.core.event.router import EventRouter
from solotasks.core.event.scheduler import EventScheduler
from solotasks.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)
from solotasks.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    In-process event bus.

    Designed for single-threaded asyncio usage; call every method from the
    same event loop.

    Examples
    --------
    >>> bus = EventBus()
    >>> bus.subscribe("achievement.unlocked", show_toast, priority=ListenerPriority.LOW)
    >>> await bus.publish("achievement.unlocked", {"user_id": "u1", "achievement_id": "first_quest"})
    """

    def __init__(
        self,
        registry: Optional[ListenerRegistry] = None,
        scheduler: Optional[EventScheduler] = None,
        config_manager: Any = None,
        *,
        critical_timeout_seconds: Optional[float] = None,
        high_timeout_seconds: Optional[float] = None,
    ) -> None:
        """
        Args:
            registry: Listener storage. Created if None.
            scheduler: Tiered executor. Created if None.
            config_manager: Source for `events.listener_timeout.*` keys.
            critical_timeout_seconds: Explicit CRITICAL timeout override.
            high_timeout_seconds: Explicit HIGH timeout override.
        """
        self._config_manager = config_manager
        self._registry = registry or ListenerRegistry(EventRouter())
        self._scheduler = scheduler or EventScheduler()
        self._published: dict[str, int] = {}

        self._critical_timeout = self._load_timeout(
            "events.listener_timeout.critical_seconds", critical_timeout_seconds, 5.0
        )
        self._high_timeout = self._load_timeout(
            "events.listener_timeout.high_seconds", high_timeout_seconds, 5.0
        )

        logger.debug(
            "EventBus initialized",
            extra={
                "critical_timeout_seconds": self._critical_timeout,
                "high_timeout_seconds": self._high_timeout,
            },
        )

    def _load_timeout(self, key: str, override: Optional[float], default: float) -> float:
        """Resolve a timeout: explicit override, then config, then default."""
        if override is not None:
            return float(override)
        if self._config_manager is None:
            return float(default)
        return float(self._config_manager.get(key, default))

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Reject callbacks that cannot take exactly one payload argument.

        Raises:
            ValueError: If the callback declares a different arity.
        """
        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # C-level callables may not expose a signature
            return

        params = list(sig.parameters.values())
        if len(params) != 1:
            name = getattr(callback, "__qualname__", None) or repr(callback)
            raise ValueError(
                f"Event listener must accept exactly 1 parameter (EventPayload), "
                f"got {len(params)} parameters for '{name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        priority: ListenerPriority = ListenerPriority.NORMAL,
        identifier: Optional[str] = None,
        once: bool = False,
        allow_duplicates: bool = False,
    ) -> str:
        """
        Subscribe a callback to an event name or wildcard pattern.

        Returns:
            The listener identifier, usable with `unsubscribe()`.

        Raises:
            ValueError: If the callback signature is invalid.
        """
        self._validate_callback_signature(callback)

        listener = EventListener.from_callback(
            event_name=event_name,
            callback=callback,
            priority=priority,
            identifier=identifier,
            once=once,
        )

        added = self._registry.add_listener(
            event_name, listener, allow_duplicates=allow_duplicates
        )

        if added:
            logger.debug(
                "EventBus: subscribed listener",
                extra={
                    "event_name": event_name,
                    "listener_id": listener.identifier,
                    "priority": listener.priority.name,
                    "once": listener.once,
                },
            )
        else:
            logger.warning(
                "EventBus: duplicate listener prevented",
                extra={"event_name": event_name, "listener_id": listener.identifier},
            )

        return listener.identifier

    def unsubscribe(self, event_name: str, identifier: str) -> bool:
        removed = self._registry.remove_listener(event_name, identifier)
        if removed:
            logger.debug(
                "EventBus: unsubscribed listener",
                extra={"event_name": event_name, "listener_id": identifier},
            )
        return removed

    def clear(self) -> None:
        """Remove all listeners. Intended for tests and full reinit."""
        total = self._registry.clear_all()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> list[Any]:
        """
        Publish an event to all subscribed listeners.

        Listener failures are logged and swallowed by the scheduler; this
        method only raises for programming errors in the bus itself.

        Returns:
            Results from CRITICAL, HIGH and NORMAL listeners.
        """
        self._published[event_name] = self._published.get(event_name, 0) + 1
        apply_event_log_context(event_name, data)

        listeners = self._registry.extract_listeners_for_event(event_name)
        if not listeners:
            logger.debug("EventBus: no listeners for event", extra={"event_name": event_name})
            return []

        logger.debug(
            "EventBus: executing listeners",
            extra={"event_name": event_name, "listener_count": len(listeners)},
        )

        return await self._scheduler.execute(
            event_name=event_name,
            payload=data,
            listeners=listeners,
            logger=logger,
            critical_timeout=self._critical_timeout,
            high_timeout=self._high_timeout,
        )

    async def drain(self) -> None:
        """Wait for fire-and-forget (LOW) listeners still running."""
        await self._scheduler.drain()

    # ------------------------------------------------------------------ #
    # Introspection
    # ------------------------------------------------------------------ #

    def get_publish_counts(self) -> dict[str, int]:
        return dict(self._published)

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name:
            return self._registry.get_listener_count_for_event(event_name)
        return self._registry.get_total_listener_count()

    def get_all_events(self) -> list[str]:
        return self._registry.get_all_event_keys()
