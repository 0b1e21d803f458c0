"""
Event system for SoloTasks.

Exposes the EventBus and its types plus a process-wide `event_bus` instance
for hosts that do not build their own through the service container.
"""

from .bus import EventBus
from .context import apply_event_log_context
from .types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerPriority,
)

event_bus = EventBus()

__all__ = [
    "event_bus",
    "EventBus",
    "EventPayload",
    "ListenerPriority",
    "EventListener",
    "CallbackType",
    "apply_event_log_context",
]
