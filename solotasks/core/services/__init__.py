"""Service wiring for SoloTasks."""

from solotasks.core.services.container import ServiceContainer

__all__ = ["ServiceContainer"]
