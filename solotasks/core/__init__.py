"""
Core infrastructure layer for SoloTasks.

Subpackages
-----------
- config: static environment config and YAML-backed tunables
- database: async SQLAlchemy engine and transaction scopes
- event: in-process async event bus
- logging: structured logging and log context
- services: dependency container

This module performs no imports of its own; import from the subpackages.
"""
