"""
Configuration subsystem for SoloTasks.

- **config.py**: static configuration from environment variables (.env support)
- **manager.py**: gameplay tunables from YAML with dot-notation access

`ConfigManager` is imported from its module directly; the logging subsystem
depends on `Config`, and `ConfigManager` depends on logging.
"""

from solotasks.core.config.config import Config, Environment

__all__ = ["Config", "Environment"]
