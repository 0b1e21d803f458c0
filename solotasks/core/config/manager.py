"""
ConfigManager: dot-notation access to SoloTasks gameplay tunables.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable progression values.
- Back configuration with YAML defaults from the `config/` directory.
- Allow in-process overrides for tests and operational tweaks.

Responsibilities
----------------
- Load and deep-merge every YAML file under the configured directory.
- Serve reads from the merged tree, falling back to the caller's default.
- Apply overrides on top of YAML defaults without mutating them.

Key Design Decisions
--------------------
- YAML is the single source for **defaults**; overrides live in memory only.
- All state is class-level; services receive the class itself as their
  `config_manager` dependency and call `get()` on it.
- A missing directory or file degrades to the caller-supplied defaults.

Dependencies
------------
- PyYAML for parsing.
- `solotasks.core.config.config.Config` for the default directory.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, MutableMapping, Optional

import yaml

from solotasks.core.config.config import Config
from solotasks.core.logging.logger import get_logger

logger = get_logger(__name__)


class ConfigManagerError(RuntimeError):
    """Base error type for ConfigManager-related failures."""


class ConfigManager:
    """
    Gameplay configuration management backed by YAML files.

    Examples
    --------
    >>> ConfigManager.initialize()
    >>> tz = ConfigManager.get("streaks.timezone", "UTC")
    >>> ConfigManager.set_override("achievements.notification_stagger_ms", 0)
    """

    _defaults: Dict[str, Any] = {}
    _overrides: Dict[str, Any] = {}
    _initialized: bool = False
    _config_dir: Optional[Path] = None

    # =========================================================================
    # YAML LOADING
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)  # type: ignore[index]
            else:
                target[key] = value

    @classmethod
    def _load_yaml_configs(cls, config_dir: Path) -> None:
        """Recursively load all YAML config files into `_defaults`."""
        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            return

        yaml_files = sorted(config_dir.rglob("*.yaml")) + sorted(config_dir.rglob("*.yml"))
        loaded_count = 0

        for yaml_file in yaml_files:
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
                logger.debug(
                    "Loaded YAML config",
                    extra={"file": str(yaml_file.relative_to(config_dir))},
                )
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={
                        "file": str(yaml_file.relative_to(config_dir)),
                        "root_type": type(data).__name__,
                    },
                )

        logger.info(
            "YAML configs loaded",
            extra={
                "yaml_file_count": loaded_count,
                "total_keys": len(cls._defaults),
            },
        )

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    @classmethod
    def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML defaults (idempotent).

        Args:
            config_dir: Directory to scan. Defaults to `Config.CONFIG_DIR`.
        """
        if cls._initialized:
            return

        cls._config_dir = Path(config_dir) if config_dir is not None else Config.CONFIG_DIR
        cls._defaults = {}
        cls._load_yaml_configs(cls._config_dir)
        cls._initialized = True

    @classmethod
    def reset(cls) -> None:
        """Drop all loaded defaults and overrides."""
        cls._defaults = {}
        cls._overrides = {}
        cls._initialized = False
        cls._config_dir = None

    # =========================================================================
    # READ API
    # =========================================================================

    @staticmethod
    def _resolve(tree: Dict[str, Any], key: str) -> Any:
        value: Any = tree
        for part in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
            if value is None:
                return None
        return value

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Args:
            key: Dot-notation config path (e.g. `"streaks.timezone"`).
            default: Value returned when the key is absent everywhere.

        Returns:
            Override value, else YAML value, else `default`.
        """
        if not cls._initialized:
            cls.initialize()

        if key in cls._overrides:
            return cls._overrides[key]

        value = cls._resolve(cls._defaults, key)
        return default if value is None else value

    @classmethod
    def get_all_keys(cls) -> List[str]:
        """Return all top-level keys currently loaded from YAML."""
        return list(cls._defaults.keys())

    # =========================================================================
    # OVERRIDES
    # =========================================================================

    @classmethod
    def set_override(cls, key: str, value: Any) -> None:
        """Override a dot-notation key for the lifetime of the process."""
        if not key:
            raise ConfigManagerError("Config key must be a non-empty string")
        old_value = cls.get(key)
        cls._overrides[key] = value
        logger.info(
            "Config override applied",
            extra={"config_key": key, "old_value": old_value, "new_value": value},
        )

    @classmethod
    def clear_overrides(cls) -> None:
        cls._overrides = {}
