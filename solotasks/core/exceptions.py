"""
Infrastructure exceptions for SoloTasks.

Failures of the engine's own setup rather than of a player's request:
an unknown streak timezone, a config key nobody set, a service asked for
before it was registered. Domain errors live in
`solotasks.modules.shared.exceptions`.
"""

from __future__ import annotations

from typing import Any, Dict

from solotasks.modules.shared.exceptions import ErrorSeverity


class ConfigurationError(Exception):
    """A configuration key is missing or holds an unusable value."""

    severity = ErrorSeverity.CRITICAL
    error_code = "CONFIG_ERROR"

    def __init__(self, config_key: str, message: str) -> None:
        super().__init__(f"Configuration error for {config_key}: {message}")
        self.config_key = config_key
        self.message = str(self)
        self.details: Dict[str, Any] = {"config_key": config_key, "message": message}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
        }
