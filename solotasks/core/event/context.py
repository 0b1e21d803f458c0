"""Event log context helpers."""

from __future__ import annotations

from typing import Any

from solotasks.core.logging.logger import set_log_context


def apply_event_log_context(event_name: str, payload: dict[str, Any]) -> None:
    """
    Tag subsequent log records in this task with the event being dispatched.

    Only payload keys are recorded, never values.
    """
    set_log_context(
        event_name=event_name,
        event_keys=list(payload.keys()),
    )
