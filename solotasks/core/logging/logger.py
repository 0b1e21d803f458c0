"""
SoloTasks Logging Subsystem

Purpose
-------
Structured logging for the progression engine. Every record emitted while
an award, streak check or quest transition is running carries the user,
quest, operation and a correlation id, so one completion can be followed
from the quest service through the XP write to the achievement unlocks.

Responsibilities
----------------
- Configure the root logger once, at import
- Hand records to a background thread (QueueHandler + QueueListener) so
  store coroutines never block on console I/O
- Render JSON in production and a compact human line in development
- Propagate operation context across awaits with a ContextVar

Design Notes
------------
- Nested `LogContext` blocks merge into the enclosing context and keep its
  correlation id; leaving a block restores the outer context exactly.
- Values passed through `extra={...}` end up under "extra" in JSON output.
- When the queue is full the record is dropped and counted.

Dependencies
------------
- solotasks.core.config.config.Config
"""

from __future__ import annotations

import atexit
import json
import logging
import queue
import sys
import uuid
from contextvars import ContextVar, Token
from dataclasses import dataclass
from datetime import datetime, timezone
from logging import Logger
from logging.handlers import QueueHandler, QueueListener
from typing import Any, Dict, Optional

from solotasks.core.config.config import Config

CONTEXT_FIELDS = ("user_id", "quest_id", "operation", "correlation_id")
UNSET = "N/A"
QUEUE_MAX_SIZE = 10_000

# Attributes every LogRecord has; anything else on a record came from `extra`
_RECORD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {
    "message",
    "asctime",
    "taskName",
    *CONTEXT_FIELDS,
}

_log_context: ContextVar[Dict[str, Any]] = ContextVar("solotasks_log_context", default={})


# ============================================================================
# Settings
# ============================================================================


@dataclass(frozen=True)
class LogSettings:
    level: int
    json_output: bool
    colors: bool

    @classmethod
    def from_config(cls) -> "LogSettings":
        level = logging.getLevelName(str(Config.LOG_LEVEL).upper())
        if not isinstance(level, int):
            level = logging.INFO

        json_output = Config.is_production() if Config.LOG_JSON is None else bool(Config.LOG_JSON)
        colors = not json_output and bool(Config.LOG_COLORS) and sys.stdout.isatty()
        return cls(level=level, json_output=json_output, colors=colors)


# ============================================================================
# Filters & Formatters
# ============================================================================


class ContextFilter(logging.Filter):
    """Copy the current LogContext onto the record; missing fields read "N/A"."""

    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        context = _log_context.get()
        for name in CONTEXT_FIELDS:
            setattr(record, name, context.get(name) or UNSET)
        for name, value in context.items():
            if name not in CONTEXT_FIELDS and not hasattr(record, name):
                setattr(record, name, value)
        return True


def _record_extra(record: logging.LogRecord) -> Dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """One JSON object per line; context fields only when set."""

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, UNSET)
            if value != UNSET:
                data[name] = value

        extra = _record_extra(record)
        if extra:
            data["extra"] = extra
        if record.exc_info:
            data["exception"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)


class ConsoleFormatter(logging.Formatter):
    """
    Development output: time, level, logger, message, then the bound
    user/quest/operation, e.g. `[user=hunter-1 op=apply_xp_delta]`.
    """

    LEVEL_COLORS = {
        logging.DEBUG: "\033[90m",
        logging.INFO: "\033[94m",
        logging.WARNING: "\033[93m",
        logging.ERROR: "\033[91m",
        logging.CRITICAL: "\033[1;91m",
    }
    SHORT_NAMES = {"user_id": "user", "quest_id": "quest", "operation": "op"}

    def __init__(self, colors: bool = False) -> None:
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )
        self.colors = colors

    def format(self, record: logging.LogRecord) -> str:  # type: ignore[override]
        line = super().format(record)

        tags = [
            f"{short}={getattr(record, name)}"
            for name, short in self.SHORT_NAMES.items()
            if getattr(record, name, UNSET) != UNSET
        ]
        if tags:
            line = f"{line} [{' '.join(tags)}]"

        if self.colors and record.levelno in self.LEVEL_COLORS:
            line = f"{self.LEVEL_COLORS[record.levelno]}{line}\033[0m"
        return line


# ============================================================================
# Queue
# ============================================================================


class DroppingQueueHandler(QueueHandler):
    """Never blocks the event loop: a full queue drops the record."""

    def __init__(self, log_queue: "queue.Queue[logging.LogRecord]") -> None:
        super().__init__(log_queue)
        self.enqueued = 0
        self.dropped = 0

    def enqueue(self, record: logging.LogRecord) -> None:  # type: ignore[override]
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            self.dropped += 1
        else:
            self.enqueued += 1


@dataclass(frozen=True)
class LoggingHealth:
    initialized: bool
    queue_size: int
    queue_max_size: int
    records_enqueued: int
    records_dropped: int


_queue_handler: Optional[DroppingQueueHandler] = None


def setup_logging() -> None:
    """Install the queue handler on the root logger; later calls are no-ops."""
    global _queue_handler

    if _queue_handler is not None:
        return

    settings = LogSettings.from_config()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(settings.level)
    console.setFormatter(
        JSONFormatter() if settings.json_output else ConsoleFormatter(colors=settings.colors)
    )

    log_queue: "queue.Queue[logging.LogRecord]" = queue.Queue(QUEUE_MAX_SIZE)
    listener = QueueListener(log_queue, console, respect_handler_level=True)
    listener.start()
    atexit.register(listener.stop)

    # Context is captured here, in the emitting task, not on the listener thread
    handler = DroppingQueueHandler(log_queue)
    handler.setLevel(settings.level)
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    root.setLevel(settings.level)
    root.addHandler(handler)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

    _queue_handler = handler
    logging.getLogger(__name__).debug(
        "Logging initialized",
        extra={
            "environment": Config.ENVIRONMENT,
            "log_level": logging.getLevelName(settings.level),
            "json_output": settings.json_output,
        },
    )


def get_logging_health() -> LoggingHealth:
    if _queue_handler is None:
        return LoggingHealth(False, 0, 0, 0, 0)

    log_queue = _queue_handler.queue
    return LoggingHealth(
        initialized=True,
        queue_size=log_queue.qsize(),
        queue_max_size=log_queue.maxsize,
        records_enqueued=_queue_handler.enqueued,
        records_dropped=_queue_handler.dropped,
    )


# ============================================================================
# Public API
# ============================================================================


def get_logger(name: str) -> Logger:
    return logging.getLogger(name)


class LogContext:
    """
    Bind operation context to every log record emitted inside the block.

    Fields left as None are inherited from an enclosing LogContext, and so
    is the correlation id; a new one is generated only at the outermost
    level.

    Example:
        >>> async with LogContext(user_id="hunter-1", quest_id=quest.id, operation="complete_quest"):
        ...     await progression.apply_xp_delta(...)  # logs keep quest_id
    """

    def __init__(
        self,
        user_id: Optional[str] = None,
        quest_id: Optional[str] = None,
        operation: Optional[str] = None,
        correlation_id: Optional[str] = None,
        **extra: Any,
    ) -> None:
        self._fields: Dict[str, Any] = {
            "user_id": user_id,
            "quest_id": quest_id,
            "operation": operation,
            "correlation_id": correlation_id,
            **extra,
        }
        self._token: Optional[Token[Dict[str, Any]]] = None

    def __enter__(self) -> "LogContext":
        context = dict(_log_context.get())
        for name, value in self._fields.items():
            if value is not None:
                context[name] = str(value) if name in CONTEXT_FIELDS else value
        context.setdefault("correlation_id", uuid.uuid4().hex[:8])
        self._token = _log_context.set(context)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.__exit__(exc_type, exc_val, exc_tb)


def set_log_context(**fields: Any) -> None:
    """Merge fields into the current task's context (None values are ignored)."""
    context = dict(_log_context.get())
    context.update({k: v for k, v in fields.items() if v is not None})
    _log_context.set(context)


def get_log_context() -> Dict[str, Any]:
    return dict(_log_context.get())


def clear_log_context() -> None:
    _log_context.set({})


setup_logging()
