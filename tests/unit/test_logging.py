"""
Unit tests for the structured logging helpers.
"""

import json
import logging
import queue

import pytest

from solotasks.core.logging import (
    LogContext,
    clear_log_context,
    get_log_context,
    get_logging_health,
    set_log_context,
)
from solotasks.core.logging.logger import (
    ConsoleFormatter,
    ContextFilter,
    DroppingQueueHandler,
    JSONFormatter,
)


@pytest.fixture(autouse=True)
def clean_context():
    clear_log_context()
    yield
    clear_log_context()


def make_record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="solotasks.modules.progression.service",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestLogContext:
    def test_context_scoped_to_block(self):
        with LogContext(user_id="hunter-1", operation="apply_xp_delta", correlation_id="abc"):
            context = get_log_context()
            assert context["user_id"] == "hunter-1"
            assert context["operation"] == "apply_xp_delta"
            assert context["correlation_id"] == "abc"

        assert get_log_context() == {}

    async def test_async_context(self):
        async with LogContext(user_id="hunter-1", quest_id="q1"):
            assert get_log_context()["quest_id"] == "q1"

        assert get_log_context() == {}

    def test_nested_context_inherits_outer_fields(self):
        with LogContext(user_id="hunter-1", quest_id="q1", operation="complete_quest", correlation_id="abc"):
            with LogContext(operation="apply_xp_delta"):
                inner = get_log_context()
                assert inner["quest_id"] == "q1"
                assert inner["operation"] == "apply_xp_delta"
                assert inner["correlation_id"] == "abc"

            assert get_log_context()["operation"] == "complete_quest"

    def test_correlation_id_generated_once(self):
        with LogContext(user_id="hunter-1"):
            outer_id = get_log_context()["correlation_id"]
            with LogContext(quest_id="q1"):
                assert get_log_context()["correlation_id"] == outer_id

    def test_set_log_context_merges(self):
        set_log_context(user_id="hunter-1")
        set_log_context(operation="register_streak", event_name="streak.milestone")

        context = get_log_context()
        assert context["user_id"] == "hunter-1"
        assert context["operation"] == "register_streak"
        assert context["event_name"] == "streak.milestone"


@pytest.mark.unit
class TestFormatting:
    def test_context_filter_tags_record(self):
        record = make_record("Level up")

        with LogContext(user_id="hunter-1", operation="apply_xp_delta"):
            ContextFilter().filter(record)

        assert record.user_id == "hunter-1"
        assert record.operation == "apply_xp_delta"
        assert record.quest_id == "N/A"

    def test_json_formatter_includes_context_and_extra(self):
        record = make_record("Level up", new_level=5)
        with LogContext(user_id="hunter-1"):
            ContextFilter().filter(record)

        data = json.loads(JSONFormatter().format(record))

        assert data["message"] == "Level up"
        assert data["level"] == "INFO"
        assert data["user_id"] == "hunter-1"
        assert "quest_id" not in data
        assert data["extra"]["new_level"] == 5

    def test_console_formatter_appends_bound_context(self):
        record = make_record("Level up")
        with LogContext(user_id="hunter-1", operation="apply_xp_delta"):
            ContextFilter().filter(record)

        line = ConsoleFormatter().format(record)

        assert line.endswith("Level up [user=hunter-1 op=apply_xp_delta]")

    def test_full_queue_drops_record(self):
        handler = DroppingQueueHandler(queue.Queue(maxsize=1))

        handler.enqueue(make_record("first"))
        handler.enqueue(make_record("second"))

        assert (handler.enqueued, handler.dropped) == (1, 1)

    def test_logging_initialized_on_import(self):
        health = get_logging_health()

        assert health.initialized is True
        assert health.queue_max_size > 0
