"""
Unit tests for the EventBus.

Tests priority tiers, listener isolation, wildcard routing, one-shot
listeners, timeouts and fire-and-forget delivery.
"""

import asyncio

import pytest

from solotasks.core.event import EventBus, ListenerPriority


@pytest.fixture
def bus() -> EventBus:
    return EventBus(critical_timeout_seconds=0.05, high_timeout_seconds=0.05)


@pytest.mark.unit
class TestPublish:
    async def test_results_follow_priority_tiers(self, bus):
        async def normal(payload):
            return "normal"

        async def critical(payload):
            return "critical"

        async def high(payload):
            return "high"

        bus.subscribe("quest.completed", normal)
        bus.subscribe("quest.completed", critical, priority=ListenerPriority.CRITICAL)
        bus.subscribe("quest.completed", high, priority=ListenerPriority.HIGH)

        results = await bus.publish("quest.completed", {"quest_id": "q1"})

        assert results == ["critical", "high", "normal"]

    async def test_no_listeners(self, bus):
        assert await bus.publish("quest.completed", {}) == []
        assert bus.get_publish_counts() == {"quest.completed": 1}

    async def test_failing_listener_is_isolated(self, bus):
        received = []

        async def broken(payload):
            raise RuntimeError("sink offline")

        async def healthy(payload):
            received.append(payload["achievement_id"])
            return True

        bus.subscribe("achievement.unlocked", broken, priority=ListenerPriority.HIGH)
        bus.subscribe("achievement.unlocked", healthy)

        results = await bus.publish("achievement.unlocked", {"achievement_id": "first_quest"})

        assert results == [None, True]
        assert received == ["first_quest"]

    async def test_sync_listener(self, bus):
        def sync_listener(payload):
            return payload["streak"] * 2

        bus.subscribe("streak.milestone", sync_listener)

        assert await bus.publish("streak.milestone", {"streak": 7}) == [14]

    async def test_slow_critical_listener_times_out(self, bus):
        async def slow(payload):
            await asyncio.sleep(1)
            return "late"

        bus.subscribe("progression.level_up", slow, priority=ListenerPriority.CRITICAL)

        assert await bus.publish("progression.level_up", {}) == [None]

    async def test_low_priority_runs_in_background(self, bus):
        delivered = asyncio.Event()

        async def toast(payload):
            await asyncio.sleep(0)
            delivered.set()

        bus.subscribe("achievement.unlocked", toast, priority=ListenerPriority.LOW)

        results = await bus.publish("achievement.unlocked", {})
        await bus.drain()

        assert results == []
        assert delivered.is_set()


@pytest.mark.unit
class TestSubscriptions:
    async def test_wildcard_patterns(self, bus):
        seen = []

        async def progression_listener(payload):
            seen.append(("progression", payload["n"]))

        async def everything(payload):
            seen.append(("all", payload["n"]))

        bus.subscribe("progression.*", progression_listener)
        bus.subscribe("*", everything)

        await bus.publish("progression.level_up", {"n": 1})
        await bus.publish("streak.milestone", {"n": 2})

        assert sorted(seen) == [("all", 1), ("all", 2), ("progression", 1)]

    async def test_once_listener_fires_once(self, bus):
        calls = []

        async def listener(payload):
            calls.append(payload)

        bus.subscribe("quest.created", listener, once=True)

        await bus.publish("quest.created", {"quest_id": "a"})
        await bus.publish("quest.created", {"quest_id": "b"})

        assert calls == [{"quest_id": "a"}]
        assert bus.get_listener_count("quest.created") == 0

    def test_duplicate_identifier_prevented(self, bus):
        async def listener(payload):
            return None

        bus.subscribe("quest.created", listener, identifier="sink")
        bus.subscribe("quest.created", listener, identifier="sink")

        assert bus.get_listener_count("quest.created") == 1

    def test_unsubscribe(self, bus):
        async def listener(payload):
            return None

        listener_id = bus.subscribe("quest.deleted", listener)

        assert bus.unsubscribe("quest.deleted", listener_id) is True
        assert bus.get_listener_count() == 0
        assert bus.unsubscribe("quest.deleted", listener_id) is False

    def test_callback_must_take_one_argument(self, bus):
        async def two_args(event_name, payload):
            return None

        with pytest.raises(ValueError):
            bus.subscribe("quest.created", two_args)

    def test_clear(self, bus):
        async def listener(payload):
            return None

        bus.subscribe("quest.created", listener)
        bus.subscribe("progression.*", listener)

        bus.clear()

        assert bus.get_listener_count() == 0
        assert bus.get_all_events() == []
