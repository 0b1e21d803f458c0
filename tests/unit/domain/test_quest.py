"""
Unit tests for the Quest aggregate.

Tests plain quest completion, chain lifecycle rules, reset copies, and
domain events recorded during transitions.
"""

from datetime import datetime, timedelta, timezone

import pytest

from solotasks.domain.models.base import DomainValidationError
from solotasks.domain.models.progress import QuestType
from solotasks.domain.models.quest import ChainStep, Quest, chain_difficulty, steps_from_mappings
from solotasks.modules.shared.exceptions import InvalidOperationError
from tests.conftest import assert_domain_event_emitted, get_domain_event_payload

NOW = datetime(2026, 3, 10, 9, 0, tzinfo=timezone.utc)


def make_quest(**overrides) -> Quest:
    values = dict(
        quest_id="q1",
        user_id="u1",
        title="Morning run",
        quest_type=QuestType.DAILY,
        difficulty=2,
        xp=20,
        created_at=NOW,
    )
    values.update(overrides)
    return Quest(**values)


def make_chain(step_count: int = 3, time_limit: int = 300) -> Quest:
    return Quest.new_chain(
        user_id="u1",
        title="Deep Work Dungeon",
        steps=[ChainStep(f"Step {i}") for i in range(step_count)],
        time_limit_seconds=time_limit,
        xp=100,
        created_at=NOW,
    )


@pytest.mark.unit
@pytest.mark.domain
class TestQuestConstruction:
    @pytest.mark.parametrize("difficulty", [0, 6])
    def test_difficulty_outside_range_rejected(self, difficulty):
        with pytest.raises(DomainValidationError):
            make_quest(difficulty=difficulty)

    def test_dungeon_is_not_a_quest_type(self):
        with pytest.raises(DomainValidationError) as exc_info:
            make_quest(quest_type=QuestType.DUNGEON)

        assert exc_info.value.field == "quest_type"

    def test_blank_title_rejected(self):
        with pytest.raises(DomainValidationError):
            make_quest(title="   ")

    def test_plain_quest_cannot_have_steps(self):
        with pytest.raises(DomainValidationError):
            make_quest(steps=[ChainStep("a")])

    @pytest.mark.parametrize("steps,expected", [(1, 1), (2, 1), (3, 2), (4, 2), (5, 3), (10, 5), (12, 5), (40, 5)])
    def test_chain_difficulty_from_step_count(self, steps, expected):
        assert chain_difficulty(steps) == expected
        assert make_chain(step_count=steps).difficulty == expected

    def test_chain_difficulty_outside_range_rejected(self):
        with pytest.raises(DomainValidationError):
            Quest(
                quest_id="c1",
                user_id="u1",
                title="Marathon",
                quest_type=QuestType.CUSTOM,
                difficulty=6,
                xp=100,
                created_at=NOW,
                is_chain=True,
                steps=[ChainStep(f"Step {i}") for i in range(12)],
                time_limit_seconds=300,
            )

    def test_chain_requires_positive_time_limit(self):
        with pytest.raises(DomainValidationError):
            make_chain(time_limit=0)

    def test_steps_from_mappings(self):
        steps = steps_from_mappings([{"title": "Plan"}, ChainStep("Do", "focus")])

        assert steps == [ChainStep("Plan"), ChainStep("Do", "focus")]

    def test_step_without_title_rejected(self):
        with pytest.raises(DomainValidationError):
            steps_from_mappings([{"description": "no title"}])


@pytest.mark.unit
@pytest.mark.domain
class TestPlainQuestLifecycle:
    def test_complete_records_event(self):
        quest = make_quest()

        quest.complete(NOW)

        assert quest.completed is True
        assert quest.completed_at == NOW
        assert assert_domain_event_emitted(quest, "quest.completed")
        assert get_domain_event_payload(quest, "quest.completed")["xp"] == 20

    def test_reopen_drops_completion_event(self):
        quest = make_quest()
        quest.complete(NOW)

        quest.reopen()

        assert quest.completed is False
        assert quest.get_pending_events() == []
        quest.complete(NOW)
        assert quest.completed is True

    def test_complete_twice_rejected(self):
        quest = make_quest()
        quest.complete(NOW)

        with pytest.raises(InvalidOperationError):
            quest.complete(NOW)

    def test_completed_quest_not_deletable(self):
        quest = make_quest()
        quest.ensure_deletable()
        quest.complete(NOW)

        with pytest.raises(InvalidOperationError):
            quest.ensure_deletable()

    def test_reset_copy_is_fresh(self):
        # Arrange
        quest = make_quest(description="5km")
        quest.complete(NOW)
        later = NOW + timedelta(days=1)

        # Act
        copy = quest.reset_copy(later)

        # Assert
        assert copy.id != quest.id
        assert copy.completed is False
        assert copy.is_reset is True
        assert copy.original_quest_id == quest.id
        assert copy.created_at == later
        assert (copy.title, copy.xp, copy.description) == (quest.title, quest.xp, "5km")

    def test_clear_domain_events(self):
        quest = make_quest()
        quest.complete(NOW)

        drained = quest.clear_domain_events()

        assert [e.event_name for e in drained] == ["quest.completed"]
        assert quest.get_pending_events() == []


@pytest.mark.unit
@pytest.mark.domain
class TestChainLifecycle:
    def test_chain_cannot_be_completed_as_plain_quest(self):
        chain = make_chain()

        with pytest.raises(InvalidOperationError):
            chain.complete(NOW)

    def test_full_run(self):
        # Arrange
        chain = make_chain(step_count=2, time_limit=300)

        # Act
        chain.start_chain(NOW)
        chain.acknowledge_step(0)
        chain.acknowledge_step(1)
        remaining = chain.complete_chain(NOW + timedelta(seconds=120))

        # Assert
        assert remaining == 180
        assert chain.time_remaining == 180
        assert chain.completed is True
        names = [e.event_name for e in chain.get_pending_events()]
        assert names == [
            "quest_chain.started",
            "quest_chain.step_acknowledged",
            "quest_chain.step_acknowledged",
        ]

    def test_steps_must_be_acknowledged_in_order(self):
        chain = make_chain()
        chain.start_chain(NOW)

        with pytest.raises(InvalidOperationError):
            chain.acknowledge_step(1)

        assert chain.current_step == 0

    def test_acknowledge_before_start_rejected(self):
        chain = make_chain()

        with pytest.raises(InvalidOperationError):
            chain.acknowledge_step(0)

    def test_start_twice_rejected(self):
        chain = make_chain()
        chain.start_chain(NOW)

        with pytest.raises(InvalidOperationError):
            chain.start_chain(NOW)

    def test_complete_with_steps_remaining_rejected(self):
        chain = make_chain(step_count=3)
        chain.start_chain(NOW)
        chain.acknowledge_step(0)

        with pytest.raises(InvalidOperationError):
            chain.complete_chain(NOW + timedelta(seconds=10))

        assert chain.completed is False

    def test_over_budget_completes_with_no_time_left(self):
        chain = make_chain(step_count=1, time_limit=10)
        chain.start_chain(NOW)
        chain.acknowledge_step(0)

        remaining = chain.complete_chain(NOW + timedelta(seconds=20))

        assert remaining == 0
        assert chain.completed is True
        assert chain.time_remaining == 0

    def test_reopen_keeps_run_progress(self):
        chain = make_chain(step_count=2)
        chain.start_chain(NOW)
        chain.acknowledge_step(0)
        chain.acknowledge_step(1)
        chain.complete_chain(NOW + timedelta(seconds=30))

        chain.reopen()

        assert chain.completed is False
        assert chain.completed_at is None
        assert chain.time_remaining is None
        assert chain.current_step == 2
        assert chain.complete_chain(NOW + timedelta(seconds=40)) == 260

    def test_exactly_on_budget_allowed(self):
        chain = make_chain(step_count=1, time_limit=60)
        chain.start_chain(NOW)
        chain.acknowledge_step(0)

        assert chain.complete_chain(NOW + timedelta(seconds=60)) == 0

    def test_abandon_resets_progress(self):
        chain = make_chain()
        chain.start_chain(NOW)
        chain.acknowledge_step(0)

        chain.abandon()

        assert chain.started_at is None
        assert chain.current_step == 0
        assert assert_domain_event_emitted(chain, "quest_chain.abandoned")

    def test_abandon_idle_chain_rejected(self):
        with pytest.raises(InvalidOperationError):
            make_chain().abandon()

    def test_chain_to_dict_includes_steps(self):
        data = make_chain(step_count=2).to_dict()

        assert data["is_chain"] is True
        assert [s["title"] for s in data["steps"]] == ["Step 0", "Step 1"]
        assert data["time_limit_seconds"] == 300
