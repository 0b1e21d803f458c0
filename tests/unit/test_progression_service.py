"""
Unit tests for ProgressionService.

Tests XP awards, multi-level progression, title unlocks, per-type counters,
validation ordering, registration, title selection and progress reset.
"""

import asyncio

import pytest

from solotasks.core.logging.logger import get_logger
from solotasks.domain.models.progress import DEFAULT_TITLE, UserProgress
from solotasks.modules.progression.leveling import level_from_total_xp, total_xp_for_level
from solotasks.modules.progression.service import ProgressionService
from solotasks.modules.progression.store import InMemoryProgressStore
from solotasks.modules.shared.exceptions import (
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)


@pytest.fixture
def bare_progression(progress_store, config_manager, event_bus):
    """ProgressionService without an achievement evaluator bound."""
    return ProgressionService(
        store=progress_store,
        config_manager=config_manager,
        event_bus=event_bus,
        logger=get_logger("tests.progression"),
    )


class YieldingProgressStore(InMemoryProgressStore):
    """Hands control back to the event loop on every read, like a networked store."""

    async def get(self, user_id: str) -> UserProgress:
        await asyncio.sleep(0)
        return await super().get(user_id)


@pytest.fixture
def seed(progress_store):
    async def _seed(**fields) -> str:
        fields.setdefault("user_id", "hunter-1")
        await progress_store.create(UserProgress(**fields))
        return fields["user_id"]

    return _seed


@pytest.mark.unit
class TestRegistration:
    async def test_register_creates_default_record(self, progression):
        progress = await progression.register_user("u1")

        assert progress == UserProgress.new("u1")
        assert await progression.get_progress("u1") == progress

    async def test_register_twice_rejected(self, progression):
        await progression.register_user("u1")

        with pytest.raises(InvalidOperationError):
            await progression.register_user("u1")

    async def test_empty_user_id_rejected(self, progression):
        with pytest.raises(ValidationError):
            await progression.register_user("  ")

    async def test_unknown_user(self, progression):
        with pytest.raises(NotFoundError):
            await progression.get_progress("ghost")


@pytest.mark.unit
class TestApplyXPDelta:
    """Test XP awards without achievement bonuses."""

    async def test_award_below_threshold(self, bare_progression, seed):
        user_id = await seed()

        result = await bare_progression.apply_xp_delta(user_id, 60)

        assert result.level == 1
        assert result.xp == 60
        assert result.total_xp == 60
        assert result.leveled_up is False

    async def test_award_exactly_at_threshold(self, bare_progression, seed):
        # Arrange
        user_id = await seed(level=3)

        # Act
        result = await bare_progression.apply_xp_delta(user_id, 300)

        # Assert
        assert result.level == 4
        assert result.xp == 0
        assert result.leveled_up is True
        assert result.levels_gained == 1

    async def test_award_spanning_levels(self, bare_progression, seed):
        """One award resolves every level it covers."""
        # Arrange
        user_id = await seed(level=3)

        # Act
        result = await bare_progression.apply_xp_delta(user_id, 300 + 400 + 10)

        # Assert
        assert result.level == 5
        assert result.xp == 10
        assert result.levels_gained == 2
        assert result.titles == (DEFAULT_TITLE, "E-Rank Hunter")
        assert result.current_title == "E-Rank Hunter"

    async def test_large_award_unlocks_every_title_in_order(self, bare_progression, seed):
        user_id = await seed()

        result = await bare_progression.apply_xp_delta(user_id, total_xp_for_level(50) + 5)

        assert result.level == 50
        assert result.xp == 5
        assert result.titles == (
            DEFAULT_TITLE,
            "E-Rank Hunter",
            "D-Rank Hunter",
            "C-Rank Hunter",
            "B-Rank Hunter",
            "A-Rank Hunter",
            "S-Rank Hunter",
            "National Level Hunter",
            "Shadow Monarch",
        )
        assert result.current_title == "Shadow Monarch"

    async def test_zero_xp_is_a_valid_award(self, bare_progression, seed):
        user_id = await seed(level=2, xp=10)

        result = await bare_progression.apply_xp_delta(user_id, 0)

        assert (result.level, result.xp) == (2, 10)

    async def test_counters_follow_quest_type(self, bare_progression, seed, progress_store):
        user_id = await seed()

        await bare_progression.apply_xp_delta(user_id, 10, "weekly")
        await bare_progression.apply_xp_delta(user_id, 10, "dungeon")
        await bare_progression.apply_xp_delta(user_id, 10)

        progress = await progress_store.get(user_id)
        assert progress.completed_quests == 2
        assert progress.completed_weekly_quests == 1
        assert progress.completed_dungeons == 1
        assert progress.completed_daily_quests == 0

    async def test_award_does_not_touch_last_active(self, bare_progression, seed, progress_store):
        user_id = await seed()

        await bare_progression.apply_xp_delta(user_id, 10, "daily")

        assert (await progress_store.get(user_id)).last_active_at is None

    @pytest.mark.parametrize("xp", [-1, True, 1.5, "10"])
    async def test_invalid_xp_rejected_before_io(self, bare_progression, seed, progress_store, xp):
        user_id = await seed()
        writes = progress_store.write_count

        with pytest.raises(ValidationError):
            await bare_progression.apply_xp_delta(user_id, xp)

        assert progress_store.write_count == writes

    async def test_unknown_quest_type_rejected_before_io(
        self, bare_progression, seed, progress_store
    ):
        user_id = await seed()
        writes = progress_store.write_count

        with pytest.raises(ValidationError):
            await bare_progression.apply_xp_delta(user_id, 10, "monthly")

        assert progress_store.write_count == writes

    async def test_unknown_user(self, bare_progression):
        with pytest.raises(NotFoundError):
            await bare_progression.apply_xp_delta("ghost", 10)

    async def test_concurrent_awards_are_all_counted(self, bare_progression, seed, progress_store):
        user_id = await seed()

        await asyncio.gather(
            *(bare_progression.apply_xp_delta(user_id, 10, "daily") for _ in range(20))
        )

        progress = await progress_store.get(user_id)
        assert progress.completed_quests == 20
        assert progress.completed_daily_quests == 20
        assert progress.total_xp == 200

    async def test_interleaved_awards_keep_level_consistent(self, config_manager, event_bus):
        # Arrange
        store = YieldingProgressStore({"u1": UserProgress.new("u1")})
        service = ProgressionService(
            store=store,
            config_manager=config_manager,
            event_bus=event_bus,
            logger=get_logger("tests.progression"),
        )

        # Act
        await asyncio.gather(
            *(service.apply_xp_delta("u1", 10, "daily") for _ in range(20))
        )

        # Assert
        progress = await store.get("u1")
        assert progress.total_xp == 200
        assert (progress.level, progress.xp) == level_from_total_xp(progress.total_xp)
        assert (progress.level, progress.xp) == (2, 100)
        assert progress.version == 20


@pytest.mark.unit
class TestLevelUpEvents:
    async def test_level_up_event_payload(self, bare_progression, seed, events):
        user_id = await seed(level=4)

        await bare_progression.apply_xp_delta(user_id, 400)

        [payload] = events.payloads("progression.level_up")
        assert payload["user_id"] == user_id
        assert payload["old_level"] == 4
        assert payload["new_level"] == 5
        assert payload["levels_gained"] == 1
        assert payload["new_title"] == "E-Rank Hunter"

    async def test_level_up_without_new_title(self, bare_progression, seed, events):
        user_id = await seed()

        await bare_progression.apply_xp_delta(user_id, 100)

        [payload] = events.payloads("progression.level_up")
        assert payload["new_title"] is None

    async def test_no_event_without_level_change(self, bare_progression, seed, events):
        user_id = await seed()

        await bare_progression.apply_xp_delta(user_id, 99)

        assert events.payloads("progression.level_up") == []


@pytest.mark.unit
class TestAwardWithAchievements:
    """Awards through the wired container also run achievement evaluation."""

    async def test_level_five_unlock_bonus_in_result(self, progression, seed):
        # Arrange
        user_id = await seed(level=4)

        # Act
        result = await progression.apply_xp_delta(user_id, 400)

        # Assert
        assert [a.id for a in result.unlocked_achievements] == ["level_up_5"]
        assert result.level == 5
        assert result.xp == 100
        assert result.total_xp == 500
        assert result.leveled_up is True

    async def test_first_quest_bonus(self, progression, hunter):
        result = await progression.apply_xp_delta(hunter, 10, "daily")

        assert [a.id for a in result.unlocked_achievements] == ["first_quest"]
        assert result.xp == 60
        assert result.total_xp == 60

    async def test_result_serializes(self, progression, hunter):
        result = await progression.apply_xp_delta(hunter, 10, "daily")

        data = result.to_dict()
        assert data["unlocked_achievements"] == ["first_quest"]
        assert data["titles"] == [DEFAULT_TITLE]


@pytest.mark.unit
class TestTitles:
    async def test_select_unlocked_title(self, progression, seed):
        user_id = await seed(
            titles=(DEFAULT_TITLE, "E-Rank Hunter"), current_title="E-Rank Hunter"
        )

        progress = await progression.select_title(user_id, DEFAULT_TITLE)

        assert progress.current_title == DEFAULT_TITLE

    async def test_select_locked_title_rejected(self, progression, hunter):
        with pytest.raises(ValidationError) as exc_info:
            await progression.select_title(hunter, "Shadow Monarch")

        assert exc_info.value.field == "title"

    async def test_new_title_replaces_selected_one(self, bare_progression, seed):
        user_id = await seed(level=4, titles=(DEFAULT_TITLE,))

        result = await bare_progression.apply_xp_delta(user_id, 400)

        assert result.current_title == "E-Rank Hunter"


@pytest.mark.unit
class TestResetProgress:
    async def test_reset_keeps_achievements_and_lifetime_xp(
        self, progression, seed, events
    ):
        # Arrange
        user_id = await seed(
            level=12,
            xp=300,
            total_xp=6000,
            titles=(DEFAULT_TITLE, "E-Rank Hunter", "D-Rank Hunter"),
            current_title="D-Rank Hunter",
            streak=5,
            completed_quests=40,
            completed_daily_quests=40,
            achievements=("first_quest", "quest_novice"),
        )

        # Act
        progress = await progression.reset_progress(user_id)

        # Assert
        assert (progress.level, progress.xp, progress.streak) == (1, 0, 0)
        assert progress.titles == (DEFAULT_TITLE,)
        assert progress.current_title == DEFAULT_TITLE
        assert progress.completed_quests == 0
        assert progress.completed_daily_quests == 0
        assert progress.last_active_at is None
        assert progress.achievements == ("first_quest", "quest_novice")
        assert progress.total_xp == 6000
        assert events.payloads("progression.reset") == [{"user_id": user_id}]
