"""
Unit tests for ConfigManager and Config.

Tests YAML loading, dot-notation lookups, override precedence and the
environment-derived Config values used by the test run.
"""

import pytest

from solotasks.core.config.config import Config
from solotasks.core.config.manager import ConfigManager, ConfigManagerError


@pytest.fixture
def isolated_config(tmp_path):
    (tmp_path / "streaks.yaml").write_text(
        "streaks:\n  timezone: Europe/Berlin\n  milestones: [2, 4]\n", encoding="utf-8"
    )
    nested = tmp_path / "nested"
    nested.mkdir()
    (nested / "quests.yml").write_text(
        "quests:\n  chain:\n    default_xp: 250\n", encoding="utf-8"
    )
    (tmp_path / "broken.yaml").write_text("streaks: [unclosed\n", encoding="utf-8")

    ConfigManager.reset()
    ConfigManager.initialize(tmp_path)
    yield ConfigManager
    ConfigManager.reset()


@pytest.mark.unit
class TestConfigManager:
    def test_repository_defaults(self, config_manager):
        assert config_manager.get("streaks.timezone") == "UTC"
        assert config_manager.get("streaks.milestones") == [3, 7, 30]
        assert config_manager.get("quests.xp_multipliers.weekly") == 1.5
        assert config_manager.get("storage.backend") == "memory"

    def test_nested_files_are_merged(self, isolated_config):
        assert isolated_config.get("streaks.timezone") == "Europe/Berlin"
        assert isolated_config.get("quests.chain.default_xp") == 250

    def test_broken_yaml_is_skipped(self, isolated_config):
        assert isolated_config.get("streaks.milestones") == [2, 4]

    def test_missing_key_returns_default(self, config_manager):
        assert config_manager.get("quests.chain.unknown", 7) == 7
        assert config_manager.get("streaks.timezone.deeper", "x") == "x"

    def test_override_wins(self, config_manager):
        config_manager.set_override("streaks.timezone", "Asia/Tokyo")

        assert config_manager.get("streaks.timezone") == "Asia/Tokyo"

        config_manager.clear_overrides()
        assert config_manager.get("streaks.timezone") == "UTC"

    def test_empty_override_key_rejected(self, config_manager):
        with pytest.raises(ConfigManagerError):
            config_manager.set_override("", 1)

    def test_top_level_keys(self, config_manager):
        keys = config_manager.get_all_keys()

        assert {"streaks", "achievements", "quests", "storage", "events"} <= set(keys)


@pytest.mark.unit
class TestConfig:
    def test_testing_environment(self):
        assert Config.is_testing()
        assert not Config.is_production()

    def test_summary_hides_credentials(self):
        summary = Config.get_config_summary()

        assert summary["environment"] == "testing"
        assert "solotasks:solotasks@" not in str(summary)
