"""
Unit tests for ConfigManager.

Purpose
-------
Validate YAML loading, deep merging, dot-notation reads, overrides and
failure handling for the economy tunables.

Test Coverage
-------------
- Multi-file deep merge
- Defaults for missing and null keys
- Overrides that survive reload
- Malformed and non-mapping files (lenient and strict)
- Values shipped in config/economy.yaml
"""

from pathlib import Path

import pytest

from progression.core.config.errors import ConfigLoadError
from progression.core.config.manager import ConfigManager

PROJECT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "config"


def _write(directory: Path, name: str, text: str) -> Path:
    path = directory / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    return path


# ============================================================================
# LOADING
# ============================================================================


@pytest.mark.unit
class TestConfigLoading:
    """Test YAML discovery and merging."""

    def test_files_are_deep_merged(self, tmp_path):
        """Nested sections from separate files merge key by key."""
        _write(tmp_path, "a.yaml", "streaks:\n  freeze_cost: 150\n")
        _write(tmp_path, "nested/b.yml", "streaks:\n  base_points: 12\n")

        manager = ConfigManager(config_dir=tmp_path).load()

        assert manager.get("streaks.freeze_cost") == 150
        assert manager.get("streaks.base_points") == 12
        assert manager.metrics.files_loaded == 2

    def test_defaults_are_overlaid_by_files(self, tmp_path):
        """Constructor defaults sit beneath file values."""
        _write(tmp_path, "a.yaml", "rewards:\n  featured_limit: 3\n")

        manager = ConfigManager(
            config_dir=tmp_path,
            defaults={"rewards": {"featured_limit": 6, "popular_limit": 10}},
        ).load()

        assert manager.get("rewards.featured_limit") == 3
        assert manager.get("rewards.popular_limit") == 10

    def test_missing_directory_uses_defaults(self, tmp_path):
        """A missing directory is not an error."""
        manager = ConfigManager(
            config_dir=tmp_path / "absent", defaults={"points": {"recent_transactions": 10}}
        ).load()

        assert manager.get("points.recent_transactions") == 10

    def test_malformed_file_is_skipped(self, tmp_path):
        """A broken file is counted and the rest still load."""
        _write(tmp_path, "good.yaml", "challenges:\n  early_completion_days: 2\n")
        _write(tmp_path, "bad.yaml", "challenges: [unclosed\n")

        manager = ConfigManager(config_dir=tmp_path).load()

        assert manager.get("challenges.early_completion_days") == 2
        assert manager.metrics.files_failed == 1

    def test_malformed_file_raises_in_strict_mode(self, tmp_path):
        """Strict managers refuse broken files."""
        _write(tmp_path, "bad.yaml", "challenges: [unclosed\n")

        with pytest.raises(ConfigLoadError):
            ConfigManager(config_dir=tmp_path, strict=True).load()

    def test_non_mapping_root_is_ignored(self, tmp_path):
        """A list at the root contributes nothing."""
        _write(tmp_path, "list.yaml", "- 1\n- 2\n")

        manager = ConfigManager(config_dir=tmp_path).load()

        assert manager.get_all_keys() == []
        assert manager.metrics.files_failed == 1


# ============================================================================
# READS
# ============================================================================


@pytest.mark.unit
class TestConfigReads:
    """Test dot-notation reads."""

    def test_missing_and_null_keys_return_default(self, tmp_path):
        """Absent keys and explicit nulls both fall back."""
        _write(tmp_path, "a.yaml", "streaks:\n  timezone: null\n")
        manager = ConfigManager(config_dir=tmp_path).load()

        assert manager.get("streaks.timezone", "UTC") == "UTC"
        assert manager.get("streaks.nope", 7) == 7
        assert manager.get("nothing.at.all") is None
        assert manager.metrics.misses == 3

    def test_containers_are_copied(self, tmp_path):
        """Mutating a returned dict does not change the tree."""
        _write(tmp_path, "a.yaml", "streaks:\n  milestones:\n    3: 20\n")
        manager = ConfigManager(config_dir=tmp_path).load()

        milestones = manager.get("streaks.milestones")
        milestones[3] = 9999

        assert manager.get("streaks.milestones") == {3: 20}

    def test_get_before_load_loads(self, tmp_path):
        """Reading an unloaded manager loads it first."""
        _write(tmp_path, "a.yaml", "leaderboard:\n  max_limit: 50\n")
        manager = ConfigManager(config_dir=tmp_path)

        assert manager.get("leaderboard.max_limit") == 50

    def test_has(self, tmp_path):
        _write(tmp_path, "a.yaml", "leaderboard:\n  max_limit: 50\n")
        manager = ConfigManager(config_dir=tmp_path).load()

        assert manager.has("leaderboard.max_limit")
        assert not manager.has("leaderboard.position_window")


# ============================================================================
# OVERRIDES
# ============================================================================


@pytest.mark.unit
class TestConfigOverrides:
    """Test in-memory overrides."""

    def test_override_survives_reload(self, tmp_path):
        """Reloading files keeps administrative overrides."""
        _write(tmp_path, "a.yaml", "streaks:\n  freeze_cost: 100\n")
        manager = ConfigManager(config_dir=tmp_path).load()

        manager.set("streaks.freeze_cost", 250)
        manager.reload()

        assert manager.get("streaks.freeze_cost") == 250
        assert manager.metrics.overrides == 1
        assert manager.metrics.reloads == 1

    def test_clear_overrides_restores_file_values(self, tmp_path):
        _write(tmp_path, "a.yaml", "streaks:\n  freeze_cost: 100\n")
        manager = ConfigManager(config_dir=tmp_path).load()
        manager.set("streaks.freeze_cost", 250)

        manager.clear_overrides()

        assert manager.get("streaks.freeze_cost") == 100

    def test_override_creates_missing_sections(self, tmp_path):
        manager = ConfigManager(config_dir=tmp_path).load()

        manager.set("rewards.coupon_suffix_length", 12)

        assert manager.get("rewards.coupon_suffix_length") == 12

    def test_health_snapshot(self, tmp_path):
        manager = ConfigManager(config_dir=tmp_path).load()
        manager.set("a.b", 1)

        snapshot = manager.health_snapshot()

        assert snapshot["loaded"] is True
        assert snapshot["override_count"] == 1
        assert "hit_rate" in snapshot["metrics"]


# ============================================================================
# SHIPPED TUNABLES
# ============================================================================


@pytest.mark.unit
class TestShippedEconomy:
    """Test the values shipped in config/economy.yaml."""

    @pytest.fixture
    def shipped(self):
        return ConfigManager(config_dir=PROJECT_CONFIG_DIR, strict=True).load()

    def test_streak_tunables(self, shipped):
        assert shipped.get("streaks.base_points") == 10
        assert shipped.get("streaks.freeze_cost") == 100
        assert shipped.get("streaks.milestones")[7] == 50

    def test_activity_rewards(self, shipped):
        rewards = shipped.get("points.activity_rewards")
        assert len(rewards) == 15
        assert rewards["SESSION_COMPLETE"]["points"] == 50
        assert rewards["FRIEND_REFERRAL"]["points"] == 200

    def test_challenge_tunables(self, shipped):
        assert shipped.get("challenges.early_completion_days") == 3
