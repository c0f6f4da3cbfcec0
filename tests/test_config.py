"""Tests for configuration manager."""

import tempfile
from pathlib import Path

import pytest  # type: ignore[import-not-found]
import yaml  # type: ignore[import-untyped]

from jira_timekeeper.core.config import ConfigManager, flatten, merge_dicts
from jira_timekeeper.core.exceptions import ConfigurationError
from jira_timekeeper.core.models import Credentials


@pytest.fixture
def temp_config_path():
    """Create a temporary config file path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "config.yml"


class TestConfigManager:
    """Test ConfigManager."""

    def test_initialization_creates_default_config(self, temp_config_path: Path) -> None:
        """Test that initialization creates default configuration."""
        assert not temp_config_path.exists()

        config = ConfigManager(temp_config_path)

        assert temp_config_path.exists()
        assert config.get("version") == "1.0"
        assert config.get("cache.ttl.default") == 3600
        assert config.get("cache.ttl.tasks") == 1800
        assert config.get("cache.ttl.worklogs") == 900
        assert config.get("cache.ttl.user") == 86400
        assert config.get("sync.max_concurrent_fetches") == 1
        assert config.get("stats.monthly_target_hours") == 168

    def test_merge_with_defaults(self, temp_config_path: Path) -> None:
        """Test that partial config is merged with defaults."""
        with open(temp_config_path, "w") as f:
            yaml.dump({"version": "1.0", "sync": {"max_concurrent_fetches": 3}}, f)

        config = ConfigManager(temp_config_path)

        assert config.get("sync.max_concurrent_fetches") == 3
        assert config.get("sync.refresh_interval") == 300
        assert config.get("cache.ttl.tasks") == 1800

    def test_get_with_default(self, temp_config_path: Path) -> None:
        """Test get with missing keys."""
        config = ConfigManager(temp_config_path)

        assert config.get("nonexistent.key", "fallback") == "fallback"
        assert config.get("jira.email") is None

    def test_set_persists(self, temp_config_path: Path) -> None:
        """Test that set saves to disk."""
        config = ConfigManager(temp_config_path)
        config.set("stats.monthly_target_hours", 160)

        reloaded = ConfigManager(temp_config_path)
        assert reloaded.get("stats.monthly_target_hours") == 160

    def test_set_invalid_value_raises(self, temp_config_path: Path) -> None:
        """Test that schema violations are rejected."""
        config = ConfigManager(temp_config_path)

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            config.set("sync.max_concurrent_fetches", 0)
        with pytest.raises(ConfigurationError):
            config.set("advanced.log_level", "LOUD")

    def test_invalid_file_backed_up(self, temp_config_path: Path) -> None:
        """Test that an invalid file is backed up and replaced with defaults."""
        with open(temp_config_path, "w") as f:
            yaml.dump({"version": "1.0", "cache": {"ttl": {"tasks": -5}}}, f)

        with pytest.raises(ConfigurationError, match="backed up"):
            ConfigManager(temp_config_path)

        assert temp_config_path.with_suffix(".yml.backup").exists()
        assert ConfigManager(temp_config_path).get("cache.ttl.tasks") == 1800

    def test_credentials_round_trip(self, temp_config_path: Path) -> None:
        """Test storing and loading Jira credentials."""
        config = ConfigManager(temp_config_path)
        assert config.get_credentials() is None

        creds = Credentials("jane@example.com", "token", "https://example.atlassian.net")
        config.set_credentials(creds)

        assert ConfigManager(temp_config_path).get_credentials() == creds

    def test_cache_dir_expands_user(self, temp_config_path: Path) -> None:
        """Test that ~ is expanded in the cache directory."""
        config = ConfigManager(temp_config_path)
        assert config.cache_dir == Path.home() / ".jira-timekeeper" / "cache"

    def test_get_all_keys(self, temp_config_path: Path) -> None:
        """Test listing keys in dot notation."""
        keys = ConfigManager(temp_config_path).get_all_keys()

        assert "cache.ttl.tasks" in keys
        assert "jira.api_token" in keys
        assert "version" in keys

    def test_failed_set_keeps_previous_value(self, temp_config_path: Path) -> None:
        """Test that a rejected value is not applied."""
        config = ConfigManager(temp_config_path)

        with pytest.raises(ConfigurationError):
            config.set("cache.ttl.tasks", "soon")

        assert config.get("cache.ttl.tasks") == 1800
        assert ConfigManager(temp_config_path).get("cache.ttl.tasks") == 1800

    def test_cache_ttls(self, temp_config_path: Path) -> None:
        """Test the TTL section as a plain dict."""
        ttls = ConfigManager(temp_config_path).cache_ttls()
        assert ttls == {"default": 3600, "tasks": 1800, "worklogs": 900, "user": 86400}


class TestHelpers:
    """Test dict helpers."""

    def test_merge_dicts(self) -> None:
        """Test nested merge without mutating inputs."""
        base = {"a": {"x": 1, "y": 2}, "b": 1}
        merged = merge_dicts(base, {"a": {"y": 3}, "c": 4})

        assert merged == {"a": {"x": 1, "y": 3}, "b": 1, "c": 4}
        assert base == {"a": {"x": 1, "y": 2}, "b": 1}

    def test_flatten(self) -> None:
        """Test dotted keys for leaves."""
        assert dict(flatten({"a": {"b": {"c": 1}}, "d": None})) == {"a.b.c": 1, "d": None}
